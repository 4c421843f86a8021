"""Health oracle implementations."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Iterable

import httpx
import structlog

from lifecycle.domain.models.runtime import ProbeResult
from lifecycle.domain.ports.services import HealthOracle, ProbeUnreachableError


logger = structlog.get_logger(__name__)

BODY_SNIPPET_CHARS = 4096


class HttpHealthOracle(HealthOracle):
    """Probes the service over HTTP with httpx and measures round-trip latency.

    Redirects are followed so a storefront that bounces ``/`` to a landing
    page is judged on the page it actually serves.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def probe(self, url: str, timeout_ms: int) -> ProbeResult:
        started = time.perf_counter()
        try:
            response = await self._client.get(url, timeout=timeout_ms / 1000)
        except httpx.HTTPError as e:
            raise ProbeUnreachableError(f"{url} unreachable: {type(e).__name__}: {e}") from e
        latency_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            "probe_completed",
            url=url,
            http_status=response.status_code,
            latency_ms=round(latency_ms, 1),
        )
        return ProbeResult(
            http_status=response.status_code,
            body_snippet=response.text[:BODY_SNIPPET_CHARS],
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        await self._client.aclose()


class SimulatedHealthOracle(HealthOracle):
    """Simulated oracle for development/testing.

    Replays scripted probe outcomes in order, then keeps answering with
    ``default``. A scripted ``None`` means the endpoint was unreachable.
    """

    def __init__(
        self,
        script: Iterable[ProbeResult | None] = (),
        default: ProbeResult | None = None,
        delay: float = 0.0,
    ) -> None:
        self._script: deque[ProbeResult | None] = deque(script)
        self.default = default or ProbeResult(
            http_status=200,
            body_snippet="<html><title>Ecommerce Shop</title></html>",
            latency_ms=12.0,
        )
        self._delay = delay
        self.probed_urls: list[str] = []

    def enqueue(self, *results: ProbeResult | None) -> None:
        self._script.extend(results)

    async def probe(self, url: str, timeout_ms: int) -> ProbeResult:
        self.probed_urls.append(url)
        if self._delay:
            await asyncio.sleep(self._delay)
        result = self._script.popleft() if self._script else self.default
        if result is None:
            raise ProbeUnreachableError(f"{url} unreachable: connection refused")
        return result
