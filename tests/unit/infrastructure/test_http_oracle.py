"""Unit tests for the httpx health oracle."""

from __future__ import annotations

import httpx
import pytest

from lifecycle.domain.ports.services import ProbeUnreachableError
from lifecycle.infrastructure.health.http_oracle import BODY_SNIPPET_CHARS, HttpHealthOracle


def _oracle(handler) -> HttpHealthOracle:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return HttpHealthOracle(client)


class TestHttpHealthOracle:
    @pytest.mark.asyncio
    async def test_probe_reports_status_and_body(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, text="<h1>Ecommerce Shop</h1>"))
        result = await oracle.probe("http://localhost/", timeout_ms=1000)
        assert result.http_status == 200
        assert "Ecommerce" in result.body_snippet
        assert result.latency_ms >= 0
        await oracle.close()

    @pytest.mark.asyncio
    async def test_server_error_is_a_result(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(503, text="maintenance"))
        result = await oracle.probe("http://localhost/", timeout_ms=1000)
        assert result.http_status == 503

    @pytest.mark.asyncio
    async def test_redirects_followed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/":
                return httpx.Response(302, headers={"Location": "/shop"})
            return httpx.Response(200, text="product catalogue")

        oracle = _oracle(handler)
        result = await oracle.probe("http://localhost/", timeout_ms=1000)
        assert result.http_status == 200
        assert result.body_snippet == "product catalogue"

    @pytest.mark.asyncio
    async def test_body_snippet_truncated(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, text="x" * (BODY_SNIPPET_CHARS * 2)))
        result = await oracle.probe("http://localhost/", timeout_ms=1000)
        assert len(result.body_snippet) == BODY_SNIPPET_CHARS

    @pytest.mark.asyncio
    async def test_connection_refused_is_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        oracle = _oracle(handler)
        with pytest.raises(ProbeUnreachableError, match="ConnectError"):
            await oracle.probe("http://localhost/", timeout_ms=1000)

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        oracle = _oracle(handler)
        with pytest.raises(ProbeUnreachableError):
            await oracle.probe("http://localhost/", timeout_ms=10)
