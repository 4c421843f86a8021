"""Health signal evaluation for the Validating phase."""

from __future__ import annotations

import re

from lifecycle.domain.models.policy import LifecyclePolicy
from lifecycle.domain.models.runtime import ContainerStatus, HealthVerdict, ProbeResult


class HealthValidator:
    """Combines process state, HTTP status and response content into one verdict.

    A round is healthy only when every signal agrees: the container is
    running, the endpoint answered with a 2xx, the body is non-empty and
    carries one of the expected markers, and the response came back under
    the latency ceiling.
    """

    def __init__(self, policy: LifecyclePolicy) -> None:
        self._markers = tuple(m.lower() for m in policy.expected_markers if m)
        self._latency_ceiling_ms = policy.latency_ceiling_ms
        self._log_error_re = (
            re.compile("|".join(re.escape(p) for p in policy.log_error_patterns), re.IGNORECASE)
            if policy.log_error_patterns
            else None
        )

    def content_ok(self, body: str) -> bool:
        if not body.strip():
            return False
        if not self._markers:
            return True
        lowered = body.lower()
        return any(marker in lowered for marker in self._markers)

    def evaluate(
        self, status: ContainerStatus | None, probe: ProbeResult | None
    ) -> HealthVerdict:
        process_running = status is not None and status.is_running
        http_ok = probe is not None and 200 <= probe.http_status < 300
        content_ok = probe is not None and self.content_ok(probe.body_snippet)
        latency_ok = probe is not None and probe.latency_ms <= self._latency_ceiling_ms

        problems: list[str] = []
        if not process_running:
            state = status.state.value if status is not None else "absent"
            problems.append(f"container {state}")
        if probe is None:
            problems.append("endpoint unreachable")
        else:
            if not http_ok:
                problems.append(f"http {probe.http_status}")
            if not content_ok:
                problems.append("body empty or missing expected marker")
            if not latency_ok:
                problems.append(
                    f"latency {probe.latency_ms:.0f}ms over {self._latency_ceiling_ms:.0f}ms"
                )

        return HealthVerdict(
            healthy=not problems,
            process_running=process_running,
            http_ok=http_ok,
            content_ok=content_ok,
            latency_ok=latency_ok,
            reason="; ".join(problems),
        )

    def count_log_errors(self, logs: str) -> int:
        """Count log lines that look like errors; informational only."""
        if self._log_error_re is None:
            return 0
        return sum(1 for line in logs.splitlines() if self._log_error_re.search(line))
