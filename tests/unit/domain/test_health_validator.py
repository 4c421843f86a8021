"""Unit tests for the health validator."""

from __future__ import annotations

import pytest

from lifecycle.domain.models.policy import LifecyclePolicy
from lifecycle.domain.models.runtime import ContainerState, ContainerStatus, ProbeResult
from lifecycle.domain.services.health_validator import HealthValidator


RUNNING = ContainerStatus(name="ecommerce-app", state=ContainerState.RUNNING, image="shop/web:v1")
HEALTHY_PROBE = ProbeResult(
    http_status=200,
    body_snippet="<h1>Welcome to our Shop</h1>",
    latency_ms=40.0,
)


@pytest.fixture
def validator() -> HealthValidator:
    return HealthValidator(LifecyclePolicy())


class TestContentCheck:
    def test_marker_is_case_insensitive(self, validator: HealthValidator) -> None:
        assert validator.content_ok("Browse every PRODUCT we sell")

    def test_empty_body_fails(self, validator: HealthValidator) -> None:
        assert not validator.content_ok("")
        assert not validator.content_ok("   \n")

    def test_body_without_marker_fails(self, validator: HealthValidator) -> None:
        assert not validator.content_ok("<h1>502 Bad Gateway</h1>")

    def test_no_markers_accepts_any_nonempty_body(self) -> None:
        validator = HealthValidator(LifecyclePolicy(expected_markers=()))
        assert validator.content_ok("ok")
        assert not validator.content_ok("")


class TestEvaluate:
    def test_all_signals_agree(self, validator: HealthValidator) -> None:
        verdict = validator.evaluate(RUNNING, HEALTHY_PROBE)
        assert verdict.healthy
        assert verdict.reason == ""

    def test_http_ok_but_process_not_running(self, validator: HealthValidator) -> None:
        exited = ContainerStatus(name="ecommerce-app", state=ContainerState.EXITED, exit_code=1)
        verdict = validator.evaluate(exited, HEALTHY_PROBE)
        assert not verdict.healthy
        assert verdict.http_ok
        assert not verdict.process_running
        assert "container exited" in verdict.reason

    def test_missing_container(self, validator: HealthValidator) -> None:
        verdict = validator.evaluate(None, HEALTHY_PROBE)
        assert not verdict.healthy
        assert "container absent" in verdict.reason

    def test_running_but_http_error(self, validator: HealthValidator) -> None:
        probe = HEALTHY_PROBE.model_copy(update={"http_status": 503})
        verdict = validator.evaluate(RUNNING, probe)
        assert not verdict.healthy
        assert not verdict.http_ok
        assert "http 503" in verdict.reason

    def test_empty_body_with_200(self, validator: HealthValidator) -> None:
        probe = ProbeResult(http_status=200, body_snippet="", latency_ms=5.0)
        verdict = validator.evaluate(RUNNING, probe)
        assert not verdict.healthy
        assert verdict.http_ok
        assert not verdict.content_ok

    def test_slow_response(self, validator: HealthValidator) -> None:
        probe = HEALTHY_PROBE.model_copy(update={"latency_ms": 2500.0})
        verdict = validator.evaluate(RUNNING, probe)
        assert not verdict.healthy
        assert not verdict.latency_ok
        assert "latency" in verdict.reason

    def test_unreachable(self, validator: HealthValidator) -> None:
        verdict = validator.evaluate(RUNNING, None)
        assert not verdict.healthy
        assert "endpoint unreachable" in verdict.reason


class TestLogScan:
    def test_counts_matching_lines(self, validator: HealthValidator) -> None:
        logs = "started\nERROR db timeout\nserving\nUnhandled Exception in worker\n"
        assert validator.count_log_errors(logs) == 2

    def test_clean_logs(self, validator: HealthValidator) -> None:
        assert validator.count_log_errors("started\nlistening on :80\n") == 0
