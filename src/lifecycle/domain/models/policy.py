"""Timeout, retry and validation policy for the deployment lifecycle."""

from __future__ import annotations

from pydantic import Field, model_validator

from lifecycle.config import BusyPolicy, Settings
from lifecycle.domain.models.attempt import Phase
from lifecycle.domain.models.base import ValueObject
from lifecycle.domain.models.runtime import PortBinding, RestartPolicy


class RetryPolicy(ValueObject):
    """Bounded retry with a fixed backoff between tries."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0.0)

    @property
    def retries(self) -> int:
        return self.max_attempts - 1


class LifecyclePolicy(ValueObject):
    """Everything the coordinator needs to know about budgets and thresholds."""

    before_install_timeout: float = 30.0
    stop_timeout: float = 60.0
    install_timeout: float = 300.0
    start_timeout: float = 30.0
    validate_timeout: float = 60.0

    stop_retry: RetryPolicy = Field(default_factory=RetryPolicy)
    probe_retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=5, backoff_seconds=2.0)
    )
    probe_successes_required: int = Field(default=2, ge=1)
    probe_timeout_ms: int = 5000
    latency_ceiling_ms: float = 2000.0
    health_url: str = "http://localhost/"
    expected_markers: tuple[str, ...] = ("ecommerce", "shop", "product")
    log_error_patterns: tuple[str, ...] = ("error", "fail", "exception")
    settle_seconds: float = 5.0
    start_poll_interval: float = 1.0

    container_name: str = "ecommerce-app"
    port_binding: PortBinding = Field(default_factory=PortBinding)
    restart_policy: RestartPolicy = RestartPolicy.UNLESS_STOPPED
    log_tail_lines: int = 50

    busy_policy: BusyPolicy = BusyPolicy.REJECT
    queue_timeout_seconds: float = 600.0
    lock_retry_interval: float = 0.5

    @model_validator(mode="after")
    def _check_probe_budget(self) -> LifecyclePolicy:
        if self.probe_successes_required > self.probe_retry.max_attempts:
            raise ValueError(
                "probe_successes_required cannot exceed the probe attempt budget"
            )
        return self

    def timeout_for(self, phase: Phase) -> float:
        """Wall-clock budget for a single phase."""
        timeouts = {
            Phase.BEFORE_INSTALL: self.before_install_timeout,
            Phase.STOPPING: self.stop_timeout,
            Phase.INSTALLING: self.install_timeout,
            Phase.STARTING: self.start_timeout,
            Phase.VALIDATING: self.validate_timeout,
        }
        if phase not in timeouts:
            raise ValueError(f"Phase {phase.value} has no timeout budget")
        return timeouts[phase]

    @property
    def max_attempt_seconds(self) -> float:
        """Worst case for a forward pass plus one rollback pass."""
        one_pass = (
            self.stop_timeout + self.install_timeout
            + self.start_timeout + self.validate_timeout
        )
        return self.before_install_timeout + 2 * one_pass

    @classmethod
    def from_settings(cls, settings: Settings) -> LifecyclePolicy:
        lc = settings.lifecycle
        rt = settings.runtime
        return cls(
            before_install_timeout=lc.before_install_timeout,
            stop_timeout=lc.stop_timeout,
            install_timeout=lc.install_timeout,
            start_timeout=lc.start_timeout,
            validate_timeout=lc.validate_timeout,
            stop_retry=RetryPolicy(
                max_attempts=lc.stop_max_attempts,
                backoff_seconds=lc.stop_backoff_seconds,
            ),
            probe_retry=RetryPolicy(
                max_attempts=lc.probe_max_attempts,
                backoff_seconds=lc.probe_backoff_seconds,
            ),
            probe_successes_required=lc.probe_successes_required,
            probe_timeout_ms=lc.probe_timeout_ms,
            latency_ceiling_ms=lc.latency_ceiling_ms,
            health_url=lc.health_url,
            expected_markers=tuple(lc.expected_markers),
            log_error_patterns=tuple(lc.log_error_patterns),
            settle_seconds=lc.settle_seconds,
            start_poll_interval=lc.start_poll_interval,
            container_name=rt.container_name,
            port_binding=PortBinding(
                host_port=rt.host_port, container_port=rt.container_port,
            ),
            restart_policy=RestartPolicy(rt.restart_policy),
            log_tail_lines=rt.log_tail_lines,
            busy_policy=lc.busy_policy,
            queue_timeout_seconds=lc.queue_timeout_seconds,
            lock_retry_interval=settings.redis.lock_retry_interval,
        )
