"""Lifecycle coordinator: runs deployment attempts through their ordered phases."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from lifecycle.config import BusyPolicy
from lifecycle.domain.models.artifact import ArtifactReference, LocalImageHandle
from lifecycle.domain.models.attempt import (
    DeploymentAttempt,
    FORWARD_SEQUENCE,
    Phase,
    PhaseRecord,
    PhaseResult,
    ROLLBACK_SEQUENCE,
)
from lifecycle.domain.models.base import AggregateRoot, utc_now
from lifecycle.domain.models.policy import LifecyclePolicy
from lifecycle.domain.models.runtime import ContainerStatus, ProbeResult
from lifecycle.domain.ports.repositories import AttemptRepository
from lifecycle.domain.ports.services import (
    ArtifactNotFoundError,
    ArtifactSource,
    ArtifactTransferError,
    ContainerNotFoundError,
    ContainerRuntime,
    DistributedLock,
    EventPublisher,
    HealthOracle,
    ProbeUnreachableError,
    RuntimeGatewayError,
)
from lifecycle.domain.services.health_validator import HealthValidator
from lifecycle.infrastructure.observability.metrics import (
    ACTIVE_ATTEMPTS,
    ATTEMPTS_TOTAL,
    PHASE_DURATION,
    PHASE_FAILURES,
    PROBES_TOTAL,
    ROLLBACKS_TOTAL,
    STOP_RETRIES,
)
from lifecycle.infrastructure.observability.tracing import get_tracer


logger = structlog.get_logger(__name__)

T = TypeVar("T")

LOG_FETCH_TIMEOUT_SECONDS = 5.0


@dataclass
class _PassContext:
    """Mutable state shared by the phases of one pass."""

    image: LocalImageHandle | None = None
    tries: int = 1


PhaseAction = Callable[[DeploymentAttempt, _PassContext], Awaitable[str]]


class LifecycleCoordinator:
    """Runs the BeforeInstall → Stopping → Installing → Starting → Validating
    sequence for one target, with per-phase timeouts, bounded retries for
    Stopping and liveness probes, and at most one rollback pass.

    Attempts for the same target are mutually exclusive through the
    ``DistributedLock`` port. Attempts for different targets share nothing
    and may run concurrently.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        artifacts: ArtifactSource,
        health: HealthOracle,
        attempt_repo: AttemptRepository,
        event_publisher: EventPublisher,
        lock_service: DistributedLock,
        policy: LifecyclePolicy | None = None,
    ) -> None:
        self._runtime = runtime
        self._artifacts = artifacts
        self._health = health
        self._attempt_repo = attempt_repo
        self._event_publisher = event_publisher
        self._lock_service = lock_service
        self._policy = policy or LifecyclePolicy()
        self._validator = HealthValidator(self._policy)
        self._tracer = get_tracer("lifecycle.coordinator")
        self._abort_signals: dict[str, asyncio.Event] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._actions: dict[Phase, PhaseAction] = {
            Phase.IDLE: self._check_prerequisites,
            Phase.BEFORE_INSTALL: self._before_install,
            Phase.STOPPING: self._stop_container,
            Phase.INSTALLING: self._install_artifact,
            Phase.STARTING: self._start_container,
            Phase.VALIDATING: self._validate_service,
        }

    @property
    def policy(self) -> LifecyclePolicy:
        return self._policy

    @property
    def active_attempt_count(self) -> int:
        return len(self._abort_signals)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def deploy(
        self, target_id: str, artifact: ArtifactReference | str
    ) -> DeploymentAttempt:
        """Run a full attempt and return it once terminal."""
        attempt = await self._open_attempt(target_id, artifact)
        await self._drive(attempt)
        return attempt

    async def submit(
        self, target_id: str, artifact: ArtifactReference | str
    ) -> DeploymentAttempt:
        """Start an attempt in the background; poll it with get_attempt()."""
        attempt = await self._open_attempt(target_id, artifact)
        background_task = asyncio.create_task(self._drive(attempt))
        self._background_tasks.add(background_task)
        background_task.add_done_callback(self._background_tasks.discard)
        return attempt

    async def get_attempt(self, attempt_id: str) -> DeploymentAttempt:
        attempt = await self._attempt_repo.get_by_id(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
        return attempt

    async def list_attempts(
        self, target_id: str, limit: int = 50, offset: int = 0
    ) -> list[DeploymentAttempt]:
        return await self._attempt_repo.list_by_target(target_id, limit=limit, offset=offset)

    async def abort(self, attempt_id: str) -> DeploymentAttempt:
        """Signal an in-flight attempt to abandon its current phase.

        A forward pass moves to rollback (or Failed with no rollback
        target); a rollback pass moves straight to Failed. Aborting a
        terminal attempt changes nothing.
        """
        attempt = await self.get_attempt(attempt_id)
        if attempt.is_terminal:
            return attempt

        signal = self._abort_signals.get(attempt_id)
        if signal is None:
            logger.warning("abort_for_unowned_attempt", attempt_id=attempt_id)
            return attempt

        attempt.note_abort()
        signal.set()
        logger.warning(
            "attempt_abort_requested",
            attempt_id=attempt_id,
            target_id=attempt.target_id,
            phase=attempt.phase.value,
        )
        return attempt

    async def drain(self) -> None:
        """Wait for all background attempts to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    # ------------------------------------------------------------------
    # Attempt bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_key(target_id: str) -> str:
        return f"target:{target_id}"

    async def _acquire_target(self, target_id: str) -> None:
        key = self._lock_key(target_id)
        ttl = int(self._policy.max_attempt_seconds) + 60
        if await self._lock_service.acquire(key, ttl_seconds=ttl):
            return

        if self._policy.busy_policy == BusyPolicy.REJECT:
            raise TargetBusyError(f"Target {target_id} already has an attempt in flight")

        logger.info("attempt_queued", target_id=target_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._policy.queue_timeout_seconds
        while loop.time() < deadline:
            await asyncio.sleep(self._policy.lock_retry_interval)
            if await self._lock_service.acquire(key, ttl_seconds=ttl):
                return
        raise TargetBusyError(
            f"Target {target_id} stayed busy for {self._policy.queue_timeout_seconds:.0f}s"
        )

    async def _open_attempt(
        self, target_id: str, artifact: ArtifactReference | str
    ) -> DeploymentAttempt:
        reference = (
            ArtifactReference.parse(artifact) if isinstance(artifact, str) else artifact
        )
        await self._acquire_target(target_id)
        try:
            attempt = DeploymentAttempt(
                target_id=target_id,
                container_name=self._policy.container_name,
                artifact=reference,
            )
            attempt = await self._attempt_repo.save(attempt)
        except Exception:
            await self._lock_service.release(self._lock_key(target_id))
            raise

        self._abort_signals[attempt.id] = asyncio.Event()
        ACTIVE_ATTEMPTS.inc()
        logger.info(
            "attempt_created",
            attempt_id=attempt.id,
            target_id=target_id,
            artifact=str(reference),
        )
        return attempt

    async def _drive(self, attempt: DeploymentAttempt) -> None:
        try:
            await self._run_lifecycle(attempt)
        except asyncio.CancelledError:
            if not attempt.is_terminal:
                attempt.fail("AttemptCancelledError", "Attempt task was cancelled")
            raise
        except Exception as e:
            logger.exception("attempt_crashed", attempt_id=attempt.id, error=str(e))
            if not attempt.is_terminal:
                attempt.fail(type(e).__name__, str(e))
        finally:
            self._abort_signals.pop(attempt.id, None)
            try:
                await self._checkpoint(attempt)
            finally:
                # The target must be released even when the final save or publish fails.
                await self._lock_service.release(self._lock_key(attempt.target_id))
                ACTIVE_ATTEMPTS.dec()
                if attempt.outcome is not None:
                    ATTEMPTS_TOTAL.labels(outcome=attempt.outcome.value).inc()
                logger.info(
                    "attempt_finished",
                    attempt_id=attempt.id,
                    target_id=attempt.target_id,
                    outcome=attempt.outcome.value if attempt.outcome else None,
                    error_type=attempt.error_type,
                    duration_seconds=round(attempt.duration_seconds, 3),
                )

    async def _publish_events(self, aggregate: AggregateRoot) -> None:
        """Collect and publish all pending domain events from an aggregate."""
        for event in aggregate.collect_events():
            await self._event_publisher.publish(
                event.event_type, event.model_dump(mode="json")
            )

    async def _checkpoint(self, attempt: DeploymentAttempt) -> None:
        await self._attempt_repo.update(attempt)
        await self._publish_events(attempt)

    # ------------------------------------------------------------------
    # State machine driver
    # ------------------------------------------------------------------

    async def _run_lifecycle(self, attempt: DeploymentAttempt) -> None:
        error = await self._execute_phase(attempt, Phase.IDLE, record_success=False)
        if error is not None:
            attempt.fail(type(error).__name__, str(error))
            return

        error = await self._run_pass(attempt, FORWARD_SEQUENCE)
        if error is None:
            attempt.succeed()
            return

        if not self._should_roll_back(attempt, error):
            attempt.fail(type(error).__name__, str(error))
            return

        await self._roll_back(attempt, cause=error)

    def _should_roll_back(self, attempt: DeploymentAttempt, error: LifecycleError) -> bool:
        if attempt.previous_artifact is None:
            return False
        return (
            error.phase in {Phase.STARTING, Phase.VALIDATING}
            or isinstance(error, AttemptAbortedError)
        )

    async def _roll_back(self, attempt: DeploymentAttempt, cause: LifecycleError) -> None:
        # A fresh abort during rollback must be distinguishable from the one
        # that may have triggered it.
        self._abort_signals[attempt.id].clear()
        attempt.begin_rollback()
        logger.warning(
            "rollback_started",
            attempt_id=attempt.id,
            target_id=attempt.target_id,
            rollback_artifact=str(attempt.previous_artifact),
            cause=type(cause).__name__,
        )
        await self._checkpoint(attempt)

        error = await self._run_pass(attempt, ROLLBACK_SEQUENCE)
        if error is None:
            attempt.complete_rollback()
            ROLLBACKS_TOTAL.labels(result="rolled_back").inc()
            return

        ROLLBACKS_TOTAL.labels(result="exhausted").inc()
        exhausted = RollbackExhaustedError(
            error.phase,
            f"Rollback to {attempt.previous_artifact} failed in {error.phase.value}: "
            f"{error} (original failure: {cause})",
        )
        attempt.fail(type(exhausted).__name__, str(exhausted))

    async def _run_pass(
        self, attempt: DeploymentAttempt, sequence: tuple[Phase, ...]
    ) -> LifecycleError | None:
        context = _PassContext()
        for phase in sequence:
            # begin_rollback() already moved the attempt into the first phase.
            if attempt.phase != phase:
                attempt.enter_phase(phase)
            error = await self._execute_phase(attempt, phase, context=context)
            if error is not None:
                attempt.skip_remaining()
                return error
        return None

    async def _execute_phase(
        self,
        attempt: DeploymentAttempt,
        phase: Phase,
        context: _PassContext | None = None,
        record_success: bool = True,
    ) -> LifecycleError | None:
        """Run one phase under its budget and record the outcome."""
        context = context or _PassContext()
        context.tries = 1
        started_at = utc_now()
        started = time.monotonic()
        log = logger.bind(
            attempt_id=attempt.id,
            target_id=attempt.target_id,
            phase=phase.value,
            rollback=attempt.rolling_back,
        )
        log.info("phase_started", artifact=str(attempt.active_artifact))

        error: LifecycleError | None = None
        message = ""
        with self._tracer.start_as_current_span(f"lifecycle.{phase.value}") as span:
            span.set_attribute("attempt.id", attempt.id)
            span.set_attribute("attempt.rollback", attempt.rolling_back)
            try:
                message = await self._bounded(
                    attempt, phase, self._actions[phase](attempt, context)
                )
            except LifecycleError as e:
                error = e
                span.set_attribute("error.type", type(e).__name__)

        duration = time.monotonic() - started
        PHASE_DURATION.labels(phase=phase.value).observe(duration)

        if error is None:
            if record_success:
                attempt.record_phase(PhaseRecord(
                    phase=phase,
                    result=PhaseResult.SUCCEEDED,
                    started_at=started_at,
                    duration_seconds=duration,
                    message=message,
                    tries=context.tries,
                ))
            log.info("phase_succeeded", duration_seconds=round(duration, 3), tries=context.tries)
        else:
            failure_message = str(error)
            if phase in {Phase.STARTING, Phase.VALIDATING} and not isinstance(
                error, AttemptAbortedError
            ):
                tail = await self._log_tail(attempt.container_name)
                if tail:
                    failure_message = f"{failure_message}\n--- container logs ---\n{tail}"
            attempt.record_phase(PhaseRecord(
                phase=phase,
                result=PhaseResult.FAILED,
                started_at=started_at,
                duration_seconds=duration,
                message=failure_message,
                error_type=type(error).__name__,
                tries=context.tries,
            ))
            PHASE_FAILURES.labels(phase=phase.value, error_type=type(error).__name__).inc()
            log.warning(
                "phase_failed",
                error_type=type(error).__name__,
                error=str(error),
                duration_seconds=round(duration, 3),
                tries=context.tries,
            )

        await self._checkpoint(attempt)
        return error

    async def _bounded(
        self, attempt: DeploymentAttempt, phase: Phase, work: Awaitable[T]
    ) -> T:
        """Await ``work`` under the phase budget, cancelling it on abort or timeout."""
        timeout = (
            self._policy.before_install_timeout
            if phase == Phase.IDLE
            else self._policy.timeout_for(phase)
        )
        signal = self._abort_signals[attempt.id]
        if signal.is_set():
            if asyncio.iscoroutine(work):
                work.close()
            raise AttemptAbortedError(phase, f"{phase.value} aborted by request")

        work_task = asyncio.ensure_future(work)
        abort_task = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait(
                {work_task, abort_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (work_task, abort_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work_task, abort_task, return_exceptions=True)

        if work_task in done:
            try:
                return work_task.result()
            except LifecycleError:
                raise
            except Exception as e:
                raise _phase_error(phase)(phase, f"{type(e).__name__}: {e}") from e
        if abort_task in done:
            raise AttemptAbortedError(phase, f"{phase.value} aborted by request")
        raise _phase_error(phase)(
            phase, f"{phase.value} exceeded its {timeout:g}s budget"
        )

    async def _log_tail(self, name: str) -> str:
        try:
            return await asyncio.wait_for(
                self._runtime.logs(name, tail=self._policy.log_tail_lines),
                timeout=LOG_FETCH_TIMEOUT_SECONDS,
            )
        except (RuntimeGatewayError, asyncio.TimeoutError) as e:
            logger.warning("container_logs_unavailable", container=name, error=str(e))
            return ""

    async def _inspect_or_none(self, name: str) -> ContainerStatus | None:
        try:
            return await self._runtime.inspect(name)
        except ContainerNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Phase actions
    # ------------------------------------------------------------------

    async def _check_prerequisites(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        try:
            await self._runtime.ensure_available()
        except RuntimeGatewayError as e:
            raise PreconditionError(Phase.IDLE, f"Container runtime unavailable: {e}") from e
        return "runtime available"

    async def _before_install(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        name = attempt.container_name
        notes: list[str] = []
        try:
            await self._runtime.ensure_available()
            status = await self._inspect_or_none(name)
            previous: ArtifactReference | None = None
            if status is None:
                notes.append("no existing container")
            elif status.is_running:
                previous = status.running_reference
                if previous is None:
                    notes.append(f"running image {status.image!r} is not a usable reference")
                notes.append(f"found running container from {status.image or 'unknown image'}")
            else:
                removed = await self._runtime.remove(name)
                notes.append(f"stale {status.state.value} container {removed.value}")
        except RuntimeGatewayError as e:
            raise PreconditionError(Phase.BEFORE_INSTALL, f"Environment prep failed: {e}") from e

        if previous is None:
            previous = await self._attempt_repo.last_healthy_artifact(attempt.target_id)
            if previous is not None:
                notes.append(f"last healthy artifact from history {previous}")

        attempt.set_previous_artifact(previous)
        if attempt.previous_artifact is not None:
            notes.append(f"rollback target {attempt.previous_artifact}")
        else:
            notes.append("no rollback target")
        return "; ".join(notes)

    async def _stop_container(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        name = attempt.container_name
        retry = self._policy.stop_retry
        last_error: RuntimeGatewayError | None = None

        for try_number in range(1, retry.max_attempts + 1):
            context.tries = try_number
            try:
                stopped = await self._runtime.stop(name)
                removed = await self._runtime.remove(name)
                return f"stop={stopped.value} remove={removed.value}"
            except RuntimeGatewayError as e:
                last_error = e
                logger.warning(
                    "stop_try_failed",
                    attempt_id=attempt.id,
                    container=name,
                    try_number=try_number,
                    error=str(e),
                )
                if try_number < retry.max_attempts:
                    STOP_RETRIES.inc()
                    await asyncio.sleep(retry.backoff_seconds)

        raise StopError(
            Phase.STOPPING,
            f"Container {name} would not stop after {retry.max_attempts} tries: {last_error}",
        )

    async def _install_artifact(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        reference = attempt.active_artifact
        try:
            context.image = await self._artifacts.resolve(reference)
        except ArtifactNotFoundError as e:
            raise ResolutionError(Phase.INSTALLING, f"Artifact {reference} not found: {e}") from e
        except ArtifactTransferError as e:
            raise ResolutionError(
                Phase.INSTALLING, f"Artifact {reference} could not be fetched: {e}"
            ) from e
        resolved = f"resolved {context.image.run_reference} as {context.image.image_id}"
        previous = attempt.previous_artifact
        if (
            not attempt.rolling_back
            and previous is not None
            and str(previous) in context.image.repo_digests
        ):
            attempt.set_previous_artifact(None)
            return f"{resolved}; running image is the same digest, no rollback target"
        return resolved

    async def _start_container(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        name = attempt.container_name
        if context.image is None:
            raise LaunchError(Phase.STARTING, "No installed artifact to launch")

        try:
            await self._runtime.run(
                name,
                context.image,
                self._policy.port_binding,
                self._policy.restart_policy,
            )
            while True:
                status = await self._inspect_or_none(name)
                if status is not None and status.is_running:
                    return f"container {name} running from {context.image.run_reference}"
                if status is not None and status.state.is_final:
                    raise LaunchError(
                        Phase.STARTING,
                        f"Container {name} {status.state.value} "
                        f"with exit code {status.exit_code}",
                    )
                await asyncio.sleep(self._policy.start_poll_interval)
        except RuntimeGatewayError as e:
            raise LaunchError(Phase.STARTING, f"Container {name} failed to launch: {e}") from e

    async def _validate_service(
        self, attempt: DeploymentAttempt, context: _PassContext
    ) -> str:
        name = attempt.container_name
        policy = self._policy
        retry = policy.probe_retry
        required = policy.probe_successes_required

        if policy.settle_seconds > 0:
            await asyncio.sleep(policy.settle_seconds)

        consecutive = 0
        last_reason = ""
        for try_number in range(1, retry.max_attempts + 1):
            context.tries = try_number
            try:
                status = await self._inspect_or_none(name)
            except RuntimeGatewayError as e:
                logger.warning("inspect_failed", attempt_id=attempt.id, error=str(e))
                status = None
            if status is not None and status.state.is_final:
                raise ValidationError(
                    Phase.VALIDATING,
                    f"Container {name} {status.state.value} with exit code "
                    f"{status.exit_code} during validation",
                )

            probe: ProbeResult | None = None
            unreachable = ""
            try:
                probe = await self._health.probe(policy.health_url, policy.probe_timeout_ms)
            except ProbeUnreachableError as e:
                unreachable = str(e)

            verdict = self._validator.evaluate(status, probe)
            PROBES_TOTAL.labels(result="healthy" if verdict.healthy else "unhealthy").inc()
            if verdict.healthy:
                consecutive += 1
                if consecutive >= required:
                    break
            else:
                consecutive = 0
                last_reason = f"{verdict.reason} ({unreachable})" if unreachable else verdict.reason
                logger.info(
                    "probe_unhealthy",
                    attempt_id=attempt.id,
                    try_number=try_number,
                    reason=last_reason,
                )

            remaining = retry.max_attempts - try_number
            if consecutive + remaining < required:
                raise ValidationError(
                    Phase.VALIDATING,
                    f"Health signals disagreed after {try_number} probes: {last_reason}",
                )
            await asyncio.sleep(retry.backoff_seconds)

        message = f"{consecutive} consecutive healthy probes at {policy.health_url}"
        suspicious = self._validator.count_log_errors(await self._log_tail(name))
        if suspicious:
            logger.warning(
                "container_log_errors",
                attempt_id=attempt.id,
                container=name,
                count=suspicious,
            )
            message = f"{message}; warning: {suspicious} suspicious log lines"
        return message


class LifecycleError(Exception):
    """Base class for phase failures; carries the phase that failed."""

    def __init__(self, phase: Phase, message: str) -> None:
        super().__init__(message)
        self.phase = phase


class PreconditionError(LifecycleError):
    """Raised when the runtime is unavailable or environment prep fails."""


class StopError(LifecycleError):
    """Raised when the container would not stop within the retry budget."""


class ResolutionError(LifecycleError):
    """Raised when the artifact reference is unknown or cannot be fetched."""


class LaunchError(LifecycleError):
    """Raised when the new container does not reach running in time."""


class ValidationError(LifecycleError):
    """Raised when health signals disagree or validation times out."""


class RollbackExhaustedError(LifecycleError):
    """Raised when the single rollback pass itself fails."""


class AttemptAbortedError(LifecycleError):
    """Raised inside a phase when an external abort signal arrives."""


class TargetBusyError(Exception):
    """Raised when a target already has an attempt in flight."""


class AttemptNotFoundError(Exception):
    """Raised when an attempt ID is unknown."""


def _phase_error(phase: Phase) -> type[LifecycleError]:
    """Error raised when a phase fails or exceeds its budget."""
    return {
        Phase.IDLE: PreconditionError,
        Phase.BEFORE_INSTALL: PreconditionError,
        Phase.STOPPING: StopError,
        Phase.INSTALLING: ResolutionError,
        Phase.STARTING: LaunchError,
        Phase.VALIDATING: ValidationError,
    }[phase]
