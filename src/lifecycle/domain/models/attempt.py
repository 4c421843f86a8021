"""Deployment attempt aggregate root with the lifecycle state machine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

# Module import: attempt_events imports models.base, which loads this package.
from lifecycle.domain.events import attempt_events as events
from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.base import AggregateRoot, utc_now, ValueObject


class Phase(str, Enum):
    """Lifecycle phases of a single deployment attempt."""

    IDLE = "idle"
    BEFORE_INSTALL = "before_install"
    STOPPING = "stopping"
    INSTALLING = "installing"
    STARTING = "starting"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class PhaseResult(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class AttemptOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


FORWARD_SEQUENCE: tuple[Phase, ...] = (
    Phase.BEFORE_INSTALL,
    Phase.STOPPING,
    Phase.INSTALLING,
    Phase.STARTING,
    Phase.VALIDATING,
)

ROLLBACK_SEQUENCE: tuple[Phase, ...] = FORWARD_SEQUENCE[1:]

TERMINAL_PHASES: frozenset[Phase] = frozenset({
    Phase.SUCCEEDED,
    Phase.FAILED,
    Phase.ROLLED_BACK,
})

# State machine transitions. Stopping is reachable from later phases only
# through begin_rollback().
VALID_TRANSITIONS: dict[Phase, set[Phase]] = {
    Phase.IDLE: {Phase.BEFORE_INSTALL, Phase.FAILED},
    Phase.BEFORE_INSTALL: {Phase.STOPPING, Phase.FAILED},
    Phase.STOPPING: {Phase.INSTALLING, Phase.STOPPING, Phase.FAILED},
    Phase.INSTALLING: {Phase.STARTING, Phase.STOPPING, Phase.FAILED},
    Phase.STARTING: {Phase.VALIDATING, Phase.STOPPING, Phase.FAILED},
    Phase.VALIDATING: {
        Phase.SUCCEEDED, Phase.ROLLED_BACK, Phase.STOPPING, Phase.FAILED,
    },
    Phase.SUCCEEDED: set(),
    Phase.FAILED: set(),
    Phase.ROLLED_BACK: set(),
}


class PhaseRecord(ValueObject):
    """One entry in an attempt's ordered phase log."""

    phase: Phase
    result: PhaseResult
    started_at: datetime = Field(default_factory=utc_now)
    duration_seconds: float = 0.0
    message: str = ""
    error_type: str = ""
    tries: int = 1
    rollback: bool = False
    artifact: str = ""


class DeploymentAttempt(AggregateRoot):
    """One execution of the lifecycle for a (target, artifact) pair."""

    target_id: str
    container_name: str
    artifact: ArtifactReference
    previous_artifact: ArtifactReference | None = None
    phase: Phase = Phase.IDLE
    phase_log: list[PhaseRecord] = Field(default_factory=list)
    outcome: AttemptOutcome | None = None
    rolling_back: bool = False
    error_type: str = ""
    error_message: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise AttemptFinalizedError(
                f"Attempt {self.id} is {self.phase.value} and can no longer change"
            )

    def _transition_to(self, new_phase: Phase, rollback_entry: bool = False) -> None:
        """Validate and execute a phase transition."""
        self._ensure_mutable()
        valid = VALID_TRANSITIONS.get(self.phase, set())
        if new_phase not in valid:
            raise InvalidPhaseTransitionError(
                f"Cannot transition from {self.phase.value} to {new_phase.value}. "
                f"Valid transitions: {sorted(p.value for p in valid)}"
            )
        if (
            new_phase == Phase.STOPPING
            and self.phase != Phase.BEFORE_INSTALL
            and not rollback_entry
        ):
            raise InvalidPhaseTransitionError(
                f"Stopping can only be re-entered from {self.phase.value} by a rollback"
            )
        if new_phase == Phase.ROLLED_BACK and not self.rolling_back:
            raise InvalidPhaseTransitionError("Only a rollback pass can end rolled back")
        if new_phase == Phase.SUCCEEDED and self.rolling_back:
            raise InvalidPhaseTransitionError("A rollback pass cannot end succeeded")
        self.phase = new_phase
        self.touch()

    # ------------------------------------------------------------------
    # Phase progression
    # ------------------------------------------------------------------

    def enter_phase(self, phase: Phase) -> None:
        """Advance to the next phase of the current pass."""
        expected = self.next_phase
        if phase != expected:
            raise InvalidPhaseTransitionError(
                f"Expected {expected.value if expected else 'no further phase'}, "
                f"got {phase.value}"
            )
        self._transition_to(phase)
        if phase == Phase.BEFORE_INSTALL:
            self.started_at = utc_now()
            self.add_event(events.AttemptStarted(
                attempt_id=self.id,
                target_id=self.target_id,
                artifact=str(self.artifact),
                correlation_id=self.id,
            ))

    def record_phase(self, record: PhaseRecord) -> None:
        """Append the outcome of the phase the attempt is currently in."""
        self._ensure_mutable()
        if record.result == PhaseResult.SKIPPED:
            raise ValueError("Use skip_remaining() to record skipped phases")
        if record.phase != self.phase:
            raise InvalidPhaseTransitionError(
                f"Cannot record {record.phase.value} while in {self.phase.value}"
            )
        if any(
            r.phase == record.phase and r.rollback == self.rolling_back
            for r in self.phase_log
        ):
            raise InvalidPhaseTransitionError(
                f"Phase {record.phase.value} already recorded for this pass"
            )
        record = record.model_copy(update={
            "rollback": self.rolling_back,
            "artifact": str(self.active_artifact),
        })
        self.phase_log.append(record)
        self.touch()

        if record.result == PhaseResult.SUCCEEDED:
            self.add_event(events.PhaseCompleted(
                attempt_id=self.id,
                phase=record.phase.value,
                duration_seconds=record.duration_seconds,
                rollback=record.rollback,
                correlation_id=self.id,
            ))
        else:
            self.add_event(events.PhaseFailed(
                attempt_id=self.id,
                phase=record.phase.value,
                error_type=record.error_type,
                error_message=record.message,
                rollback=record.rollback,
                correlation_id=self.id,
            ))

    def skip_remaining(self) -> None:
        """Log the unexecuted phases of the current pass as skipped."""
        self._ensure_mutable()
        sequence = self.pass_sequence
        if self.phase not in sequence:
            return
        for phase in sequence[sequence.index(self.phase) + 1:]:
            self.phase_log.append(PhaseRecord(
                phase=phase,
                result=PhaseResult.SKIPPED,
                message="skipped after earlier failure",
                tries=0,
                rollback=self.rolling_back,
                artifact=str(self.active_artifact),
            ))
        self.touch()

    def set_previous_artifact(self, reference: ArtifactReference | None) -> None:
        """Record the rollback target; a reference equal to the new artifact is ignored."""
        self._ensure_mutable()
        if self.rolling_back:
            raise InvalidPhaseTransitionError("Rollback target is fixed once rollback starts")
        if reference is not None and reference == self.artifact:
            reference = None
        self.previous_artifact = reference
        self.touch()

    def begin_rollback(self) -> None:
        """Start the single rollback pass against the previous artifact."""
        if self.rolling_back:
            raise RollbackNotAllowedError(f"Attempt {self.id} has already rolled back once")
        if self.previous_artifact is None:
            raise RollbackNotAllowedError(f"Attempt {self.id} has no previous artifact")
        self._ensure_mutable()
        self.rolling_back = True
        self._transition_to(Phase.STOPPING, rollback_entry=True)
        self.add_event(events.RollbackStarted(
            attempt_id=self.id,
            target_id=self.target_id,
            rollback_artifact=str(self.previous_artifact),
            correlation_id=self.id,
        ))

    def note_abort(self) -> None:
        self._ensure_mutable()
        self.add_event(events.AttemptAborted(
            attempt_id=self.id,
            phase=self.phase.value,
            correlation_id=self.id,
        ))

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def succeed(self) -> None:
        self._transition_to(Phase.SUCCEEDED)
        self.outcome = AttemptOutcome.SUCCEEDED
        self.completed_at = utc_now()
        self.add_event(events.AttemptSucceeded(
            attempt_id=self.id,
            target_id=self.target_id,
            artifact=str(self.artifact),
            correlation_id=self.id,
        ))

    def complete_rollback(self) -> None:
        self._transition_to(Phase.ROLLED_BACK)
        self.outcome = AttemptOutcome.ROLLED_BACK
        self.completed_at = utc_now()
        self.add_event(events.AttemptRolledBack(
            attempt_id=self.id,
            target_id=self.target_id,
            rollback_artifact=str(self.previous_artifact),
            correlation_id=self.id,
        ))

    def fail(self, error_type: str, error_message: str) -> None:
        self._transition_to(Phase.FAILED)
        self.error_type = error_type
        self.error_message = error_message
        self.outcome = AttemptOutcome.FAILED
        self.completed_at = utc_now()
        self.add_event(events.AttemptFailed(
            attempt_id=self.id,
            target_id=self.target_id,
            error_type=error_type,
            error_message=error_message,
            correlation_id=self.id,
        ))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def pass_sequence(self) -> tuple[Phase, ...]:
        return ROLLBACK_SEQUENCE if self.rolling_back else FORWARD_SEQUENCE

    @property
    def next_phase(self) -> Phase | None:
        """The phase that follows the current one within the current pass."""
        if self.phase == Phase.IDLE:
            return Phase.BEFORE_INSTALL
        sequence = self.pass_sequence
        if self.phase not in sequence:
            return None
        index = sequence.index(self.phase)
        return sequence[index + 1] if index + 1 < len(sequence) else None

    @property
    def active_artifact(self) -> ArtifactReference:
        """The artifact the current pass is deploying."""
        if self.rolling_back and self.previous_artifact is not None:
            return self.previous_artifact
        return self.artifact

    @property
    def phase_sequence(self) -> list[Phase]:
        return [r.phase for r in self.phase_log]

    @property
    def executed_records(self) -> list[PhaseRecord]:
        return [r for r in self.phase_log if r.result != PhaseResult.SKIPPED]

    @property
    def rollback_records(self) -> list[PhaseRecord]:
        return [r for r in self.phase_log if r.rollback]

    @property
    def failed_phase(self) -> Phase | None:
        """The first phase that failed, if any."""
        for record in self.phase_log:
            if record.result == PhaseResult.FAILED:
                return record.phase
        return None

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.completed_at or utc_now()
        return (end - self.started_at).total_seconds()


class InvalidPhaseTransitionError(Exception):
    """Raised when an invalid phase transition is attempted."""


class AttemptFinalizedError(Exception):
    """Raised when a terminal attempt is mutated."""


class RollbackNotAllowedError(Exception):
    """Raised when a rollback is requested that the attempt cannot perform."""
