"""Deployment attempt domain events."""

from __future__ import annotations

from lifecycle.domain.models.base import DomainEvent


class AttemptStarted(DomainEvent):
    """Emitted when an attempt leaves Idle and enters BeforeInstall."""

    attempt_id: str
    target_id: str
    artifact: str
    event_type: str = "attempt.started"


class PhaseCompleted(DomainEvent):
    """Emitted when a lifecycle phase finishes successfully."""

    attempt_id: str
    phase: str
    duration_seconds: float
    rollback: bool = False
    event_type: str = "attempt.phase_completed"


class PhaseFailed(DomainEvent):
    """Emitted when a lifecycle phase fails or times out."""

    attempt_id: str
    phase: str
    error_type: str
    error_message: str
    rollback: bool = False
    event_type: str = "attempt.phase_failed"


class RollbackStarted(DomainEvent):
    """Emitted when the single rollback pass begins."""

    attempt_id: str
    target_id: str
    rollback_artifact: str
    event_type: str = "attempt.rollback_started"


class AttemptSucceeded(DomainEvent):
    attempt_id: str
    target_id: str
    artifact: str
    event_type: str = "attempt.succeeded"


class AttemptFailed(DomainEvent):
    attempt_id: str
    target_id: str
    error_type: str
    error_message: str
    event_type: str = "attempt.failed"


class AttemptRolledBack(DomainEvent):
    attempt_id: str
    target_id: str
    rollback_artifact: str
    event_type: str = "attempt.rolled_back"


class AttemptAborted(DomainEvent):
    """Emitted when an external abort signal is received for an attempt."""

    attempt_id: str
    phase: str
    event_type: str = "attempt.aborted"
