"""Domain events package."""

from lifecycle.domain.events.attempt_events import (
    AttemptAborted,
    AttemptFailed,
    AttemptRolledBack,
    AttemptStarted,
    AttemptSucceeded,
    PhaseCompleted,
    PhaseFailed,
    RollbackStarted,
)


__all__ = [
    "AttemptAborted",
    "AttemptFailed",
    "AttemptRolledBack",
    "AttemptStarted",
    "AttemptSucceeded",
    "PhaseCompleted",
    "PhaseFailed",
    "RollbackStarted",
]
