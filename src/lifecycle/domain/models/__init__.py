"""Domain models package."""

from lifecycle.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    generate_id,
    utc_now,
    ValueObject,
)
from lifecycle.domain.models.artifact import (
    ArtifactReference,
    DEFAULT_TAG,
    LocalImageHandle,
)
from lifecycle.domain.models.runtime import (
    ContainerState,
    ContainerStatus,
    HealthVerdict,
    PortBinding,
    ProbeResult,
    RemoveResult,
    RestartPolicy,
    StopResult,
)
from lifecycle.domain.models.attempt import (
    AttemptFinalizedError,
    AttemptOutcome,
    DeploymentAttempt,
    FORWARD_SEQUENCE,
    InvalidPhaseTransitionError,
    Phase,
    PhaseRecord,
    PhaseResult,
    ROLLBACK_SEQUENCE,
    RollbackNotAllowedError,
    TERMINAL_PHASES,
    VALID_TRANSITIONS,
)
from lifecycle.domain.models.policy import LifecyclePolicy, RetryPolicy


__all__ = [
    "AggregateRoot",
    "ArtifactReference",
    "AttemptFinalizedError",
    "AttemptOutcome",
    "ContainerState",
    "ContainerStatus",
    "DEFAULT_TAG",
    "DeploymentAttempt",
    "DomainEvent",
    "FORWARD_SEQUENCE",
    "HealthVerdict",
    "InvalidPhaseTransitionError",
    "LifecyclePolicy",
    "LocalImageHandle",
    "Phase",
    "PhaseRecord",
    "PhaseResult",
    "PortBinding",
    "ProbeResult",
    "ROLLBACK_SEQUENCE",
    "RemoveResult",
    "RestartPolicy",
    "RetryPolicy",
    "RollbackNotAllowedError",
    "StopResult",
    "TERMINAL_PHASES",
    "VALID_TRANSITIONS",
    "ValueObject",
    "generate_id",
    "utc_now",
]
