"""Repository port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.attempt import AttemptOutcome, DeploymentAttempt


class AttemptRepository(ABC):
    """Port for deployment attempt persistence."""

    @abstractmethod
    async def save(self, attempt: DeploymentAttempt) -> DeploymentAttempt:
        """Persist a new attempt."""

    @abstractmethod
    async def get_by_id(self, attempt_id: str) -> DeploymentAttempt | None:
        """Retrieve an attempt by ID."""

    @abstractmethod
    async def update(self, attempt: DeploymentAttempt) -> DeploymentAttempt:
        """Update an existing attempt."""

    @abstractmethod
    async def list_by_target(
        self, target_id: str, limit: int = 50, offset: int = 0
    ) -> list[DeploymentAttempt]:
        """List attempts for a target, newest first."""

    @abstractmethod
    async def count_by_outcome(self, outcome: AttemptOutcome) -> int:
        """Count terminal attempts by outcome."""

    @abstractmethod
    async def last_healthy_artifact(self, target_id: str) -> ArtifactReference | None:
        """Artifact left serving by the newest attempt that ended succeeded or rolled back."""
