"""In-memory repository implementations for development and testing."""

from __future__ import annotations

from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.attempt import AttemptOutcome, DeploymentAttempt
from lifecycle.domain.ports.repositories import AttemptRepository


# Module-level shared store so every coordinator built by the API sees the
# same history, with a single clear point for test isolation.
_attempt_store: dict[str, DeploymentAttempt] = {}


class InMemoryAttemptRepository(AttemptRepository):
    """In-memory attempt repository for testing and single-host use."""

    def __init__(self) -> None:
        self._store = _attempt_store

    async def save(self, attempt: DeploymentAttempt) -> DeploymentAttempt:
        self._store[attempt.id] = attempt
        return attempt

    async def get_by_id(self, attempt_id: str) -> DeploymentAttempt | None:
        return self._store.get(attempt_id)

    async def update(self, attempt: DeploymentAttempt) -> DeploymentAttempt:
        self._store[attempt.id] = attempt
        return attempt

    async def list_by_target(
        self, target_id: str, limit: int = 50, offset: int = 0
    ) -> list[DeploymentAttempt]:
        items = [a for a in self._store.values() if a.target_id == target_id]
        return sorted(items, key=lambda a: a.created_at, reverse=True)[offset:offset + limit]

    async def count_by_outcome(self, outcome: AttemptOutcome) -> int:
        return sum(1 for a in self._store.values() if a.outcome == outcome)

    async def last_healthy_artifact(self, target_id: str) -> ArtifactReference | None:
        for attempt in await self.list_by_target(target_id, limit=len(self._store)):
            if attempt.outcome == AttemptOutcome.SUCCEEDED:
                return attempt.artifact
            if attempt.outcome == AttemptOutcome.ROLLED_BACK:
                return attempt.previous_artifact
        return None

    @classmethod
    def clear(cls) -> None:
        """Clear the shared store. Used by test fixtures for isolation."""
        _attempt_store.clear()
