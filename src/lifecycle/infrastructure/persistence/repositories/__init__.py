"""Repository implementations."""

from lifecycle.infrastructure.persistence.repositories.in_memory import (
    InMemoryAttemptRepository,
)


__all__ = [
    "InMemoryAttemptRepository",
]
