"""Service port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lifecycle.domain.models.artifact import ArtifactReference, LocalImageHandle
from lifecycle.domain.models.runtime import (
    ContainerStatus,
    PortBinding,
    ProbeResult,
    RemoveResult,
    RestartPolicy,
    StopResult,
)


class ContainerRuntime(ABC):
    """Port for the process supervisor that owns the named container.

    Containers are only ever addressed by name; callers must tolerate the
    container being absent at any time.
    """

    @abstractmethod
    async def ensure_available(self) -> None:
        """Make sure the runtime daemon is up. Raises RuntimeUnavailableError."""

    @abstractmethod
    async def stop(self, name: str) -> StopResult:
        """Stop the named container; ``ABSENT`` when there is nothing to stop."""

    @abstractmethod
    async def remove(self, name: str) -> RemoveResult:
        """Remove the named container; ``ABSENT`` when there is nothing to remove."""

    @abstractmethod
    async def run(
        self,
        name: str,
        image: LocalImageHandle,
        port_binding: PortBinding,
        restart_policy: RestartPolicy,
    ) -> None:
        """Launch a detached container. Raises ContainerLaunchError."""

    @abstractmethod
    async def inspect(self, name: str) -> ContainerStatus:
        """Report the container's state. Raises ContainerNotFoundError."""

    @abstractmethod
    async def logs(self, name: str, tail: int = 50) -> str:
        """Return the last ``tail`` log lines, or an empty string if absent."""


class ArtifactSource(ABC):
    """Port for the immutable artifact store."""

    @abstractmethod
    async def resolve(self, reference: ArtifactReference) -> LocalImageHandle:
        """Fetch an artifact by exact reference.

        Raises ArtifactNotFoundError or ArtifactTransferError.
        """


class HealthOracle(ABC):
    """Port for probing the deployed service over HTTP."""

    @abstractmethod
    async def probe(self, url: str, timeout_ms: int) -> ProbeResult:
        """Issue one probe. Raises ProbeUnreachableError."""


class EventPublisher(ABC):
    """Port for publishing domain events."""

    @abstractmethod
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish an event."""

    @abstractmethod
    async def publish_batch(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        """Publish a batch of events."""


class DistributedLock(ABC):
    """Port for target-level mutual exclusion."""

    @abstractmethod
    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        """Try once to acquire the lock; never blocks."""

    @abstractmethod
    async def release(self, resource_id: str) -> bool:
        """Release a lock held by this instance."""

    @abstractmethod
    async def extend(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        """Extend the TTL of an existing lock."""

    @abstractmethod
    async def is_locked(self, resource_id: str) -> bool:
        """Check if a resource is locked."""


class RuntimeGatewayError(Exception):
    """Base class for container runtime failures."""


class RuntimeUnavailableError(RuntimeGatewayError):
    """Raised when the runtime daemon cannot be reached or started."""


class ContainerNotFoundError(RuntimeGatewayError):
    """Raised when inspecting a container that does not exist."""


class ContainerLaunchError(RuntimeGatewayError):
    """Raised when a container cannot be created or started."""


class ContainerOperationError(RuntimeGatewayError):
    """Raised when stop/remove/inspect fails for a reason other than absence."""


class ArtifactError(Exception):
    """Base class for artifact source failures."""


class ArtifactNotFoundError(ArtifactError):
    """Raised when the artifact reference does not exist."""


class ArtifactTransferError(ArtifactError):
    """Raised when the artifact exists but could not be fetched."""


class ProbeUnreachableError(Exception):
    """Raised when the health endpoint cannot be reached."""
