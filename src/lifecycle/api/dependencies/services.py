"""Service dependencies for FastAPI dependency injection."""

from __future__ import annotations

import structlog

from lifecycle.config import get_settings, RuntimeBackend, Settings
from lifecycle.domain.models.policy import LifecyclePolicy
from lifecycle.domain.ports.services import (
    ArtifactSource,
    ContainerRuntime,
    DistributedLock,
    EventPublisher,
    HealthOracle,
)
from lifecycle.domain.services.lifecycle_coordinator import LifecycleCoordinator
from lifecycle.infrastructure.artifacts.registry import (
    DockerRegistryArtifactSource,
    SimulatedArtifactSource,
)
from lifecycle.infrastructure.health.http_oracle import (
    HttpHealthOracle,
    SimulatedHealthOracle,
)
from lifecycle.infrastructure.locking.in_memory import InMemoryDistributedLock
from lifecycle.infrastructure.locking.redis_lock import (
    create_redis_client,
    RedisDistributedLock,
)
from lifecycle.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from lifecycle.infrastructure.persistence.repositories.in_memory import (
    InMemoryAttemptRepository,
)
from lifecycle.infrastructure.runtime.docker_runtime import (
    create_docker_client,
    DockerContainerRuntime,
    SimulatedContainerRuntime,
)


logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Simple dependency injection container.

    Implements the Composition Root pattern: picks Docker or simulated
    gateways from ``RUNTIME_BACKEND`` and Redis or in-process locking from
    ``REDIS_ENABLED``, then wires one coordinator for the process.
    Gateways can be passed in directly to override the configured ones.
    """

    _instance: ServiceContainer | None = None

    def __init__(
        self,
        settings: Settings | None = None,
        runtime: ContainerRuntime | None = None,
        artifacts: ArtifactSource | None = None,
        health: HealthOracle | None = None,
        lock_service: DistributedLock | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._event_publisher = InMemoryEventPublisher()
        self._health_client: HttpHealthOracle | None = None

        if self._settings.runtime.backend == RuntimeBackend.DOCKER:
            docker_client = create_docker_client(self._settings.runtime)
            self._runtime = runtime or DockerContainerRuntime(
                docker_client, stop_grace_seconds=self._settings.runtime.stop_grace_seconds
            )
            self._artifacts = artifacts or DockerRegistryArtifactSource(
                docker_client, self._settings.registry
            )
            if health is None:
                self._health_client = HttpHealthOracle()
            self._health = health or self._health_client
        else:
            self._runtime = runtime or SimulatedContainerRuntime()
            self._artifacts = artifacts or SimulatedArtifactSource(accept_any=True)
            self._health = health or SimulatedHealthOracle()

        self._lock_service = lock_service
        self._coordinator: LifecycleCoordinator | None = None

    @classmethod
    def get_instance(cls) -> ServiceContainer:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def set_instance(cls, container: ServiceContainer) -> None:
        cls._instance = container

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def runtime(self) -> ContainerRuntime:
        return self._runtime

    @property
    def event_publisher(self) -> EventPublisher:
        return self._event_publisher

    @property
    def lock_service(self) -> DistributedLock:
        if self._lock_service is None:
            if self._settings.redis.enabled:
                client = create_redis_client(self._settings.redis)
                self._lock_service = RedisDistributedLock(client)
            else:
                self._lock_service = InMemoryDistributedLock()
        return self._lock_service

    @property
    def coordinator(self) -> LifecycleCoordinator:
        if self._coordinator is None:
            self._coordinator = LifecycleCoordinator(
                runtime=self._runtime,
                artifacts=self._artifacts,
                health=self._health,
                attempt_repo=InMemoryAttemptRepository(),
                event_publisher=self._event_publisher,
                lock_service=self.lock_service,
                policy=LifecyclePolicy.from_settings(self._settings),
            )
            logger.info(
                "coordinator_ready",
                backend=self._settings.runtime.backend.value,
                container=self._settings.runtime.container_name,
                distributed_lock=type(self.lock_service).__name__,
            )
        return self._coordinator

    async def shutdown(self) -> None:
        if self._coordinator is not None:
            await self._coordinator.drain()
        if self._health_client is not None:
            await self._health_client.close()


def get_service_container() -> ServiceContainer:
    return ServiceContainer.get_instance()