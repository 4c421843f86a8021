"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from lifecycle.api.dependencies.services import ServiceContainer
from lifecycle.config import Environment, Settings
from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.attempt import DeploymentAttempt
from lifecycle.domain.models.policy import LifecyclePolicy, RetryPolicy
from lifecycle.domain.services.lifecycle_coordinator import LifecycleCoordinator
from lifecycle.infrastructure.artifacts.registry import SimulatedArtifactSource
from lifecycle.infrastructure.health.http_oracle import SimulatedHealthOracle
from lifecycle.infrastructure.locking.in_memory import InMemoryDistributedLock
from lifecycle.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from lifecycle.infrastructure.persistence.repositories.in_memory import (
    InMemoryAttemptRepository,
)
from lifecycle.infrastructure.runtime.docker_runtime import SimulatedContainerRuntime


V1 = "shop/web:v1"
V2 = "shop/web:v2"


@pytest.fixture(autouse=True)
def clear_stores() -> None:
    """Clear in-memory stores before each test."""
    InMemoryAttemptRepository.clear()
    ServiceContainer.reset()


@pytest.fixture
def settings() -> Settings:
    return Settings(environment=Environment.TESTING, debug=True)


@pytest.fixture
def fast_policy() -> LifecyclePolicy:
    """Default budgets with every wait shrunk so tests run in milliseconds."""
    return LifecyclePolicy(
        stop_retry=RetryPolicy(max_attempts=3, backoff_seconds=0),
        probe_retry=RetryPolicy(max_attempts=5, backoff_seconds=0),
        settle_seconds=0,
        start_poll_interval=0.01,
        lock_retry_interval=0.01,
        queue_timeout_seconds=5,
    )


@pytest.fixture
def runtime() -> SimulatedContainerRuntime:
    return SimulatedContainerRuntime()


@pytest.fixture
def artifacts() -> SimulatedArtifactSource:
    return SimulatedArtifactSource(known={V1, V2})


@pytest.fixture
def health() -> SimulatedHealthOracle:
    return SimulatedHealthOracle()


@pytest.fixture
def attempt_repo() -> InMemoryAttemptRepository:
    return InMemoryAttemptRepository()


@pytest.fixture
def event_publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def lock_service() -> InMemoryDistributedLock:
    return InMemoryDistributedLock()


@pytest.fixture
def make_coordinator(
    runtime: SimulatedContainerRuntime,
    artifacts: SimulatedArtifactSource,
    health: SimulatedHealthOracle,
    attempt_repo: InMemoryAttemptRepository,
    event_publisher: InMemoryEventPublisher,
    lock_service: InMemoryDistributedLock,
    fast_policy: LifecyclePolicy,
) -> Callable[..., LifecycleCoordinator]:
    """Build a coordinator over the shared fakes; keyword overrides go to the policy."""

    def _make(
        artifact_source: SimulatedArtifactSource | None = None,
        oracle: SimulatedHealthOracle | None = None,
        **overrides: object,
    ) -> LifecycleCoordinator:
        return LifecycleCoordinator(
            runtime=runtime,
            artifacts=artifact_source or artifacts,
            health=oracle or health,
            attempt_repo=attempt_repo,
            event_publisher=event_publisher,
            lock_service=lock_service,
            policy=fast_policy.model_copy(update=overrides),
        )

    return _make


@pytest.fixture
def coordinator(make_coordinator: Callable[..., LifecycleCoordinator]) -> LifecycleCoordinator:
    return make_coordinator()


@pytest.fixture
def sample_attempt() -> DeploymentAttempt:
    return DeploymentAttempt(
        target_id="web-1",
        container_name="ecommerce-app",
        artifact=ArtifactReference.parse(V2),
    )
