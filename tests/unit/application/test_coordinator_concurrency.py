"""Unit tests for abort handling and per-target exclusion."""

from __future__ import annotations

import asyncio

import pytest

from lifecycle.config import BusyPolicy
from lifecycle.domain.models.artifact import ArtifactReference, LocalImageHandle
from lifecycle.domain.models.attempt import AttemptOutcome, Phase, PhaseResult
from lifecycle.domain.models.policy import LifecyclePolicy
from lifecycle.domain.services.lifecycle_coordinator import (
    AttemptNotFoundError,
    LifecycleCoordinator,
    TargetBusyError,
)
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
CONTAINER = "ecommerce-app"


class GatedArtifactSource(SimulatedArtifactSource):
    """Blocks while fetching one reference until the test lets it through."""

    def __init__(self, gated: str, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.gated = gated
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def resolve(self, reference: ArtifactReference) -> LocalImageHandle:
        if str(reference) == self.gated:
            self.entered.set()
            await self.release.wait()
        return await super().resolve(reference)


def _coordinator(
    artifacts: SimulatedArtifactSource,
    policy: LifecyclePolicy,
    runtime: SimulatedContainerRuntime | None = None,
    lock_service: InMemoryDistributedLock | None = None,
) -> LifecycleCoordinator:
    return LifecycleCoordinator(
        runtime=runtime or SimulatedContainerRuntime(),
        artifacts=artifacts,
        health=SimulatedHealthOracle(),
        attempt_repo=InMemoryAttemptRepository(),
        event_publisher=InMemoryEventPublisher(),
        lock_service=lock_service or InMemoryDistributedLock(),
        policy=policy,
    )


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_during_install_rolls_back(self, fast_policy: LifecyclePolicy) -> None:
        runtime = SimulatedContainerRuntime()
        runtime.seed(CONTAINER, V1)
        artifacts = GatedArtifactSource(V2, known={V1, V2})
        coordinator = _coordinator(artifacts, fast_policy, runtime=runtime)

        attempt = await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        await coordinator.abort(attempt.id)
        await coordinator.drain()

        final = await coordinator.get_attempt(attempt.id)
        assert final.outcome == AttemptOutcome.ROLLED_BACK
        installing = final.phase_log[2]
        assert installing.phase == Phase.INSTALLING
        assert installing.result == PhaseResult.FAILED
        assert installing.error_type == "AttemptAbortedError"
        assert final.phase_log[3].result == PhaseResult.SKIPPED
        assert runtime.container(CONTAINER)["image"] == V1

    @pytest.mark.asyncio
    async def test_abort_without_rollback_target_fails(self, fast_policy: LifecyclePolicy) -> None:
        artifacts = GatedArtifactSource(V2, known={V2})
        coordinator = _coordinator(artifacts, fast_policy)

        attempt = await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        await coordinator.abort(attempt.id)
        await coordinator.drain()

        assert attempt.outcome == AttemptOutcome.FAILED
        assert attempt.error_type == "AttemptAbortedError"
        assert attempt.failed_phase == Phase.INSTALLING

    @pytest.mark.asyncio
    async def test_abort_during_rollback_is_terminal(self, fast_policy: LifecyclePolicy) -> None:
        runtime = SimulatedContainerRuntime(crashing={V2})
        runtime.seed(CONTAINER, V1)
        artifacts = GatedArtifactSource(V1, known={V1, V2})
        coordinator = _coordinator(artifacts, fast_policy, runtime=runtime)

        attempt = await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        assert attempt.rolling_back
        await coordinator.abort(attempt.id)
        await coordinator.drain()

        assert attempt.outcome == AttemptOutcome.FAILED
        assert attempt.error_type == "RollbackExhaustedError"
        assert attempt.rollback_records[1].error_type == "AttemptAbortedError"

    @pytest.mark.asyncio
    async def test_abort_terminal_attempt_is_noop(
        self, coordinator: LifecycleCoordinator
    ) -> None:
        attempt = await coordinator.deploy("web-1", V1)
        log_before = list(attempt.phase_log)

        aborted = await coordinator.abort(attempt.id)

        assert aborted.outcome == AttemptOutcome.SUCCEEDED
        assert aborted.phase_log == log_before

    @pytest.mark.asyncio
    async def test_abort_unknown_attempt(self, coordinator: LifecycleCoordinator) -> None:
        with pytest.raises(AttemptNotFoundError):
            await coordinator.abort("missing")


class TestTargetExclusion:
    @pytest.mark.asyncio
    async def test_busy_target_rejected(self, fast_policy: LifecyclePolicy) -> None:
        artifacts = GatedArtifactSource(V2, known={V1, V2})
        coordinator = _coordinator(artifacts, fast_policy)

        first = await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        with pytest.raises(TargetBusyError):
            await coordinator.deploy("web-1", V1)

        artifacts.release.set()
        await coordinator.drain()
        assert first.outcome == AttemptOutcome.SUCCEEDED
        assert len(await coordinator.list_attempts("web-1")) == 1

    @pytest.mark.asyncio
    async def test_busy_target_queued(self, fast_policy: LifecyclePolicy) -> None:
        policy = fast_policy.model_copy(update={"busy_policy": BusyPolicy.QUEUE})
        artifacts = GatedArtifactSource(V2, known={V1, V2})
        coordinator = _coordinator(artifacts, policy)

        first = await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        queued = asyncio.create_task(coordinator.deploy("web-1", V1))
        await asyncio.sleep(0.05)
        assert not queued.done()

        artifacts.release.set()
        second = await asyncio.wait_for(queued, timeout=5)
        await coordinator.drain()

        assert first.outcome == AttemptOutcome.SUCCEEDED
        assert second.outcome == AttemptOutcome.SUCCEEDED
        assert second.started_at >= first.completed_at
        assert second.previous_artifact is not None
        assert second.previous_artifact.repository == "shop/web"
        assert second.previous_artifact.digest is not None

    @pytest.mark.asyncio
    async def test_queue_gives_up_after_timeout(self, fast_policy: LifecyclePolicy) -> None:
        policy = fast_policy.model_copy(
            update={"busy_policy": BusyPolicy.QUEUE, "queue_timeout_seconds": 0.1}
        )
        artifacts = GatedArtifactSource(V2, known={V1, V2})
        coordinator = _coordinator(artifacts, policy)

        await coordinator.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        with pytest.raises(TargetBusyError):
            await coordinator.deploy("web-1", V1)

        artifacts.release.set()
        await coordinator.drain()

    @pytest.mark.asyncio
    async def test_exclusion_spans_coordinators(self, fast_policy: LifecyclePolicy) -> None:
        shared_lock = InMemoryDistributedLock()
        artifacts = GatedArtifactSource(V2, known={V1, V2})
        first = _coordinator(artifacts, fast_policy, lock_service=shared_lock)
        second = _coordinator(
            SimulatedArtifactSource(known={V1}), fast_policy, lock_service=shared_lock
        )

        await first.submit("web-1", V2)
        await asyncio.wait_for(artifacts.entered.wait(), timeout=5)
        with pytest.raises(TargetBusyError):
            await second.deploy("web-1", V1)

        artifacts.release.set()
        await first.drain()
        attempt = await second.deploy("web-1", V1)
        assert attempt.outcome == AttemptOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_different_targets_run_concurrently(self, fast_policy: LifecyclePolicy) -> None:
        shared_lock = InMemoryDistributedLock()
        gated = GatedArtifactSource(V2, known={V2})
        blocked = _coordinator(gated, fast_policy, lock_service=shared_lock)
        free = _coordinator(
            SimulatedArtifactSource(known={V1}), fast_policy, lock_service=shared_lock
        )

        slow = await blocked.submit("web-1", V2)
        await asyncio.wait_for(gated.entered.wait(), timeout=5)

        fast = await free.deploy("web-2", V1)
        assert fast.outcome == AttemptOutcome.SUCCEEDED
        assert not slow.is_terminal

        gated.release.set()
        await blocked.drain()
        assert slow.outcome == AttemptOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(
        self,
        coordinator: LifecycleCoordinator,
        runtime: SimulatedContainerRuntime,
        lock_service: InMemoryDistributedLock,
    ) -> None:
        runtime.available = False
        await coordinator.deploy("web-1", V1)
        assert not await lock_service.is_locked("target:web-1")

        runtime.available = True
        attempt = await coordinator.deploy("web-1", V1)
        assert attempt.outcome == AttemptOutcome.SUCCEEDED
        assert coordinator.active_attempt_count == 0
