"""Container runtime gateway implementations."""

from __future__ import annotations

import asyncio
from typing import Any

import docker
import structlog
from docker.constants import DEFAULT_DOCKER_API_VERSION
from docker.errors import APIError, DockerException, NotFound

from lifecycle.config import RuntimeSettings
from lifecycle.domain.models.artifact import LocalImageHandle
from lifecycle.domain.models.runtime import (
    ContainerState,
    ContainerStatus,
    PortBinding,
    RemoveResult,
    RestartPolicy,
    StopResult,
)
from lifecycle.domain.ports.services import (
    ContainerLaunchError,
    ContainerNotFoundError,
    ContainerOperationError,
    ContainerRuntime,
    RuntimeUnavailableError,
)


logger = structlog.get_logger(__name__)


class DockerContainerRuntime(ContainerRuntime):
    """Docker Engine implementation of ContainerRuntime.

    The Docker SDK is blocking, so every call is pushed onto a worker
    thread to keep the coordinator's event loop responsive to aborts
    and timeouts.
    """

    def __init__(self, client: docker.DockerClient, stop_grace_seconds: int = 10) -> None:
        self._client = client
        self._stop_grace_seconds = stop_grace_seconds

    async def ensure_available(self) -> None:
        try:
            await asyncio.to_thread(self._client.ping)
        except (DockerException, OSError) as e:
            raise RuntimeUnavailableError(f"Docker daemon not reachable: {e}") from e

    async def stop(self, name: str) -> StopResult:
        def _stop() -> StopResult:
            try:
                container = self._client.containers.get(name)
                container.stop(timeout=self._stop_grace_seconds)
            except NotFound:
                return StopResult.ABSENT
            return StopResult.STOPPED

        try:
            result = await asyncio.to_thread(_stop)
        except (DockerException, OSError) as e:
            raise ContainerOperationError(f"Failed to stop {name}: {e}") from e
        logger.info("container_stop", container=name, result=result.value)
        return result

    async def remove(self, name: str) -> RemoveResult:
        def _remove() -> RemoveResult:
            try:
                container = self._client.containers.get(name)
                container.remove()
            except NotFound:
                return RemoveResult.ABSENT
            return RemoveResult.REMOVED

        try:
            result = await asyncio.to_thread(_remove)
        except (DockerException, OSError) as e:
            raise ContainerOperationError(f"Failed to remove {name}: {e}") from e
        logger.info("container_remove", container=name, result=result.value)
        return result

    async def run(
        self,
        name: str,
        image: LocalImageHandle,
        port_binding: PortBinding,
        restart_policy: RestartPolicy,
    ) -> None:
        restart: dict[str, Any] = {"Name": restart_policy.value}
        if restart_policy == RestartPolicy.ON_FAILURE:
            restart["MaximumRetryCount"] = 3

        def _run() -> None:
            self._client.containers.run(
                image.run_reference,
                name=name,
                detach=True,
                ports={
                    f"{port_binding.container_port}/{port_binding.protocol}":
                        port_binding.host_port,
                },
                restart_policy=restart,
            )

        try:
            await asyncio.to_thread(_run)
        except (DockerException, OSError) as e:
            raise ContainerLaunchError(
                f"docker run {image.run_reference} as {name} failed: {e}"
            ) from e
        logger.info(
            "container_run",
            container=name,
            image=image.run_reference,
            ports=str(port_binding),
            restart_policy=restart_policy.value,
        )

    async def inspect(self, name: str) -> ContainerStatus:
        def _inspect() -> tuple[dict[str, Any], list[str]]:
            attrs = self._client.containers.get(name).attrs
            image_id = attrs.get("Image") or ""
            if not image_id:
                return attrs, []
            try:
                image = self._client.images.get(image_id)
            except NotFound:
                return attrs, []
            return attrs, image.attrs.get("RepoDigests") or []

        try:
            attrs, repo_digests = await asyncio.to_thread(_inspect)
        except NotFound as e:
            raise ContainerNotFoundError(f"No container named {name}") from e
        except (DockerException, OSError) as e:
            raise ContainerOperationError(f"Failed to inspect {name}: {e}") from e

        state = attrs.get("State", {})
        return ContainerStatus(
            name=name,
            state=ContainerState(state.get("Status", "dead")),
            exit_code=state.get("ExitCode"),
            image=attrs.get("Config", {}).get("Image", ""),
            image_id=attrs.get("Image") or "",
            repo_digests=tuple(repo_digests),
        )

    async def logs(self, name: str, tail: int = 50) -> str:
        def _logs() -> str:
            try:
                raw = self._client.containers.get(name).logs(
                    stdout=True, stderr=True, tail=tail
                )
            except NotFound:
                return ""
            return raw.decode("utf-8", errors="replace")

        try:
            return await asyncio.to_thread(_logs)
        except (APIError, OSError) as e:
            raise ContainerOperationError(f"Failed to read logs for {name}: {e}") from e


class SimulatedContainerRuntime(ContainerRuntime):
    """Simulated runtime for development/testing.

    Keeps containers in a dict keyed by name and lets callers script
    failures per image reference: launch errors, containers that never
    reach running, containers that crash right after start, and a number
    of transient stop failures.
    """

    def __init__(
        self,
        available: bool = True,
        stop_failures: int = 0,
        launch_failures: set[str] | None = None,
        never_running: set[str] | None = None,
        crashing: set[str] | None = None,
        logs_by_image: dict[str, str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.available = available
        self.stop_failures = stop_failures
        self.launch_failures = launch_failures or set()
        self.never_running = never_running or set()
        self.crashing = crashing or set()
        self.logs_by_image = logs_by_image or {}
        self._delay = delay
        self._containers: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []

    def seed(
        self,
        name: str,
        image: str,
        state: ContainerState = ContainerState.RUNNING,
        repo_digests: tuple[str, ...] = (),
    ) -> None:
        """Place a pre-existing container, as left behind by an earlier deploy."""
        self._containers[name] = {
            "image": image,
            "state": state,
            "exit_code": None,
            "image_id": "",
            "repo_digests": repo_digests,
        }

    def container(self, name: str) -> dict[str, Any] | None:
        return self._containers.get(name)

    def calls_to(self, operation: str) -> list[str]:
        return [arg for op, arg in self.calls if op == operation]

    async def _tick(self) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)

    async def ensure_available(self) -> None:
        self.calls.append(("ensure_available", ""))
        await self._tick()
        if not self.available:
            raise RuntimeUnavailableError("Simulated runtime is down")

    async def stop(self, name: str) -> StopResult:
        self.calls.append(("stop", name))
        await self._tick()
        if self.stop_failures > 0:
            self.stop_failures -= 1
            raise ContainerOperationError(f"Simulated stop failure for {name}")
        container = self._containers.get(name)
        if container is None:
            return StopResult.ABSENT
        container["state"] = ContainerState.EXITED
        container["exit_code"] = 0
        return StopResult.STOPPED

    async def remove(self, name: str) -> RemoveResult:
        self.calls.append(("remove", name))
        await self._tick()
        if self._containers.pop(name, None) is None:
            return RemoveResult.ABSENT
        return RemoveResult.REMOVED

    async def run(
        self,
        name: str,
        image: LocalImageHandle,
        port_binding: PortBinding,  # noqa: ARG002
        restart_policy: RestartPolicy,  # noqa: ARG002
    ) -> None:
        reference = image.run_reference
        self.calls.append(("run", reference))
        await self._tick()
        if name in self._containers:
            raise ContainerLaunchError(f"Conflict: container name {name} already in use")
        if reference in self.launch_failures:
            raise ContainerLaunchError(f"Simulated launch failure for {reference}")

        if reference in self.crashing:
            state, exit_code = ContainerState.EXITED, 1
        elif reference in self.never_running:
            state, exit_code = ContainerState.CREATED, None
        else:
            state, exit_code = ContainerState.RUNNING, None
        self._containers[name] = {
            "image": reference,
            "state": state,
            "exit_code": exit_code,
            "image_id": image.image_id,
            "repo_digests": image.repo_digests,
        }

    async def inspect(self, name: str) -> ContainerStatus:
        self.calls.append(("inspect", name))
        await self._tick()
        container = self._containers.get(name)
        if container is None:
            raise ContainerNotFoundError(f"No container named {name}")
        return ContainerStatus(
            name=name,
            state=container["state"],
            exit_code=container["exit_code"],
            image=container["image"],
            image_id=container["image_id"],
            repo_digests=container["repo_digests"],
        )

    async def logs(self, name: str, tail: int = 50) -> str:
        container = self._containers.get(name)
        if container is None:
            return ""
        lines = self.logs_by_image.get(container["image"], "").splitlines()
        return "\n".join(lines[-tail:])


def create_docker_client(settings: RuntimeSettings) -> docker.DockerClient:
    """Factory function to create a Docker client.

    A pinned API version keeps construction offline; the daemon is first
    contacted by the readiness check.
    """
    return docker.DockerClient(
        base_url=settings.docker_base_url,
        version=settings.docker_api_version or DEFAULT_DOCKER_API_VERSION,
        timeout=60,
    )
