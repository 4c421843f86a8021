"""Value objects exchanged with the container runtime and health oracle."""

from __future__ import annotations

from enum import Enum

from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.base import ValueObject


class ContainerState(str, Enum):
    """Process-manager states reported by the runtime."""

    CREATED = "created"
    RUNNING = "running"
    RESTARTING = "restarting"
    PAUSED = "paused"
    EXITED = "exited"
    DEAD = "dead"
    REMOVING = "removing"

    @property
    def is_final(self) -> bool:
        return self in {ContainerState.EXITED, ContainerState.DEAD}


class StopResult(str, Enum):
    STOPPED = "stopped"
    ABSENT = "absent"


class RemoveResult(str, Enum):
    REMOVED = "removed"
    ABSENT = "absent"


class RestartPolicy(str, Enum):
    NO = "no"
    ALWAYS = "always"
    UNLESS_STOPPED = "unless-stopped"
    ON_FAILURE = "on-failure"


class PortBinding(ValueObject):
    host_port: int = 80
    container_port: int = 80
    protocol: str = "tcp"

    def __str__(self) -> str:
        return f"{self.host_port}:{self.container_port}/{self.protocol}"


class ContainerStatus(ValueObject):
    """Result of inspecting a named container."""

    name: str
    state: ContainerState
    exit_code: int | None = None
    image: str = ""
    image_id: str = ""
    repo_digests: tuple[str, ...] = ()

    @property
    def is_running(self) -> bool:
        return self.state == ContainerState.RUNNING

    @property
    def running_reference(self) -> ArtifactReference | None:
        """Immutable reference to the image the container was started from.

        A repository digest matching the configured repository wins, then any
        repository digest, then the configured reference itself. A configured
        value that is a bare image id names no repository and is not usable.
        """
        configured: ArtifactReference | None = None
        if self.image and not self.image.startswith("sha256:"):
            try:
                configured = ArtifactReference.parse(self.image)
            except ValueError:
                configured = None

        digests = [ArtifactReference.parse(d) for d in self.repo_digests if "@" in d]
        for digest in digests:
            if configured is None or digest.repository == configured.repository:
                return digest
        if digests:
            return digests[0]
        return configured


class ProbeResult(ValueObject):
    """One HTTP liveness probe against the service."""

    http_status: int
    body_snippet: str = ""
    latency_ms: float = 0.0


class HealthVerdict(ValueObject):
    """Outcome of evaluating one probe round against all health signals."""

    healthy: bool
    process_running: bool
    http_ok: bool
    content_ok: bool
    latency_ok: bool
    reason: str = ""
