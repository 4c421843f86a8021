"""Artifact source implementations."""

from __future__ import annotations

import asyncio
import hashlib

import docker
import structlog
from docker.errors import APIError, DockerException, NotFound

from lifecycle.config import RegistrySettings
from lifecycle.domain.models.artifact import ArtifactReference, LocalImageHandle
from lifecycle.domain.ports.services import (
    ArtifactNotFoundError,
    ArtifactSource,
    ArtifactTransferError,
)


logger = structlog.get_logger(__name__)


class DockerRegistryArtifactSource(ArtifactSource):
    """Pulls images from a registry into the local Docker image store.

    Tags are always re-pulled since they may have moved. Digest references
    are immutable and are served from the local store when present.
    """

    def __init__(self, client: docker.DockerClient, settings: RegistrySettings | None = None) -> None:
        self._client = client
        self._settings = settings or RegistrySettings()
        self._logged_in = False

    def _login(self) -> None:
        if self._logged_in or not self._settings.has_credentials:
            return
        self._client.login(
            username=self._settings.username,
            password=self._settings.password,
            registry=self._settings.host or None,
        )
        self._logged_in = True
        logger.info("registry_login", registry=self._settings.host or "docker.io")

    def _pull(self, reference: ArtifactReference) -> LocalImageHandle:
        if reference.digest:
            try:
                image = self._client.images.get(str(reference))
                return self._handle(reference, image)
            except NotFound:
                pass

        self._login()
        image = self._client.images.pull(
            reference.repository, tag=reference.digest or reference.tag
        )
        return self._handle(reference, image)

    @staticmethod
    def _handle(reference: ArtifactReference, image: object) -> LocalImageHandle:
        attrs = getattr(image, "attrs", {}) or {}
        return LocalImageHandle(
            reference=reference,
            image_id=getattr(image, "id", "") or "",
            size_bytes=attrs.get("Size", 0),
            repo_digests=tuple(attrs.get("RepoDigests") or ()),
        )

    async def resolve(self, reference: ArtifactReference) -> LocalImageHandle:
        try:
            handle = await asyncio.to_thread(self._pull, reference)
        except NotFound as e:
            raise ArtifactNotFoundError(str(e)) from e
        except (APIError, DockerException, OSError) as e:
            raise ArtifactTransferError(str(e)) from e

        logger.info(
            "artifact_resolved",
            artifact=str(reference),
            image_id=handle.image_id,
            size_bytes=handle.size_bytes,
        )
        return handle


class SimulatedArtifactSource(ArtifactSource):
    """Simulated artifact source for development/testing.

    Knows a fixed catalogue of references; anything else is reported as
    not found unless ``accept_any`` is set. References in
    ``transfer_failures`` exist but fail to fetch.
    """

    def __init__(
        self,
        known: set[str] | None = None,
        transfer_failures: set[str] | None = None,
        accept_any: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.known = {str(ArtifactReference.parse(r)) for r in known or ()}
        self.transfer_failures = {
            str(ArtifactReference.parse(r)) for r in transfer_failures or ()
        }
        self.accept_any = accept_any
        self._delay = delay
        self.resolved: list[str] = []

    def publish(self, reference: str) -> None:
        """Make a reference available, as if it had been pushed."""
        self.known.add(str(ArtifactReference.parse(reference)))

    async def resolve(self, reference: ArtifactReference) -> LocalImageHandle:
        if self._delay:
            await asyncio.sleep(self._delay)
        key = str(reference)
        if key in self.transfer_failures:
            raise ArtifactTransferError(f"Simulated transfer failure for {key}")
        if key not in self.known and not self.accept_any:
            raise ArtifactNotFoundError(f"manifest for {key} not found")

        self.resolved.append(key)
        image_id = "sha256:" + hashlib.sha256(key.encode()).hexdigest()
        repo_digest = key if reference.digest else f"{reference.repository}@{image_id}"
        # A pulled tag stays reachable by its digest.
        self.known.add(repo_digest)
        return LocalImageHandle(
            reference=reference,
            image_id=image_id,
            size_bytes=50 * 1024 * 1024,
            repo_digests=(repo_digest,),
        )
