"""Artifact reference value objects."""

from __future__ import annotations

from pydantic import Field, model_validator

from lifecycle.domain.models.base import ValueObject


DEFAULT_TAG = "latest"


class ArtifactReference(ValueObject):
    """An exact, pullable image reference: repository plus tag or digest."""

    repository: str = Field(..., min_length=1)
    tag: str | None = None
    digest: str | None = None

    @model_validator(mode="after")
    def _check_reference(self) -> ArtifactReference:
        if self.tag and self.digest:
            raise ValueError("Artifact reference takes a tag or a digest, not both")
        if any(ch.isspace() for ch in self.repository):
            raise ValueError(f"Invalid repository name: {self.repository!r}")
        return self

    @classmethod
    def parse(cls, value: str) -> ArtifactReference:
        """Parse ``repo[:tag]`` or ``repo@digest``; a bare repository gets ``latest``."""
        value = value.strip()
        if not value:
            raise ValueError("Artifact reference must not be empty")

        if "@" in value:
            repository, digest = value.split("@", 1)
            if not digest:
                raise ValueError(f"Missing digest in artifact reference: {value!r}")
            return cls(repository=repository, digest=digest)

        # Only a colon in the last path segment is a tag; earlier ones are registry ports.
        slash = value.rfind("/")
        colon = value.rfind(":")
        if colon > slash:
            repository, tag = value[:colon], value[colon + 1:]
            if not tag:
                raise ValueError(f"Missing tag in artifact reference: {value!r}")
            return cls(repository=repository, tag=tag)

        return cls(repository=value, tag=DEFAULT_TAG)

    @property
    def version(self) -> str:
        return self.digest or self.tag or DEFAULT_TAG

    def __str__(self) -> str:
        if self.digest:
            return f"{self.repository}@{self.digest}"
        return f"{self.repository}:{self.tag or DEFAULT_TAG}"


class LocalImageHandle(ValueObject):
    """An artifact that has been fetched onto the host and can be launched."""

    reference: ArtifactReference
    image_id: str
    size_bytes: int = 0
    repo_digests: tuple[str, ...] = ()

    @property
    def run_reference(self) -> str:
        return str(self.reference)
