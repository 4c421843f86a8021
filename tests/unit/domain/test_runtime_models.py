"""Unit tests for runtime value objects."""

from __future__ import annotations

from lifecycle.domain.models.runtime import ContainerState, ContainerStatus


DIGEST = "shop/web@sha256:" + "a" * 64


def _status(image: str, repo_digests: tuple[str, ...] = ()) -> ContainerStatus:
    return ContainerStatus(
        name="ecommerce-app",
        state=ContainerState.RUNNING,
        image=image,
        repo_digests=repo_digests,
    )


class TestRunningReference:
    def test_digest_preferred_over_tag(self) -> None:
        ref = _status("shop/web:latest", (DIGEST,)).running_reference
        assert str(ref) == DIGEST

    def test_digest_matching_repository_wins(self) -> None:
        mirror = "mirror.local/shop/web@sha256:" + "b" * 64
        ref = _status("shop/web:latest", (mirror, DIGEST)).running_reference
        assert str(ref) == DIGEST

    def test_other_repository_digest_used_as_last_resort(self) -> None:
        mirror = "mirror.local/shop/web@sha256:" + "b" * 64
        ref = _status("shop/web:latest", (mirror,)).running_reference
        assert str(ref) == mirror

    def test_tag_without_digests(self) -> None:
        assert str(_status("shop/web:v1").running_reference) == "shop/web:v1"

    def test_bare_image_id_is_unusable(self) -> None:
        assert _status("sha256:" + "f" * 64).running_reference is None

    def test_bare_image_id_with_digest(self) -> None:
        ref = _status("sha256:" + "f" * 64, (DIGEST,)).running_reference
        assert str(ref) == DIGEST

    def test_empty_image(self) -> None:
        assert _status("").running_reference is None
