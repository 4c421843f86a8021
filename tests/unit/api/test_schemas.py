"""Unit tests for API schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lifecycle.api.schemas.attempt_schemas import AttemptResponse, CreateAttemptRequest
from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.models.attempt import (
    DeploymentAttempt,
    Phase,
    PhaseRecord,
    PhaseResult,
)


class TestCreateAttemptRequest:
    def test_defaults_to_background(self) -> None:
        request = CreateAttemptRequest(target_id="web-1", artifact="shop/web:v2")
        assert request.wait is False

    def test_empty_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateAttemptRequest(target_id="", artifact="shop/web:v2")
        with pytest.raises(ValidationError):
            CreateAttemptRequest(target_id="web-1", artifact="")


class TestAttemptResponse:
    def test_from_new_attempt(self, sample_attempt: DeploymentAttempt) -> None:
        response = AttemptResponse.from_attempt(sample_attempt)
        assert response.id == sample_attempt.id
        assert response.artifact == "shop/web:v2"
        assert response.previous_artifact is None
        assert response.phase == Phase.IDLE
        assert response.outcome is None
        assert response.phase_log == []
        assert response.duration_seconds == 0.0

    def test_from_attempt_in_progress(self, sample_attempt: DeploymentAttempt) -> None:
        sample_attempt.enter_phase(Phase.BEFORE_INSTALL)
        sample_attempt.set_previous_artifact(ArtifactReference.parse("shop/web:v1"))
        sample_attempt.record_phase(
            PhaseRecord(phase=Phase.BEFORE_INSTALL, result=PhaseResult.SUCCEEDED)
        )

        response = AttemptResponse.from_attempt(sample_attempt)
        assert response.previous_artifact == "shop/web:v1"
        assert response.phase == Phase.BEFORE_INSTALL
        assert response.started_at is not None
        record = response.phase_log[0]
        assert record.phase == Phase.BEFORE_INSTALL
        assert record.artifact == "shop/web:v2"
        assert record.rollback is False
