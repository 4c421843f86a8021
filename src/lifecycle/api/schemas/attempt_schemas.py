"""API schemas for deployment attempt endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from lifecycle.domain.models.attempt import (
    AttemptOutcome,
    DeploymentAttempt,
    Phase,
    PhaseResult,
)


class CreateAttemptRequest(BaseModel):
    target_id: str = Field(..., min_length=1, max_length=200)
    artifact: str = Field(..., min_length=1, max_length=500, examples=["shop/web:v2"])
    wait: bool = Field(
        default=False,
        description="Block until the attempt is terminal instead of returning 202",
    )


class PhaseRecordResponse(BaseModel):
    phase: Phase
    result: PhaseResult
    rollback: bool
    artifact: str
    started_at: datetime
    duration_seconds: float
    tries: int
    message: str = ""
    error_type: str = ""


class AttemptResponse(BaseModel):
    id: str
    target_id: str
    container_name: str
    artifact: str
    previous_artifact: str | None = None
    phase: Phase
    outcome: AttemptOutcome | None = None
    rolling_back: bool
    failed_phase: Phase | None = None
    error_type: str = ""
    error_message: str = ""
    phase_log: list[PhaseRecordResponse] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float = 0.0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_attempt(cls, attempt: DeploymentAttempt) -> AttemptResponse:
        """Map domain model to API response."""
        return cls(
            id=attempt.id,
            target_id=attempt.target_id,
            container_name=attempt.container_name,
            artifact=str(attempt.artifact),
            previous_artifact=(
                str(attempt.previous_artifact) if attempt.previous_artifact else None
            ),
            phase=attempt.phase,
            outcome=attempt.outcome,
            rolling_back=attempt.rolling_back,
            failed_phase=attempt.failed_phase,
            error_type=attempt.error_type,
            error_message=attempt.error_message,
            phase_log=[PhaseRecordResponse(**r.model_dump()) for r in attempt.phase_log],
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            duration_seconds=attempt.duration_seconds,
            created_at=attempt.created_at,
            updated_at=attempt.updated_at,
        )


class AttemptListResponse(BaseModel):
    target_id: str
    items: list[AttemptResponse]
    count: int
