"""Deployment attempt API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Response,
    status,
)

from lifecycle.api.dependencies.services import get_service_container, ServiceContainer
from lifecycle.api.schemas.attempt_schemas import (
    AttemptListResponse,
    AttemptResponse,
    CreateAttemptRequest,
)
from lifecycle.domain.models.artifact import ArtifactReference
from lifecycle.domain.services.lifecycle_coordinator import (
    AttemptNotFoundError,
    LifecycleCoordinator,
    TargetBusyError,
)


router = APIRouter(prefix="/attempts", tags=["attempts"])


async def _get_coordinator(
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> LifecycleCoordinator:
    return container.coordinator


@router.post(
    "",
    response_model=AttemptResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={201: {"model": AttemptResponse}},
)
async def create_attempt(
    request: CreateAttemptRequest,
    response: Response,
    coordinator: Annotated[LifecycleCoordinator, Depends(_get_coordinator)],
) -> AttemptResponse:
    """Deploy an artifact to a target.

    With ``wait`` the call returns once the attempt is terminal (201);
    otherwise the attempt runs in the background and can be polled (202).
    """
    try:
        reference = ArtifactReference.parse(request.artifact)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    try:
        if request.wait:
            attempt = await coordinator.deploy(request.target_id, reference)
            response.status_code = status.HTTP_201_CREATED
        else:
            attempt = await coordinator.submit(request.target_id, reference)
    except TargetBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return AttemptResponse.from_attempt(attempt)


@router.get("", response_model=AttemptListResponse)
async def list_attempts(
    coordinator: Annotated[LifecycleCoordinator, Depends(_get_coordinator)],
    target_id: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AttemptListResponse:
    """List attempts for a target, newest first."""
    attempts = await coordinator.list_attempts(target_id, limit=limit, offset=offset)
    return AttemptListResponse(
        target_id=target_id,
        items=[AttemptResponse.from_attempt(a) for a in attempts],
        count=len(attempts),
    )


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(
    attempt_id: str,
    coordinator: Annotated[LifecycleCoordinator, Depends(_get_coordinator)],
) -> AttemptResponse:
    try:
        attempt = await coordinator.get_attempt(attempt_id)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AttemptResponse.from_attempt(attempt)


@router.post("/{attempt_id}/abort", response_model=AttemptResponse)
async def abort_attempt(
    attempt_id: str,
    coordinator: Annotated[LifecycleCoordinator, Depends(_get_coordinator)],
) -> AttemptResponse:
    """Ask an in-flight attempt to give up its current phase."""
    try:
        attempt = await coordinator.abort(attempt_id)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AttemptResponse.from_attempt(attempt)
