"""Health check and metrics routes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from lifecycle.api.dependencies.services import get_service_container, ServiceContainer
from lifecycle.domain.ports.services import RuntimeGatewayError


router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }


@router.get("/health/ready")
async def readiness_check(
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> JSONResponse:
    """Readiness check - the coordinator is only useful with a reachable runtime."""
    checks: dict[str, str] = {}

    try:
        await container.runtime.ensure_available()
        checks["runtime"] = "ok"
    except RuntimeGatewayError as e:
        checks["runtime"] = f"unavailable: {e}"

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
            "active_attempts": container.coordinator.active_attempt_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check - verifies the service is running."""
    return {"status": "alive"}


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus exposition of lifecycle metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
