"""Unit tests for middleware components."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lifecycle.api.middleware.correlation import (
    CORRELATION_HEADER,
    correlation_id_ctx,
    CorrelationIdMiddleware,
    get_correlation_id,
)


def _echo_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)

    @app.get("/echo")
    async def echo() -> dict[str, str]:
        bound = structlog.contextvars.get_contextvars()
        return {"ctx": get_correlation_id(), "log": bound.get("correlation_id", "")}

    return app


class TestCorrelationId:
    def test_default_empty(self) -> None:
        token = correlation_id_ctx.set("")
        assert get_correlation_id() == ""
        correlation_id_ctx.reset(token)

    def test_set_and_get(self) -> None:
        token = correlation_id_ctx.set("deploy-web-1")
        assert get_correlation_id() == "deploy-web-1"
        correlation_id_ctx.reset(token)

    def test_header_bound_for_request(self) -> None:
        client = TestClient(_echo_app())
        response = client.get("/echo", headers={CORRELATION_HEADER: "req-7"})
        assert response.json() == {"ctx": "req-7", "log": "req-7"}
        assert response.headers[CORRELATION_HEADER] == "req-7"

    def test_generated_when_missing(self) -> None:
        client = TestClient(_echo_app())
        response = client.get("/echo")
        generated = response.headers[CORRELATION_HEADER]
        assert generated
        assert response.json()["ctx"] == generated
