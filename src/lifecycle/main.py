"""Application entrypoint."""

from __future__ import annotations

import uvicorn

from lifecycle.api.app import create_app
from lifecycle.config import get_settings, Environment
from lifecycle.infrastructure.observability.logging import setup_logging
from lifecycle.infrastructure.observability.tracing import setup_tracing


app = create_app()


def main() -> None:
    """Run the application."""
    settings = get_settings()
    setup_logging(
        settings.observability.log_level,
        json_output=settings.environment != Environment.DEVELOPMENT,
    )
    setup_tracing(settings.observability)

    # One process per host: per-target exclusion without Redis is in-process.
    uvicorn.run(
        "lifecycle.main:app",
        host=settings.host,
        port=settings.port,
        workers=1,
        reload=settings.debug,
        log_level=settings.observability.log_level.lower(),
    )


if __name__ == "__main__":
    main()
