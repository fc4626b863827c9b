"""
hookcatch API server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hookcatch import __version__
from hookcatch.api import router
from hookcatch.container import Container
from hookcatch.core.config import Settings, get_settings
from hookcatch.core.errors import PersistenceError

log = structlog.get_logger()


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    log.error("api.persistence_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"message": "Storage operation failed", "error": str(exc)},
    )


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    container = container or Container(settings)

    app = FastAPI(
        title="hookcatch",
        description="Local webhook capture with a live event feed.",
        version=__version__,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PersistenceError, persistence_error_handler)
    app.include_router(router)

    @app.on_event("startup")
    async def on_startup():
        await container.start()
        log.info(
            "hookcatch.starting",
            db_path=settings.db_path,
            webhook_url=f"http://localhost:{settings.port}/webhook",
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("hookcatch.shutting_down")
        await container.stop()

    return app


app = create_app()
