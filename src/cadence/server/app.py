"""FastAPI application for the Cadence job API."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cadence.errors import (
    CadenceError,
    InvalidSpecError,
    InvalidTenantError,
    JobExistsError,
    NotFoundError,
)
from cadence.jobs.validation import error_entry
from cadence.server.routes import health, jobs

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from cadence.engine import CadenceEngine

logger = logging.getLogger(__name__)


def error_response(status_code: int, errors: list[dict[str, Any]]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"status": "error", "errors": errors}
    )


class CadenceServer:
    """Main server application.

    Owns the FastAPI app; the engine is started and stopped by its lifespan.
    """

    def __init__(self, engine: "CadenceEngine"):
        self._engine = engine
        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self._app

    def _create_app(self) -> FastAPI:
        """Create and configure the FastAPI app."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> "AsyncIterator[None]":
            logger.info("server_starting")
            await self._engine.start()

            yield

            logger.info("server_shutting_down")
            await self._engine.stop()

        app = FastAPI(
            title="Cadence",
            description="Multi-tenant scheduled-action API",
            version="0.1.0",
            lifespan=lifespan,
        )

        app.state.server = self
        app.state.engine = self._engine

        app.include_router(health.router, tags=["health"])
        app.include_router(jobs.router, prefix="/cron/v1", tags=["jobs"])

        self._register_error_handlers(app)
        return app

    def _register_error_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(InvalidSpecError)
        async def invalid_spec(request: Request, exc: InvalidSpecError) -> JSONResponse:
            errors = exc.errors or [error_entry(exc.field or "spec", str(exc))]
            return error_response(400, errors)

        @app.exception_handler(InvalidTenantError)
        async def invalid_tenant(
            request: Request, exc: InvalidTenantError
        ) -> JSONResponse:
            return error_response(400, [error_entry("tenant", str(exc))])

        @app.exception_handler(NotFoundError)
        async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
            return error_response(404, [error_entry("notfound")])

        @app.exception_handler(JobExistsError)
        async def job_exists(request: Request, exc: JobExistsError) -> JSONResponse:
            return error_response(409, [error_entry("jobId", str(exc))])

        @app.exception_handler(CadenceError)
        async def internal(request: Request, exc: CadenceError) -> JSONResponse:
            logger.error(
                "request_failed",
                extra={
                    "http.path": request.url.path,
                    "error.type": type(exc).__name__,
                    "error.message": str(exc),
                },
            )
            return error_response(500, [error_entry("internal")])


def create_app(engine: "CadenceEngine") -> FastAPI:
    """Create the FastAPI application."""
    return CadenceServer(engine).app
