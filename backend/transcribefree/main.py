"""ASGI entry-point for the FastAPI application.

This module
1. instantiates the :class:`fastapi.FastAPI` application;
2. wires the upload, session and export routers located in ``transcribefree.api``;
3. registers global exception handlers and middleware; and
4. performs a few start-up sanity checks (log directory, staging locations
   writable, media tools present) and releases every live session on shutdown.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from transcribefree.api import api_router
from transcribefree.config import settings
from transcribefree.errors import AppBaseException
from transcribefree.logging_config import LOG_DIR as APP_LOG_DIR
from transcribefree.logging_config import setup_logging
from transcribefree.services.analytics import analytics
from transcribefree.services.workflow import SessionRegistry, WorkflowError
from transcribefree.utils import storage
from transcribefree.utils.ffmpeg import ffmpeg_available, ffprobe_available


# ---------------------------------------------------------------------------
# Logging must be configured as soon as possible so that any errors during
# import/start-up are captured.
# ---------------------------------------------------------------------------
setup_logging()
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:  # noqa: D401 – factory nomenclature is fine
    """Wire and return the FastAPI application instance."""

    app = FastAPI(
        title="TranscribeFree API",
        version="0.1.0",
        docs_url="/api/docs",
    )
    app.state.sessions = SessionRegistry()

    # ------------------------------------------------------------------
    # Start-up checks and shutdown cleanup
    # ------------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_checks() -> None:  # noqa: D401
        logger.info("Running start-up checks …")

        for path in (APP_LOG_DIR, storage.DATA_ROOT, storage.UPLOAD_DIR, storage.CONVERTED_DIR):
            try:
                storage.ensure_dir_exists(Path(path))
            except OSError as exc:
                logger.critical("Cannot create/access directory %s – %s", path, exc)
            else:
                writable = os.access(str(path), os.W_OK)
                logger.info("Directory %s is %swritable", path, "" if writable else "NOT ")

        if not ffprobe_available():
            logger.warning("ffprobe not found at '%s'; durations will be estimated from file size", settings.FFPROBE_PATH)
        if not ffmpeg_available():
            logger.warning("ffmpeg not found at '%s'; local format conversion is disabled", settings.FFMPEG_PATH)
        if not settings.transcription_configured:
            logger.warning("TRANSCRIBE_URL is not set; previews will use demo transcripts")

        logger.info("Start-up checks finished.")

    @app.on_event("shutdown")
    async def _release_sessions() -> None:  # noqa: D401
        app.state.sessions.close_all()
        await analytics.drain()

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(  # noqa: D401
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("Request validation error: %s", exc.errors())
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(  # noqa: D401
        _request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("HTTP exception %s: %s", exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(WorkflowError)
    async def _workflow_error_handler(  # noqa: D401
        _request: Request,
        exc: WorkflowError,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.warning("Rejected workflow transition: %s", exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(AppBaseException)
    async def _app_error_handler(  # noqa: D401
        _request: Request,
        exc: AppBaseException,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("Application exception: %s", exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def _generic_error_handler(  # noqa: D401
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    # ------------------------------------------------------------------
    # Miscellaneous endpoints
    # ------------------------------------------------------------------

    @app.get("/api/health")
    async def _health() -> dict[str, str]:  # noqa: D401
        return {"status": "ok"}

    return app


# Instantiate at import time so `uvicorn transcribefree.main:app` works.
app: FastAPI = create_app()
