"""
Transcript Search Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures exception handling and logging, and owns the lifecycle of the
background vectorization worker.

Design Goals
------------
- Explicit dependency initialization order
- Centralized router registration
- Domain errors mapped to status codes, with a global safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import register_exception_handlers
from .embeddings.queue import job_queue, process_vectorize_worker_task
from .api.dependencies import vectorizer_session

from .api import (
    health_routes,
    search_routes,
    vectorize_routes,
)


logger = logging.getLogger("transcripts.app")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Start the vectorize worker on startup and cancel it on shutdown.
    """
    logger.info("Starting transcript-search")

    if not settings.openai_api_key.get_secret_value():
        logger.warning("OPENAI_API_KEY is not set; embedding calls will fail")
    if settings.admin_api_key is None:
        logger.warning("ADMIN_API_KEY is not set; admin routes will reject every request")

    worker = None
    if settings.run_vectorize_worker:
        worker = asyncio.create_task(
            process_vectorize_worker_task(job_queue, vectorizer_session),
            name="vectorize-worker",
        )

    try:
        yield
    finally:
        logger.info("Shutting down transcript-search")
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="transcript-search",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health_routes.router)
    app.include_router(vectorize_routes.router)
    app.include_router(search_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
