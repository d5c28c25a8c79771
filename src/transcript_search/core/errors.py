"""
Errors and Global Error Handling

This module defines the domain exceptions raised by the chunking, embedding
and search pipeline, and the FastAPI exception handlers that translate them
into HTTP responses.

Design Goals
------------
- One exception type per failure class (decode, embedding, lookup, storage)
- Never leak internal exception details for unexpected failures
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("transcripts.errors")


# ---------------------------------------------------------------------
# Domain Exceptions
# ---------------------------------------------------------------------

class TranscriptSearchError(RuntimeError):
    """Base class for all pipeline errors."""

    status_code = 500
    error_code = "internal_server_error"


class DecodeError(TranscriptSearchError):
    """Raised when a token id sequence cannot be decoded to text."""

    status_code = 422
    error_code = "decode_error"


class EmbeddingError(TranscriptSearchError):
    """Raised when embedding generation fails."""

    status_code = 502
    error_code = "embedding_error"


class SourceNotFoundError(TranscriptSearchError):
    """Raised when a segment id has no backing row."""

    status_code = 404
    error_code = "source_not_found"

    def __init__(self, segment_id: int) -> None:
        super().__init__(f"Segment {segment_id} not found")
        self.segment_id = segment_id


class PersistenceError(TranscriptSearchError):
    """Raised when a chunk store operation fails."""

    status_code = 503
    error_code = "persistence_error"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def pipeline_exception_handler(
    request: Request,
    exc: TranscriptSearchError,
) -> JSONResponse:
    """
    Translate a domain exception into its HTTP status code.

    The exception message is returned to the caller; these messages are
    written by this package and never contain stack traces or secrets.
    """
    logger.warning(
        "%s during request %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.error_code,
        "detail": str(exc),
    }

    return JSONResponse(status_code=exc.status_code, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain and catch-all handlers to an application."""
    app.add_exception_handler(TranscriptSearchError, pipeline_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
