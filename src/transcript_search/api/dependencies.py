"""
FastAPI dependencies: admin gate, pipeline components and stores.

The chunk and segment stores are bound to the request's database session.
Every vectorizer takes its per-segment lock from the process job queue.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated, AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import (
    AsyncSessionLocal,
    PgChunkStore,
    SegmentRepository,
    SourceRepository,
    get_async_session,
)
from ..embeddings.chunker import Chunker
from ..embeddings.embedder import Embedder
from ..embeddings.queue import JobQueue, job_queue
from ..embeddings.search import VectorSearch
from ..embeddings.tokenizer import Tokenizer
from ..embeddings.vectorizer import Vectorizer


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Verify the request is from an admin using the configured API key.
    Checks header first, then query param.
    """
    expected_key = settings.admin_api_key.get_secret_value() if settings.admin_api_key else None

    if not expected_key:
        # If no key is configured, disable admin access securely
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (ADMIN_API_KEY missing)"
        )

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key"
        )


# ---------------------------------------------------------------------
# Pipeline Components
# ---------------------------------------------------------------------

@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_tokenizer() -> Tokenizer:
    return Tokenizer(
        encoding_name=settings.tokenizer_encoding,
        yield_every=settings.tokenizer_yield_every,
    )


def get_chunker() -> Chunker:
    return Chunker(get_tokenizer(), settings.chunking_config())


def get_job_queue() -> JobQueue:
    return job_queue


# ---------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------

def build_vectorizer(session: AsyncSession) -> Vectorizer:
    return Vectorizer(
        sources=SegmentRepository(session),
        store=PgChunkStore(session),
        embedder=get_embedder(),
        chunker=get_chunker(),
        batch_size=settings.embedding_batch_size,
        atomic_replace=settings.atomic_replace,
        segment_lock=job_queue.segment_lock,
    )


@asynccontextmanager
async def vectorizer_session() -> AsyncIterator[Vectorizer]:
    """
    A vectorizer bound to a dedicated database session, for work that runs
    outside a request (the job worker and CLI).
    """
    async with AsyncSessionLocal() as session:
        try:
            yield build_vectorizer(session)
        except Exception:
            await session.rollback()
            raise


def get_source_repository(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> SourceRepository:
    return SegmentRepository(session)


def get_vectorizer(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> Vectorizer:
    return build_vectorizer(session)


def get_vector_search(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> VectorSearch:
    return VectorSearch(PgChunkStore(session), get_embedder())
