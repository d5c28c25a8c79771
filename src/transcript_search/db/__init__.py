"""
Database Package

Provides SQLAlchemy async session management, model definitions, and the
chunk and segment stores for PostgreSQL with pgvector.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal, init_models
from .models import Base, Module, Segment, TranscriptChunk
from .chunk_store import ChunkStore, PgChunkStore, InMemoryChunkStore
from .sources import SourceRepository, SegmentRepository, InMemorySegmentRepository

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "init_models",
    "Base",
    "Module",
    "Segment",
    "TranscriptChunk",
    "ChunkStore",
    "PgChunkStore",
    "InMemoryChunkStore",
    "SourceRepository",
    "SegmentRepository",
    "InMemorySegmentRepository",
]
