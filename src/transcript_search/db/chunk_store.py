"""
Chunk Store

Persistence and similarity search for transcript chunks.

Two implementations share the `ChunkStore` interface:

- `PgChunkStore`: PostgreSQL + pgvector, using the `<=>` cosine distance
  operator and joining chunks with their segment and module at query time.
- `InMemoryChunkStore`: numpy cosine similarity over chunks held in memory,
  with the same commit / rollback visibility rules as a database session.

Both guarantee a unique `(segment_id, chunk_index)` per chunk and order
search hits by descending similarity, then ascending chunk id.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Module, Segment, TranscriptChunk
from .sources import InMemorySegmentRepository
from ..core.errors import PersistenceError
from ..embeddings.models import Chunk, ChunkCounts, SearchResult, StoredChunk


class ChunkStore(ABC):
    """
    Storage boundary for transcript chunks.

    Mutations become durable on `commit()`; `rollback()` discards every
    mutation since the last commit.
    """

    @abstractmethod
    async def add_chunks(self, segment_id: int, chunks: Sequence[Chunk]) -> int:
        """Insert chunks for a segment. Returns the number inserted."""

    @abstractmethod
    async def delete_chunks(self, segment_id: int) -> int:
        """Remove every chunk of a segment. Returns the number removed."""

    @abstractmethod
    async def get_chunks(self, segment_id: int) -> List[StoredChunk]:
        """Return a segment's chunks ordered by chunk index."""

    @abstractmethod
    async def count_by_source(self, segment_ids: Iterable[int]) -> Dict[int, ChunkCounts]:
        """Chunk totals per segment; segments without chunks are omitted."""

    @abstractmethod
    async def total_chunks(self) -> int:
        """Number of chunks in the store."""

    @abstractmethod
    async def count_missing_embeddings(self) -> int:
        """Number of chunks without an embedding."""

    @abstractmethod
    async def search(self, query_embedding: List[float], limit: int = 10) -> List[SearchResult]:
        """Return the `limit` embedded chunks closest to the query vector."""

    @abstractmethod
    async def commit(self) -> None:
        """Make pending mutations durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard pending mutations."""


# ---------------------------------------------------------------------
# PostgreSQL + pgvector
# ---------------------------------------------------------------------

class PgChunkStore(ChunkStore):
    """
    PostgreSQL-backed chunk store using pgvector for similarity search.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Commit failed: {type(exc).__name__}") from exc

    async def rollback(self) -> None:
        await self._session.rollback()

    async def add_chunks(self, segment_id: int, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0

        self._session.add_all(
            [
                TranscriptChunk(
                    segment_id=segment_id,
                    chunk_index=chunk.index,
                    chunk_text=chunk.text,
                    token_count=chunk.token_count,
                    embedding=chunk.embedding,
                )
                for chunk in chunks
            ]
        )

        try:
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to insert {len(chunks)} chunks for segment {segment_id}: "
                f"{type(exc).__name__}"
            ) from exc

        return len(chunks)

    async def delete_chunks(self, segment_id: int) -> int:
        stmt = delete(TranscriptChunk).where(TranscriptChunk.segment_id == segment_id)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to delete chunks for segment {segment_id}: {type(exc).__name__}"
            ) from exc
        return result.rowcount or 0

    async def get_chunks(self, segment_id: int) -> List[StoredChunk]:
        stmt = (
            select(TranscriptChunk)
            .where(TranscriptChunk.segment_id == segment_id)
            .order_by(TranscriptChunk.chunk_index)
        )
        result = await self._execute(stmt)

        return [
            StoredChunk(
                id=row.id,
                segment_id=row.segment_id,
                chunk_index=row.chunk_index,
                chunk_text=row.chunk_text,
                token_count=row.token_count,
                embedding=[float(x) for x in row.embedding] if row.embedding is not None else None,
            )
            for row in result.scalars().all()
        ]

    async def count_by_source(self, segment_ids: Iterable[int]) -> Dict[int, ChunkCounts]:
        ids = list(segment_ids)
        if not ids:
            return {}

        stmt = (
            select(
                TranscriptChunk.segment_id,
                func.count(TranscriptChunk.id).label("total"),
                func.count(TranscriptChunk.embedding).label("embedded"),
            )
            .where(TranscriptChunk.segment_id.in_(ids))
            .group_by(TranscriptChunk.segment_id)
        )
        result = await self._execute(stmt)

        return {
            row.segment_id: ChunkCounts(total=row.total, embedded=row.embedded)
            for row in result.all()
        }

    async def total_chunks(self) -> int:
        result = await self._execute(select(func.count()).select_from(TranscriptChunk))
        return result.scalar() or 0

    async def count_missing_embeddings(self) -> int:
        stmt = (
            select(func.count())
            .select_from(TranscriptChunk)
            .where(TranscriptChunk.embedding.is_(None))
        )
        result = await self._execute(stmt)
        return result.scalar() or 0

    async def search(self, query_embedding: List[float], limit: int = 10) -> List[SearchResult]:
        """
        Search for similar chunks using cosine similarity.

        Similarity is reported as `1 - cosine_distance`. pgvector yields NaN
        for a zero vector; those rows report 0.0.
        """
        cosine_distance = TranscriptChunk.embedding.cosine_distance(query_embedding)

        stmt = (
            select(
                TranscriptChunk.id,
                TranscriptChunk.segment_id,
                TranscriptChunk.chunk_text,
                TranscriptChunk.chunk_index,
                (1 - cosine_distance).label("similarity"),
                Segment.title.label("segment_title"),
                Segment.slug.label("segment_slug"),
                Module.title.label("module_title"),
            )
            .join(Segment, TranscriptChunk.segment_id == Segment.id)
            .join(Module, Segment.module_id == Module.id)
            .where(TranscriptChunk.embedding.is_not(None))
            .order_by(cosine_distance, TranscriptChunk.id)
            .limit(limit)
        )

        result = await self._execute(stmt)

        return [
            SearchResult(
                id=row.id,
                segment_id=row.segment_id,
                chunk_text=row.chunk_text,
                chunk_index=row.chunk_index,
                similarity=_finite(row.similarity),
                segment_title=row.segment_title,
                segment_slug=row.segment_slug,
                module_title=row.module_title,
            )
            for row in result.all()
        ]

    async def _execute(self, stmt):
        try:
            return await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Chunk query failed: {type(exc).__name__}") from exc


def _finite(value) -> float:
    similarity = float(value) if value is not None else 0.0
    return 0.0 if math.isnan(similarity) else similarity


# ---------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------

class InMemoryChunkStore(ChunkStore):
    """
    Chunk store kept in process memory.

    Search joins chunks with `sources` the way the SQL store joins with the
    segment and module tables; chunks whose segment is unknown are skipped.
    """

    def __init__(self, sources: Optional[InMemorySegmentRepository] = None) -> None:
        self._sources = sources or InMemorySegmentRepository()
        self._committed: Dict[int, List[StoredChunk]] = {}
        self._working: Dict[int, List[StoredChunk]] = {}
        self._next_id = 1

    async def commit(self) -> None:
        self._committed = {k: list(v) for k, v in self._working.items()}

    async def rollback(self) -> None:
        self._working = {k: list(v) for k, v in self._committed.items()}

    async def add_chunks(self, segment_id: int, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0

        existing = self._working.get(segment_id, [])
        taken = {c.chunk_index for c in existing}
        dim = self._dimension()

        for chunk in chunks:
            if chunk.index in taken:
                raise PersistenceError(
                    f"Duplicate chunk index {chunk.index} for segment {segment_id}"
                )
            taken.add(chunk.index)

            if chunk.embedding is not None:
                if dim is not None and len(chunk.embedding) != dim:
                    raise PersistenceError(
                        f"Embedding has {len(chunk.embedding)} dimensions, store holds {dim}"
                    )
                dim = len(chunk.embedding)

        rows = list(existing)
        for chunk in chunks:
            rows.append(
                StoredChunk(
                    id=self._next_id,
                    segment_id=segment_id,
                    chunk_index=chunk.index,
                    chunk_text=chunk.text,
                    token_count=chunk.token_count,
                    embedding=chunk.embedding,
                )
            )
            self._next_id += 1

        self._working[segment_id] = rows
        return len(chunks)

    async def delete_chunks(self, segment_id: int) -> int:
        return len(self._working.pop(segment_id, []))

    async def get_chunks(self, segment_id: int) -> List[StoredChunk]:
        return sorted(self._working.get(segment_id, []), key=lambda c: c.chunk_index)

    async def count_by_source(self, segment_ids: Iterable[int]) -> Dict[int, ChunkCounts]:
        counts: Dict[int, ChunkCounts] = {}
        for segment_id in segment_ids:
            rows = self._working.get(segment_id)
            if rows:
                counts[segment_id] = ChunkCounts(
                    total=len(rows),
                    embedded=sum(1 for c in rows if c.embedding is not None),
                )
        return counts

    async def total_chunks(self) -> int:
        return sum(len(rows) for rows in self._working.values())

    async def count_missing_embeddings(self) -> int:
        return sum(
            1 for rows in self._working.values() for c in rows if c.embedding is None
        )

    async def search(self, query_embedding: List[float], limit: int = 10) -> List[SearchResult]:
        candidates = [
            c for rows in self._working.values() for c in rows if c.embedding is not None
        ]
        if not candidates or limit < 1:
            return []

        matrix = np.asarray([c.embedding for c in candidates], dtype="float64")
        query = np.asarray(query_embedding, dtype="float64")

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        ranked = sorted(
            zip(candidates, similarities.tolist()),
            key=lambda pair: (-pair[1], pair[0].id),
        )

        results: List[SearchResult] = []
        for chunk, similarity in ranked:
            source = await self._sources.get(chunk.segment_id)
            if source is None:
                continue

            results.append(
                SearchResult(
                    id=chunk.id,
                    segment_id=chunk.segment_id,
                    chunk_text=chunk.chunk_text,
                    chunk_index=chunk.chunk_index,
                    similarity=float(similarity),
                    segment_title=source.title,
                    segment_slug=source.slug,
                    module_title=source.module_title,
                )
            )
            if len(results) >= limit:
                break

        return results

    def _dimension(self) -> Optional[int]:
        for rows in self._working.values():
            for c in rows:
                if c.embedding is not None:
                    return len(c.embedding)
        return None
