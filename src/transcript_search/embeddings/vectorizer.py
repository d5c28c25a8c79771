"""
Vectorization Orchestrator

Re-chunks and embeds segment transcripts, one segment or the whole corpus,
and reports vectorization status.

Replace semantics
-----------------
By default a segment's chunks are replaced delete-then-insert: the delete
is committed before chunking starts, so a failure afterwards leaves the
segment with no chunks until it is vectorized again. With
`atomic_replace=True` the delete is deferred and committed together with
the insert, leaving the previous chunks in place on failure.

Runs for the same segment are serialized through `segment_lock`, a
factory of per-segment async locks shared by every vectorizer in the
process (see `JobQueue.segment_lock`).
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncContextManager, Callable, Dict, List, Optional

from .chunker import Chunker
from .embedder import Embedder
from .models import (
    Chunk,
    CorpusStats,
    SegmentVectorizationStatus,
    VectorizationStatus,
    VectorizeFailure,
    VectorizeReport,
    VectorizeResult,
)
from ..core.errors import EmbeddingError, SourceNotFoundError
from ..db.chunk_store import ChunkStore
from ..db.sources import SourceRepository

logger = logging.getLogger("transcripts.vectorizer")


class Vectorizer:
    """
    Coordinates the source provider, chunker, embedder and chunk store.
    """

    def __init__(
        self,
        sources: SourceRepository,
        store: ChunkStore,
        embedder: Embedder,
        chunker: Chunker,
        batch_size: int = 20,
        atomic_replace: bool = False,
        segment_lock: Optional[Callable[[int], AsyncContextManager]] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        self._sources = sources
        self._store = store
        self._embedder = embedder
        self._chunker = chunker
        self.batch_size = batch_size
        self.atomic_replace = atomic_replace
        self._segment_lock = segment_lock

    # ------------------------------------------------------------------
    # Single segment
    # ------------------------------------------------------------------

    async def vectorize_one(self, segment_id: int) -> VectorizeResult:
        """
        Replace a segment's chunks with freshly computed, embedded ones.

        Raises
        ------
        SourceNotFoundError
            If the segment does not exist. Nothing is deleted.
        EmbeddingError, DecodeError, PersistenceError
            Propagated unchanged.
        """
        lock = self._segment_lock(segment_id) if self._segment_lock else contextlib.nullcontext()
        async with lock:
            return await self._replace_chunks(segment_id)

    async def _replace_chunks(self, segment_id: int) -> VectorizeResult:
        source = await self._sources.get(segment_id)
        if source is None:
            raise SourceNotFoundError(segment_id)

        if not self.atomic_replace:
            deleted = await self._store.delete_chunks(segment_id)
            await self._store.commit()
            logger.debug("Deleted %d chunks for segment %d", deleted, segment_id)

        chunks = await self._chunker.chunk_document(source.transcript or "")
        embedded = await self._embed_chunks(chunks) if chunks else []

        if self.atomic_replace:
            await self._store.delete_chunks(segment_id)

        created = await self._store.add_chunks(segment_id, embedded)
        await self._store.commit()

        result = VectorizeResult(
            segment_id=segment_id,
            chunks_created=created,
            chunks_embedded=sum(1 for c in embedded if c.embedding is not None),
        )
        logger.info(
            "Vectorized segment %d (%s): %d chunks",
            segment_id,
            source.title,
            result.chunks_created,
        )
        return result

    async def _embed_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """
        Embed chunks in batches and attach each vector to its chunk by index.
        """
        by_index: Dict[int, List[float]] = {}

        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start : start + self.batch_size]
            vectors = await self._embedder.embed([c.text for c in batch], batch_size=len(batch))

            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Expected {len(batch)} embeddings, got {len(vectors)}"
                )

            for chunk, vector in zip(batch, vectors):
                by_index[chunk.index] = vector

        return [chunk.with_embedding(by_index[chunk.index]) for chunk in chunks]

    # ------------------------------------------------------------------
    # Whole corpus
    # ------------------------------------------------------------------

    async def vectorize_all(self) -> VectorizeReport:
        """
        Re-vectorize every segment that has a transcript.

        A failing segment is rolled back, recorded in the report, and the
        run moves on to the next one.
        """
        segments = await self._sources.list_all()
        report = VectorizeReport()

        for source in segments:
            if not source.has_transcript:
                report.skipped += 1
                continue

            try:
                result = await self.vectorize_one(source.id)
            except Exception as exc:
                await self._store.rollback()
                logger.warning(
                    "Vectorization failed for segment %d (%s): %s",
                    source.id,
                    source.title,
                    exc,
                )
                report.failed += 1
                report.errors.append(
                    VectorizeFailure(
                        segment_id=source.id,
                        title=source.title,
                        error=str(exc) or type(exc).__name__,
                    )
                )
                continue

            report.processed += 1
            report.results.append(result)

        logger.info(
            "Vectorize-all finished: processed=%d skipped=%d failed=%d",
            report.processed,
            report.skipped,
            report.failed,
        )
        return report

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self) -> VectorizationStatus:
        segments = await self._sources.list_all()
        counts = await self._store.count_by_source(s.id for s in segments)
        total_chunks = await self._store.total_chunks()
        missing = await self._store.count_missing_embeddings()

        rows: List[SegmentVectorizationStatus] = []
        for source in segments:
            chunk_counts = counts.get(source.id)
            chunk_count = chunk_counts.total if chunk_counts else 0
            embedded_count = chunk_counts.embedded if chunk_counts else 0

            rows.append(
                SegmentVectorizationStatus(
                    id=source.id,
                    slug=source.slug,
                    title=source.title,
                    module_title=source.module_title,
                    module_order=source.module_order,
                    has_transcript=source.has_transcript,
                    chunk_count=chunk_count,
                    embedded_count=embedded_count,
                    is_vectorized=chunk_count > 0,
                    needs_vectorization=source.has_transcript and chunk_count == 0,
                )
            )

        return VectorizationStatus(
            segments=rows,
            stats=CorpusStats(
                total_segments=len(rows),
                with_transcripts=sum(1 for r in rows if r.has_transcript),
                vectorized=sum(1 for r in rows if r.is_vectorized),
                needs_vectorization=sum(1 for r in rows if r.needs_vectorization),
                total_chunks=total_chunks,
                chunks_missing_embeddings=missing,
            ),
        )
