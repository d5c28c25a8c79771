"""
Pipeline Data Models

This module defines the canonical records that flow through the chunking,
vectorization and search pipeline:

- `Chunk`: one token window of a segment transcript
- `SourceDocument`: a segment with its transcript and display metadata
- `SearchResult`: one ranked chunk returned by vector search
- Vectorization results, reports and status snapshots

Chunk, segment and search-hit records are frozen; the vectorization report
is filled in as a run progresses.
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """
    A contiguous, token-bounded window of a transcript.

    `start_token` is the offset of the window in the transcript's token
    sequence; the window covers `[start_token, start_token + token_count)`.
    """

    index: int = Field(..., ge=0, description="Zero-based position within the segment.")
    text: str = Field(..., description="Decoded window text, trimmed.")
    token_count: int = Field(..., ge=0)
    start_token: int = Field(default=0, ge=0)
    embedding: Optional[List[float]] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def end_token(self) -> int:
        return self.start_token + self.token_count

    def with_embedding(self, embedding: List[float]) -> "Chunk":
        return self.model_copy(update={"embedding": embedding})


class StoredChunk(BaseModel):
    """A chunk as persisted for a segment, including its store id."""

    id: int
    segment_id: int
    chunk_index: int
    chunk_text: str
    token_count: int
    embedding: Optional[List[float]] = None

    model_config = ConfigDict(frozen=True)


class SourceDocument(BaseModel):
    """
    A course segment as seen by the pipeline.

    `transcript` is None when the segment has no transcript at all, which
    is distinct from the segment not existing.
    """

    id: int
    title: str
    slug: str
    module_title: str
    module_order: int = 0
    order: int = 0
    transcript: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript)


class ChunkCounts(NamedTuple):
    """Chunk totals for one segment."""
    total: int
    embedded: int


class SearchResult(BaseModel):
    """One ranked search hit joined with its segment and module."""

    id: int
    segment_id: int
    chunk_text: str
    chunk_index: int
    similarity: float
    segment_title: str
    segment_slug: str
    module_title: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------
# Vectorization results
# ---------------------------------------------------------------------

class VectorizeResult(BaseModel):
    segment_id: int
    chunks_created: int = Field(..., ge=0)
    chunks_embedded: int = Field(..., ge=0)


class VectorizeFailure(BaseModel):
    segment_id: int
    title: str
    error: str


class VectorizeReport(BaseModel):
    """Outcome of a corpus-wide vectorization run."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[VectorizeResult] = Field(default_factory=list)
    errors: List[VectorizeFailure] = Field(default_factory=list)


class SegmentVectorizationStatus(BaseModel):
    id: int
    slug: str
    title: str
    module_title: str
    module_order: int
    has_transcript: bool
    chunk_count: int
    embedded_count: int
    is_vectorized: bool
    needs_vectorization: bool


class CorpusStats(BaseModel):
    total_segments: int
    with_transcripts: int
    vectorized: int
    needs_vectorization: int
    total_chunks: int
    chunks_missing_embeddings: int


class VectorizationStatus(BaseModel):
    segments: List[SegmentVectorizationStatus]
    stats: CorpusStats
