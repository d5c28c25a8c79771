"""
API Models

Request and response schemas for the vectorization and search endpoints.
Pipeline records (`SearchResult`, `VectorizeReport`, ...) are served as-is
from `embeddings.models`.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, ConfigDict

from ..embeddings.queue import VectorizeJob


class SearchRequest(BaseModel):
    """
    Semantic search request payload.
    """
    query: str = Field(..., min_length=1, max_length=2000)
    limit: int = Field(default=10, ge=1, le=50)

    model_config = ConfigDict(extra="forbid")


class JobModel(BaseModel):
    """
    Public view of a background vectorization job.
    """
    id: int
    segment_id: int
    status: Literal["pending", "processing", "completed", "failed", "cancelled"]
    error: Optional[str] = None
    chunks_created: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: VectorizeJob) -> "JobModel":
        return cls(
            id=job.id,
            segment_id=job.segment_id,
            status=job.status,
            error=job.error,
            chunks_created=job.chunks_created,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


class QueueResult(BaseModel):
    """
    Result of queueing one or more jobs. Segments that already had an
    active job are left out.
    """
    jobs_queued: int = Field(..., ge=0)
    jobs: List[JobModel] = Field(default_factory=list)


class CancelResult(BaseModel):
    segment_id: int
    cancelled_count: int = Field(..., ge=0)
