"""
Vectorization Routes

This module exposes admin endpoints for:
- Vectorization status across the course
- Re-vectorizing one segment or the whole corpus synchronously
- Queueing, cancelling and listing background vectorization jobs

All routes require the admin API key.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends

from .dependencies import (
    get_job_queue,
    get_source_repository,
    get_vectorizer,
    verify_admin,
)
from .models import CancelResult, JobModel, QueueResult
from ..db.sources import SourceRepository
from ..embeddings.models import VectorizationStatus, VectorizeReport, VectorizeResult
from ..embeddings.queue import JobQueue
from ..embeddings.vectorizer import Vectorizer

router = APIRouter(
    prefix="/vectorize",
    tags=["vectorize"],
    dependencies=[Depends(verify_admin)],
)


@router.get(
    "/status",
    response_model=VectorizationStatus,
    summary="Vectorization status per segment and for the corpus",
)
async def get_status(
    vectorizer: Annotated[Vectorizer, Depends(get_vectorizer)],
) -> VectorizationStatus:
    return await vectorizer.get_status()


@router.post(
    "/segments/{segment_id}",
    response_model=VectorizeResult,
    summary="Re-chunk and embed one segment now",
)
async def vectorize_segment(
    segment_id: int,
    vectorizer: Annotated[Vectorizer, Depends(get_vectorizer)],
) -> VectorizeResult:
    """
    Replace the segment's chunks and wait for the result.

    Domain errors are mapped to status codes by the registered handlers
    (404 unknown segment, 502 embedding failure).
    """
    return await vectorizer.vectorize_one(segment_id)


@router.post(
    "/all",
    response_model=VectorizeReport,
    summary="Re-vectorize every segment with a transcript",
)
async def vectorize_all(
    vectorizer: Annotated[Vectorizer, Depends(get_vectorizer)],
) -> VectorizeReport:
    return await vectorizer.vectorize_all()


# ---------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------

@router.post(
    "/segments/{segment_id}/jobs",
    response_model=QueueResult,
    summary="Queue a vectorization job for a segment",
)
async def queue_segment_job(
    segment_id: int,
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> QueueResult:
    job = await queue.enqueue(segment_id)
    jobs = [JobModel.from_job(job)] if job is not None else []
    return QueueResult(jobs_queued=len(jobs), jobs=jobs)


@router.post(
    "/jobs",
    response_model=QueueResult,
    summary="Queue vectorization jobs for all segments with transcripts",
)
async def queue_all_jobs(
    queue: Annotated[JobQueue, Depends(get_job_queue)],
    sources: Annotated[SourceRepository, Depends(get_source_repository)],
) -> QueueResult:
    segments = await sources.list_all()
    jobs = await queue.enqueue_all(s.id for s in segments if s.has_transcript)
    return QueueResult(
        jobs_queued=len(jobs),
        jobs=[JobModel.from_job(j) for j in jobs],
    )


@router.delete(
    "/segments/{segment_id}/jobs",
    response_model=CancelResult,
    summary="Cancel pending vectorization jobs for a segment",
)
async def cancel_segment_jobs(
    segment_id: int,
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> CancelResult:
    return CancelResult(segment_id=segment_id, cancelled_count=queue.cancel(segment_id))


@router.get(
    "/jobs",
    response_model=List[JobModel],
    summary="List vectorization jobs",
)
async def list_jobs(
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> List[JobModel]:
    return [JobModel.from_job(j) for j in queue.list_jobs()]
