"""
Async queue for background vectorization jobs.

The admin trigger enqueues jobs and returns immediately; a single worker
task drains the queue one job at a time. A segment never has more than one
pending or processing job, and `segment_lock` hands out the per-segment
locks that vectorizers outside the worker (sync admin routes, the CLI)
take as well, so no two runs on one segment interleave.

Finished jobs are kept for inspection up to `max_history`; the oldest
finished ones are pruned first.
"""
import asyncio
import itertools
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .vectorizer import Vectorizer

logger = logging.getLogger("transcripts.queue")

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ACTIVE_STATUSES = (PENDING, PROCESSING)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VectorizeJob:
    """A request to vectorize one segment."""
    id: int
    segment_id: int
    status: str = PENDING
    error: Optional[str] = None
    chunks_created: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class JobQueue:
    """In-process queue holding vectorization jobs and their history."""

    def __init__(self, max_history: int = 500) -> None:
        if max_history < 0:
            raise ValueError("max_history must not be negative")

        self.max_history = max_history
        self._queue: asyncio.Queue[VectorizeJob] = asyncio.Queue()
        self._jobs: Dict[int, VectorizeJob] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._ids = itertools.count(1)

    def segment_lock(self, segment_id: int) -> asyncio.Lock:
        """The lock every vectorization of `segment_id` runs under."""
        lock = self._locks.get(segment_id)
        if lock is None:
            lock = self._locks[segment_id] = asyncio.Lock()
        return lock

    def _prune_history(self) -> None:
        finished = [j for j in self._jobs.values() if not j.is_active]
        excess = len(finished) - self.max_history
        if excess <= 0:
            return
        for job in sorted(finished, key=lambda j: j.id)[:excess]:
            del self._jobs[job.id]

    def _active_job_for(self, segment_id: int) -> Optional[VectorizeJob]:
        for job in self._jobs.values():
            if job.segment_id == segment_id and job.is_active:
                return job
        return None

    async def enqueue(self, segment_id: int) -> Optional[VectorizeJob]:
        """
        Queue a job for a segment.

        Returns None when the segment already has a pending or processing job.
        """
        if self._active_job_for(segment_id) is not None:
            logger.info("Segment %d already has an active job, not queued", segment_id)
            return None

        self._prune_history()
        job = VectorizeJob(id=next(self._ids), segment_id=segment_id)
        self._jobs[job.id] = job
        await self._queue.put(job)
        logger.info("Job %d enqueued for segment %d (queue size: %d)", job.id, segment_id, self._queue.qsize())
        return job

    async def enqueue_all(self, segment_ids: Iterable[int]) -> List[VectorizeJob]:
        jobs = []
        for segment_id in segment_ids:
            job = await self.enqueue(segment_id)
            if job is not None:
                jobs.append(job)
        return jobs

    def cancel(self, segment_id: int) -> int:
        """
        Cancel pending jobs for a segment. Jobs already processing finish.

        Returns the number of cancelled jobs.
        """
        cancelled = 0
        for job in self._jobs.values():
            if job.segment_id == segment_id and job.status == PENDING:
                job.status = CANCELLED
                job.completed_at = _now()
                cancelled += 1
        return cancelled

    def get_job(self, job_id: int) -> Optional[VectorizeJob]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[VectorizeJob]:
        return sorted(self._jobs.values(), key=lambda j: j.id)

    async def get_next_job(self) -> VectorizeJob:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()


# Global singleton
job_queue = JobQueue()


VectorizerFactory = Callable[[], AbstractAsyncContextManager[Vectorizer]]


async def process_single_job(job: VectorizeJob, vectorizer_factory: VectorizerFactory) -> None:
    """
    Run one job inside its own vectorizer (and database session).
    """
    if job.status == CANCELLED:
        logger.info("Skipping cancelled job %d (segment %d)", job.id, job.segment_id)
        return

    job.status = PROCESSING
    try:
        async with vectorizer_factory() as vectorizer:
            result = await vectorizer.vectorize_one(job.segment_id)
    except Exception as exc:
        job.status = FAILED
        job.error = str(exc) or type(exc).__name__
        job.completed_at = _now()
        logger.error("Job %d failed for segment %d: %s", job.id, job.segment_id, job.error)
        raise

    job.status = COMPLETED
    job.chunks_created = result.chunks_created
    job.completed_at = _now()


async def process_vectorize_worker_task(
    queue: JobQueue,
    vectorizer_factory: VectorizerFactory,
) -> None:
    """
    Background worker that consumes jobs from the queue until cancelled.
    """
    logger.info("Vectorize worker started.")

    while True:
        try:
            job = await queue.get_next_job()
        except asyncio.CancelledError:
            logger.info("Vectorize worker cancelled.")
            break

        try:
            logger.info("Processing job %d (segment %d)", job.id, job.segment_id)
            await process_single_job(job, vectorizer_factory)
            logger.info("Finished job %d", job.id)
        except asyncio.CancelledError:
            job.status = CANCELLED
            job.completed_at = _now()
            logger.info("Vectorize worker cancelled during job %d.", job.id)
            raise
        except Exception:
            # Already recorded on the job; keep consuming.
            logger.exception("Unexpected error in vectorize worker")
        finally:
            queue.task_done()
