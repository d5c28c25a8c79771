"""
Vectorize Job Queue Tests
"""

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest

from transcript_search.core.errors import EmbeddingError
from transcript_search.embeddings.models import VectorizeResult
from transcript_search.embeddings.vectorizer import Vectorizer
from transcript_search.embeddings.queue import (
    CANCELLED,
    COMPLETED,
    FAILED,
    PENDING,
    JobQueue,
    process_single_job,
    process_vectorize_worker_task,
)

from conftest import SlowEmbedder


def factory_for(vectorizer):
    @contextlib.asynccontextmanager
    async def factory():
        yield vectorizer
    return factory


def fake_vectorizer(fail_for=()):
    vectorizer = AsyncMock()

    async def vectorize_one(segment_id):
        if segment_id in fail_for:
            raise EmbeddingError("provider unavailable")
        return VectorizeResult(segment_id=segment_id, chunks_created=3, chunks_embedded=3)

    vectorizer.vectorize_one.side_effect = vectorize_one
    return vectorizer


@pytest.mark.asyncio
async def test_enqueue_skips_segments_with_active_jobs():
    queue = JobQueue()

    first = await queue.enqueue(1)
    second = await queue.enqueue(1)
    other = await queue.enqueue(2)

    assert first is not None and first.status == PENDING
    assert second is None
    assert other is not None
    assert [j.segment_id for j in queue.list_jobs()] == [1, 2]


@pytest.mark.asyncio
async def test_enqueue_all_returns_only_new_jobs():
    queue = JobQueue()
    await queue.enqueue(2)

    jobs = await queue.enqueue_all([1, 2, 3])

    assert [j.segment_id for j in jobs] == [1, 3]


@pytest.mark.asyncio
async def test_cancel_marks_pending_jobs_and_allows_requeue():
    queue = JobQueue()
    job = await queue.enqueue(5)

    assert queue.cancel(5) == 1
    assert job.status == CANCELLED
    assert queue.cancel(5) == 0
    assert await queue.enqueue(5) is not None


@pytest.mark.asyncio
async def test_process_single_job_records_success():
    queue = JobQueue()
    job = await queue.enqueue(1)

    await process_single_job(job, factory_for(fake_vectorizer()))

    assert job.status == COMPLETED
    assert job.chunks_created == 3
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_process_single_job_records_failure():
    queue = JobQueue()
    job = await queue.enqueue(1)

    with pytest.raises(EmbeddingError):
        await process_single_job(job, factory_for(fake_vectorizer(fail_for={1})))

    assert job.status == FAILED
    assert job.error == "provider unavailable"


@pytest.mark.asyncio
async def test_cancelled_job_is_not_run():
    queue = JobQueue()
    job = await queue.enqueue(1)
    queue.cancel(1)
    vectorizer = fake_vectorizer()

    await process_single_job(job, factory_for(vectorizer))

    vectorizer.vectorize_one.assert_not_called()


@pytest.mark.asyncio
async def test_worker_survives_failures_and_stops_on_cancel():
    queue = JobQueue()
    vectorizer = fake_vectorizer(fail_for={2})
    jobs = await queue.enqueue_all([1, 2, 3])

    worker = asyncio.create_task(process_vectorize_worker_task(queue, factory_for(vectorizer)))
    await asyncio.wait_for(queue.join(), timeout=5)
    worker.cancel()
    await asyncio.wait_for(worker, timeout=5)

    assert [j.status for j in jobs] == [COMPLETED, FAILED, COMPLETED]
    assert [c.args[0] for c in vectorizer.vectorize_one.await_args_list] == [1, 2, 3]


@pytest.mark.asyncio
async def test_direct_run_waits_for_the_worker_on_the_same_segment(segments, store, chunker):
    queue = JobQueue()

    def build():
        return Vectorizer(
            sources=segments, store=store, embedder=SlowEmbedder(), chunker=chunker,
            segment_lock=queue.segment_lock,
        )

    job = await queue.enqueue(1)
    worker = asyncio.create_task(process_vectorize_worker_task(queue, factory_for(build())))
    await asyncio.sleep(0)
    assert job.status == "processing"

    direct = await build().vectorize_one(1)
    await asyncio.wait_for(queue.join(), timeout=5)
    worker.cancel()
    await asyncio.wait_for(worker, timeout=5)

    assert job.status == COMPLETED
    assert direct.chunks_created == 1
    assert [c.chunk_index for c in await store.get_chunks(1)] == [0]


def test_segment_lock_is_shared_per_segment():
    queue = JobQueue()

    assert queue.segment_lock(1) is queue.segment_lock(1)
    assert queue.segment_lock(1) is not queue.segment_lock(2)


@pytest.mark.asyncio
async def test_finished_jobs_are_pruned_beyond_history_limit():
    queue = JobQueue(max_history=2)

    finished = []
    for segment_id in range(1, 5):
        job = await queue.enqueue(segment_id)
        queue.cancel(segment_id)
        finished.append(job)
    active = await queue.enqueue(9)

    kept = queue.list_jobs()
    assert [j.id for j in kept] == [finished[2].id, finished[3].id, active.id]
    assert queue.get_job(finished[0].id) is None


@pytest.mark.asyncio
async def test_active_jobs_are_never_pruned():
    queue = JobQueue(max_history=0)

    jobs = await queue.enqueue_all([1, 2, 3])

    assert queue.list_jobs() == jobs


def test_max_history_must_not_be_negative():
    with pytest.raises(ValueError):
        JobQueue(max_history=-1)
