from datetime import timedelta

import pytest

from application.services.job_queue import LEASE_EXPIRED_ERROR, JobQueue
from domain.common.exceptions import InvalidJobStateError, JobNotFoundError
from domain.jobs.entity import JobAttemptOutcome, JobStatus


@pytest.fixture
def queue(uow_factory, clock):
    return JobQueue(
        uow_factory,
        base_backoff_seconds=5,
        max_backoff_seconds=3600,
        max_attempts=3,
        lease_seconds=300,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_enqueue_and_claim_once(queue):
    job_id = await queue.enqueue("invoice.generate", {"order_id": "o1", "version": 3})
    job = await queue.claim(job_id, "w1")
    assert job.status == JobStatus.RUNNING
    assert job.locked_by == "w1"
    assert await queue.claim(job_id, "w2") is None


@pytest.mark.asyncio
async def test_dedupe_key_returns_existing_job(queue, state):
    a = await queue.enqueue("invoice.generate", {}, dedupe_key="invoice.generate:o1:v3")
    b = await queue.enqueue("invoice.generate", {}, dedupe_key="invoice.generate:o1:v3")
    assert a == b
    assert len(state.jobs) == 1


@pytest.mark.asyncio
async def test_not_before_delays_the_job(queue, clock):
    await queue.enqueue("invoice.generate", {}, not_before=clock() + timedelta(minutes=5))
    assert await queue.dequeue_next("w1") is None
    clock.advance(300)
    assert await queue.dequeue_next("w1") is not None


@pytest.mark.asyncio
async def test_failure_backs_off_exponentially(queue, clock):
    job_id = await queue.enqueue("inventory.adjust", {})
    await queue.dequeue_next("w1")
    job = await queue.fail(job_id, "inventory down", worker_id="w1")
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1
    assert job.next_run_at == clock() + timedelta(seconds=10)
    assert await queue.dequeue_next("w1") is None

    clock.advance(10)
    await queue.dequeue_next("w1")
    job = await queue.fail(job_id, "inventory down", worker_id="w1")
    assert job.next_run_at == clock() + timedelta(seconds=20)


@pytest.mark.asyncio
async def test_dead_letter_after_max_attempts(queue, clock):
    job_id = await queue.enqueue("inventory.adjust", {})
    for _ in range(3):
        clock.advance(3600)
        claimed = await queue.dequeue_next("w1")
        assert claimed is not None
        await queue.fail(job_id, "still down", worker_id="w1")

    job, attempts = await queue.get_job(job_id)
    assert job.status == JobStatus.DEAD_LETTERED
    assert job.last_error == "still down"
    assert [a.attempt for a in attempts] == [1, 2, 3]
    assert all(a.outcome == JobAttemptOutcome.FAILED for a in attempts)

    clock.advance(86400)
    assert await queue.dequeue_next("w1") is None


@pytest.mark.asyncio
async def test_success_is_never_rescheduled(queue, clock):
    job_id = await queue.enqueue("invoice.generate", {})
    await queue.dequeue_next("w1")
    job = await queue.complete(job_id, worker_id="w1")
    assert job.status == JobStatus.SUCCEEDED
    clock.advance(86400)
    assert await queue.dequeue_next("w1") is None
    _, attempts = await queue.get_job(job_id)
    assert attempts[0].outcome == JobAttemptOutcome.SUCCEEDED


@pytest.mark.asyncio
async def test_only_the_holder_may_finish(queue):
    job_id = await queue.enqueue("invoice.generate", {})
    await queue.claim(job_id, "w1")
    with pytest.raises(InvalidJobStateError):
        await queue.complete(job_id, worker_id="w2")


@pytest.mark.asyncio
async def test_reaper_fails_expired_leases(queue, clock):
    job_id = await queue.enqueue("invoice.generate", {})
    await queue.claim(job_id, "w1")
    clock.advance(301)

    reaped = await queue.reap_expired_leases()
    assert [j.id for j in reaped] == [job_id]
    job, attempts = await queue.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.last_error == LEASE_EXPIRED_ERROR
    assert attempts[-1].outcome == JobAttemptOutcome.LEASE_EXPIRED

    # the slow worker finishes late; its claim is gone
    with pytest.raises(InvalidJobStateError):
        await queue.complete(job_id, worker_id="w1")


@pytest.mark.asyncio
async def test_stale_run_cannot_finish_a_reclaimed_job(queue, clock):
    job_id = await queue.enqueue("invoice.generate", {})
    await queue.claim(job_id, "worker@host:101")
    clock.advance(301)
    await queue.reap_expired_leases()
    clock.advance(3600)
    assert (await queue.claim(job_id, "worker@host:102")) is not None

    with pytest.raises(InvalidJobStateError):
        await queue.complete(job_id, worker_id="worker@host:101")
    job, _ = await queue.get_job(job_id)
    assert job.status == JobStatus.RUNNING
    assert job.locked_by == "worker@host:102"

    done = await queue.complete(job_id, worker_id="worker@host:102")
    assert done.status == JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_requeue_dead_lettered_job(queue, clock):
    job_id = await queue.enqueue("inventory.adjust", {}, max_attempts=1)
    await queue.dequeue_next("w1")
    await queue.fail(job_id, "nope", worker_id="w1")

    job = await queue.requeue(job_id)
    assert job.status == JobStatus.QUEUED
    assert job.attempts == 0
    assert (await queue.dequeue_next("w1")).id == job_id


@pytest.mark.asyncio
async def test_requeue_rejects_other_states(queue):
    job_id = await queue.enqueue("inventory.adjust", {})
    with pytest.raises(InvalidJobStateError):
        await queue.requeue(job_id)
    with pytest.raises(JobNotFoundError):
        await queue.requeue(999)


@pytest.mark.asyncio
async def test_list_jobs_filters_by_status(queue):
    first = await queue.enqueue("a", {})
    await queue.enqueue("b", {})
    await queue.claim(first, "w1")
    await queue.complete(first, worker_id="w1")

    jobs, total = await queue.list_jobs(JobStatus.QUEUED)
    assert total == 1
    assert jobs[0].job_type == "b"
    _, everything = await queue.list_jobs()
    assert everything == 2
