from datetime import datetime, timedelta, timezone

from domain.jobs.entity import Job, JobStatus, compute_backoff


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _running_job(max_attempts=3):
    return Job(
        id=1,
        job_type="invoice.generate",
        payload={},
        status=JobStatus.RUNNING,
        max_attempts=max_attempts,
        next_run_at=NOW,
        locked_by="w1",
        lease_expires_at=NOW + timedelta(minutes=5),
        updated_at=NOW,
    )


def test_backoff_grows_and_caps():
    assert compute_backoff(1, 5, 3600) == timedelta(seconds=10)
    assert compute_backoff(3, 5, 3600) == timedelta(seconds=40)
    assert compute_backoff(50, 5, 3600) == timedelta(seconds=3600)
    assert compute_backoff(10_000, 5, 3600) == timedelta(seconds=3600)


def test_failure_schedules_retry_then_dead_letters():
    job = _running_job(max_attempts=2)
    job.fail("boom", NOW, base_backoff=5, max_backoff=3600)
    assert job.status == JobStatus.FAILED
    assert job.next_run_at == NOW + timedelta(seconds=10)
    assert job.locked_by is None
    assert job.lease_expires_at is None

    job.status = JobStatus.RUNNING
    job.fail("boom again", NOW, base_backoff=5, max_backoff=3600)
    assert job.status == JobStatus.DEAD_LETTERED
    assert job.attempts == 2
    assert job.last_error == "boom again"
    assert job.next_run_at is None
    assert job.finished_at == NOW


def test_success_is_final():
    job = _running_job()
    job.succeed(NOW)
    assert job.status == JobStatus.SUCCEEDED
    assert job.next_run_at is None
    assert job.locked_by is None
    assert job.finished_at == NOW


def test_requeue_resets_budget():
    job = _running_job(max_attempts=1)
    job.fail("boom", NOW, base_backoff=5, max_backoff=3600)
    assert job.status == JobStatus.DEAD_LETTERED
    job.requeue(NOW)
    assert job.status == JobStatus.QUEUED
    assert job.attempts == 0
    assert job.next_run_at == NOW
    assert job.finished_at is None
