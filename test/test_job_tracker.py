"""
Tests for the in-memory job status tracker.
"""

from datetime import timedelta

import pytest

from contactsync.jobs import tracker as tracker_module
from contactsync.jobs.tracker import (
    JobState,
    JobStatus,
    JobStatusTracker,
    progress_percentage,
)


@pytest.fixture
def tracker() -> JobStatusTracker:
    return JobStatusTracker()


class TestProgressPercentage:
    @pytest.mark.parametrize(
        ("processed", "total", "expected"),
        [
            (0, 0, 0),
            (5, 0, 0),
            (0, 10, 0),
            (50, 200, 25),
            (150, 200, 75),
            (1, 3, 33),
            (2, 3, 67),
            (1, 8, 13),
            (1, 200, 1),
            (10, 10, 100),
        ],
    )
    def test_rounds_half_up(self, processed, total, expected):
        assert progress_percentage(processed, total) == expected

    def test_capped_at_100(self):
        assert progress_percentage(12, 10) == 100


class TestJobLifecycle:
    def test_create_job_starts_zeroed(self, tracker):
        job = tracker.create_job("u1", "sync")

        assert job.status == JobState.STARTED
        assert job.user_id == "u1"
        assert job.type == "sync"
        assert (job.total_contacts, job.processed_contacts, job.failed_contacts) == (0, 0, 0)
        assert job.progress_percentage == 0
        assert job.error is None
        assert job.start_time == job.last_updated

    def test_job_ids_are_unique(self, tracker):
        ids = {tracker.create_job("u1", "sync").job_id for _ in range(50)}
        assert len(ids) == 50

    def test_progress_follows_counters(self, tracker):
        job = tracker.create_job("u1", "sync")

        first = tracker.update_job(job.job_id, total_contacts=200, processed_contacts=50)
        assert first.progress_percentage == 25

        second = tracker.update_job(job.job_id, processed_contacts=150)
        assert second.progress_percentage == 75
        assert second.total_contacts == 200

    def test_update_refreshes_last_updated(self, tracker):
        job = tracker.create_job("u1", "sync")

        updated = tracker.update_job(job.job_id, status=JobState.IN_PROGRESS)

        assert updated.status == JobState.IN_PROGRESS
        assert updated.last_updated >= job.last_updated
        assert updated.start_time == job.start_time

    def test_progress_stays_zero_without_total(self, tracker):
        job = tracker.create_job("u1", "sync")

        updated = tracker.update_job(job.job_id, processed_contacts=40)

        assert updated.progress_percentage == 0

    def test_complete_job_forces_full_progress(self, tracker):
        job = tracker.create_job("u1", "sync")

        done = tracker.complete_job(job.job_id, total=10, processed=7, failed=3)

        assert done.status == JobState.COMPLETED
        assert (done.total_contacts, done.processed_contacts, done.failed_contacts) == (10, 7, 3)
        assert done.progress_percentage == 100
        assert done.error is None

    def test_fail_job_keeps_counters(self, tracker):
        job = tracker.create_job("u1", "sync")
        tracker.update_job(job.job_id, processed_contacts=20, failed_contacts=5)

        failed = tracker.fail_job(job.job_id, "CRM unavailable")

        assert failed.status == JobState.FAILED
        assert failed.error == "CRM unavailable"
        assert failed.processed_contacts == 20
        assert failed.failed_contacts == 5

    def test_unknown_job_returns_none(self, tracker):
        assert tracker.get_job("missing") is None
        assert tracker.update_job("missing", processed_contacts=1) is None
        assert tracker.complete_job("missing", 1, 1, 0) is None
        assert tracker.fail_job("missing", "boom") is None

    def test_unknown_fields_are_ignored(self, tracker):
        job = tracker.create_job("u1", "sync")

        updated = tracker.update_job(job.job_id, processed_contacts=3, job_id="hijack", colour="red")

        assert updated.job_id == job.job_id
        assert updated.processed_contacts == 3

    def test_invalid_values_leave_job_unchanged(self, tracker):
        job = tracker.create_job("u1", "sync")

        result = tracker.update_job(job.job_id, processed_contacts=-1)

        assert result.processed_contacts == 0
        assert tracker.get_job(job.job_id).processed_contacts == 0

    def test_error_rejected_unless_failed(self, tracker):
        job = tracker.create_job("u1", "sync")

        result = tracker.update_job(job.job_id, status=JobState.IN_PROGRESS, error="oops")

        assert result.error is None
        assert result.status == JobState.STARTED
        assert tracker.get_job(job.job_id).error is None

        failed = tracker.fail_job(job.job_id, "CRM unavailable")
        assert failed.status == JobState.FAILED
        assert failed.error == "CRM unavailable"

    def test_returned_objects_are_snapshots(self, tracker):
        job = tracker.create_job("u1", "sync")

        snapshot = tracker.get_job(job.job_id)
        snapshot.processed_contacts = 999
        job.status = JobState.FAILED

        stored = tracker.get_job(job.job_id)
        assert stored.processed_contacts == 0
        assert stored.status == JobState.STARTED


class TestQueries:
    def test_get_user_jobs(self, tracker):
        a = tracker.create_job("u1", "sync")
        b = tracker.create_job("u1", "sync")
        tracker.create_job("u2", "sync")

        jobs = tracker.get_user_jobs("u1")

        assert {j.job_id for j in jobs} == {a.job_id, b.job_id}
        assert tracker.get_user_jobs("nobody") == []

    def test_not_found_placeholder(self):
        status = JobStatus.not_found("abc")

        assert status.job_id == "abc"
        assert status.status == JobState.NOT_FOUND
        assert status.type == "unknown"
        assert status.total_contacts == 0
        assert status.progress_percentage == 0

    def test_status_serializes_as_string(self, tracker):
        job = tracker.create_job("u1", "sync")
        assert job.model_dump(mode="json")["status"] == "started"


class TestCleanup:
    def test_removes_only_stale_jobs(self, tracker, monkeypatch):
        old = tracker.create_job("u1", "sync")
        real_now = tracker_module._utcnow()

        monkeypatch.setattr(tracker_module, "_utcnow", lambda: real_now + timedelta(hours=30))
        fresh = tracker.create_job("u1", "sync")

        removed = tracker.cleanup_old_jobs(max_age_hours=24)

        assert removed == 1
        assert tracker.get_job(old.job_id) is None
        assert tracker.get_job(fresh.job_id) is not None

    def test_nothing_to_remove(self, tracker):
        tracker.create_job("u1", "sync")
        assert tracker.cleanup_old_jobs() == 0

    def test_update_keeps_job_alive(self, tracker, monkeypatch):
        job = tracker.create_job("u1", "sync")
        real_now = tracker_module._utcnow()

        monkeypatch.setattr(tracker_module, "_utcnow", lambda: real_now + timedelta(hours=23))
        tracker.update_job(job.job_id, processed_contacts=1)
        monkeypatch.setattr(tracker_module, "_utcnow", lambda: real_now + timedelta(hours=30))

        assert tracker.cleanup_old_jobs(max_age_hours=24) == 0
