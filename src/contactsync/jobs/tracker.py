"""
In-memory registry of background job status.

Jobs move ``started -> in_progress -> completed | failed``. ``not_found`` is
only ever synthesized for unknown ids and never stored. State lives in the
process: a restart forgets every job.
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from contactsync.shared.logging import get_logger

logger = get_logger(__name__)


class JobState(str, Enum):
    """Lifecycle states of a tracked job."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "not_found"


class JobStatus(BaseModel):
    """Snapshot of one job."""

    job_id: str
    status: JobState = JobState.STARTED
    user_id: str | None = None
    type: str
    total_contacts: int = Field(default=0, ge=0)
    processed_contacts: int = Field(default=0, ge=0)
    failed_contacts: int = Field(default=0, ge=0)
    progress_percentage: int = Field(default=0, ge=0, le=100)
    start_time: datetime
    last_updated: datetime
    error: str | None = None

    @model_validator(mode="after")
    def error_only_when_failed(self) -> "JobStatus":
        if self.error is not None and self.status != JobState.FAILED:
            raise ValueError("error is only recorded on failed jobs")
        return self

    @classmethod
    def not_found(cls, job_id: str) -> "JobStatus":
        """Placeholder returned to pollers asking about an unknown job."""
        now = _utcnow()
        return cls(
            job_id=job_id,
            status=JobState.NOT_FOUND,
            type="unknown",
            start_time=now,
            last_updated=now,
        )


_UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "total_contacts",
        "processed_contacts",
        "failed_contacts",
        "progress_percentage",
        "error",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def progress_percentage(processed: int, total: int) -> int:
    """``round(processed / total * 100)`` rounding halves up; 0 when total is 0."""
    if total <= 0:
        return 0
    return min(100, max(0, (processed * 200 + total) // (2 * total)))


class JobStatusTracker:
    """Process-wide job registry.

    Nothing here raises on unknown ids: lookups and updates return ``None``
    and the caller decides what absence means. Returned objects are copies,
    so callers cannot mutate stored state behind the tracker's back.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobStatus] = {}
        self._lock = threading.Lock()

    def create_job(self, user_id: str | None, job_type: str) -> JobStatus:
        """Register a new job in ``started`` state with zeroed counters."""
        now = _utcnow()
        job = JobStatus(
            job_id=uuid.uuid4().hex,
            user_id=user_id,
            type=job_type,
            start_time=now,
            last_updated=now,
        )
        with self._lock:
            self._jobs[job.job_id] = job
        logger.info(
            "Job created",
            extra={"job_id": job.job_id, "user_id": user_id, "job_type": job_type},
        )
        return job.model_copy()

    def get_job(self, job_id: str) -> JobStatus | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def update_job(self, job_id: str, **updates: Any) -> JobStatus | None:
        """Merge ``updates`` into a job and refresh ``last_updated``.

        The percentage is recomputed whenever ``total_contacts`` is positive.
        Unknown field names are ignored.

        Returns:
            The updated snapshot, or None if the job does not exist.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            logger.warning(
                "Ignoring unknown job fields",
                extra={"job_id": job_id, "fields": sorted(unknown)},
            )
        changes = {k: v for k, v in updates.items() if k in _UPDATABLE_FIELDS}

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            merged = job.model_dump()
            merged.update(changes)
            merged["last_updated"] = _utcnow()
            if merged["total_contacts"] > 0 and "progress_percentage" not in changes:
                merged["progress_percentage"] = progress_percentage(
                    merged["processed_contacts"], merged["total_contacts"]
                )
            try:
                updated = JobStatus.model_validate(merged)
            except ValueError as e:
                logger.warning(
                    "Rejected invalid job update",
                    extra={"job_id": job_id, "error": str(e)},
                )
                return job.model_copy()

            self._jobs[job_id] = updated
            return updated.model_copy()

    def complete_job(
        self,
        job_id: str,
        total: int,
        processed: int,
        failed: int,
    ) -> JobStatus | None:
        """Mark a job completed with its final counters at 100 percent."""
        return self.update_job(
            job_id,
            status=JobState.COMPLETED,
            total_contacts=total,
            processed_contacts=processed,
            failed_contacts=failed,
            progress_percentage=100,
        )

    def fail_job(self, job_id: str, error: str) -> JobStatus | None:
        """Mark a job failed; counters keep the last observed values."""
        return self.update_job(job_id, status=JobState.FAILED, error=error)

    def get_user_jobs(self, user_id: str) -> list[JobStatus]:
        with self._lock:
            return [job.model_copy() for job in self._jobs.values() if job.user_id == user_id]

    def cleanup_old_jobs(self, max_age_hours: float = 24) -> int:
        """Drop jobs not updated within ``max_age_hours``.

        Returns:
            Number of jobs removed.
        """
        cutoff = _utcnow() - timedelta(hours=max_age_hours)
        with self._lock:
            stale = [job_id for job_id, job in self._jobs.items() if job.last_updated < cutoff]
            for job_id in stale:
                del self._jobs[job_id]

        if stale:
            logger.info(
                "Old jobs removed",
                extra={"removed": len(stale), "max_age_hours": max_age_hours},
            )
        return len(stale)
