"""
Background job tracking and execution.
"""

from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.jobs.tracker import JobState, JobStatus, JobStatusTracker

__all__ = ["BackgroundTaskRunner", "JobState", "JobStatus", "JobStatusTracker"]
