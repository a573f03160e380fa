"""
FastAPI dependencies exposing the application-scoped job objects.

Both live on ``app.state`` and are created by ``create_app``.
"""

from fastapi import Request

from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.jobs.tracker import JobStatusTracker


def get_job_tracker(request: Request) -> JobStatusTracker:
    return request.app.state.job_tracker


def get_task_runner(request: Request) -> BackgroundTaskRunner:
    return request.app.state.task_runner
