"""
Bulk pull of CRM contacts into local storage.

A sync walks the CRM's paginated contact listing page by page. Every page is
stored in its own transaction: a page that cannot be written is counted as
failed and the walk goes on, while a page that cannot be fetched ends the job
as failed. Progress is published through the job tracker after each page.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.contacts.repository import ContactRepository
from contactsync.contacts.schemas import ContactData, SyncStartResponse
from contactsync.contacts.transform import external_to_contact
from contactsync.crm.factory import ContactSourceFactory
from contactsync.crm.interface import ContactSource
from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.jobs.tracker import JobState, JobStatus, JobStatusTracker
from contactsync.shared.database import SessionScope
from contactsync.shared.exceptions import PersistenceError
from contactsync.shared.logging import get_logger
from contactsync.users.models import User
from contactsync.users.repository import UserRepository

logger = get_logger(__name__)

SYNC_JOB_TYPE = "constant_contact_sync"
SYNC_STARTED_MESSAGE = "Bulk sync started. This process will continue in the background."


class BulkSyncOrchestrator:
    """Starts bulk syncs and answers status polls for them."""

    def __init__(
        self,
        tracker: JobStatusTracker,
        runner: BackgroundTaskRunner,
        session_scope: SessionScope,
        contact_source_factory: ContactSourceFactory,
        contact_repository_factory: Callable[[AsyncSession], ContactRepository] = ContactRepository,
        user_repository_factory: Callable[[AsyncSession], UserRepository] = UserRepository,
    ) -> None:
        self._tracker = tracker
        self._runner = runner
        self._session_scope = session_scope
        self._contact_source_factory = contact_source_factory
        self._contact_repository_factory = contact_repository_factory
        self._user_repository_factory = user_repository_factory

    async def start_bulk_sync(self, user: User) -> SyncStartResponse:
        """Create a sync job for ``user`` and schedule it.

        Returns as soon as the job is scheduled; the job id in the response is
        what callers poll.

        Raises:
            ValidationError: If the user has no usable CRM connection.
            RuntimeError: If the task runner no longer accepts work; the job
                is marked failed first.
        """
        source = self._contact_source_factory(user)
        job = self._tracker.create_job(str(user.id), SYNC_JOB_TYPE)
        updated_after = _isoformat(user.last_synced_at)

        try:
            self._runner.spawn(
                self.run_bulk_sync(user.id, job.job_id, source, updated_after),
                name=f"bulk-sync-{job.job_id}",
            )
        except RuntimeError as e:
            self._tracker.fail_job(job.job_id, str(e))
            await source.aclose()
            logger.error(
                "Bulk sync could not be scheduled",
                extra={"job_id": job.job_id, "user_id": str(user.id), "error": str(e)},
            )
            raise
        logger.info(
            "Bulk sync scheduled",
            extra={
                "job_id": job.job_id,
                "user_id": str(user.id),
                "updated_after": updated_after,
            },
        )
        return SyncStartResponse(
            success=True,
            message=SYNC_STARTED_MESSAGE,
            job_id=job.job_id,
            status=job.status.value,
        )

    def get_bulk_sync_status(self, job_id: str) -> JobStatus:
        """Current status of a job, or a ``not_found`` placeholder."""
        return self._tracker.get_job(job_id) or JobStatus.not_found(job_id)

    async def run_bulk_sync(
        self,
        user_id: UUID,
        job_id: str,
        source: ContactSource,
        updated_after: str | None = None,
    ) -> None:
        """Page through the CRM and store every page.

        Never raises: every outcome ends up in the job's terminal state.
        """
        processed = 0
        failed = 0
        batch_number = 0
        token: str | None = None

        try:
            self._tracker.update_job(job_id, status=JobState.IN_PROGRESS)

            while True:
                page = await source.fetch_page(
                    updated_after=updated_after if token is None else None,
                    continuation_token=token,
                )
                batch_number += 1

                if page.items:
                    contacts = [
                        external_to_contact(item).model_copy(update={"user_id": user_id})
                        for item in page.items
                    ]
                    try:
                        await self._persist_batch(contacts)
                    except PersistenceError as e:
                        failed += len(contacts)
                        logger.error(
                            "Sync batch could not be stored",
                            extra={
                                "job_id": job_id,
                                "batch": batch_number,
                                "contacts": len(contacts),
                                "error": str(e),
                            },
                        )
                    else:
                        processed += len(contacts)

                    self._tracker.update_job(
                        job_id,
                        status=JobState.IN_PROGRESS,
                        processed_contacts=processed,
                        failed_contacts=failed,
                    )
                    logger.info(
                        "Sync batch processed",
                        extra={
                            "job_id": job_id,
                            "batch": batch_number,
                            "processed": processed,
                            "failed": failed,
                        },
                    )

                token = page.next_continuation_token
                if not token:
                    break

            total = processed + failed
            self._tracker.update_job(job_id, total_contacts=total)

            completed_at = datetime.now(timezone.utc)
            async with self._session_scope() as session:
                await self._user_repository_factory(session).update_last_synced_at(
                    user_id, completed_at
                )

            self._tracker.complete_job(job_id, total=total, processed=processed, failed=failed)
            logger.info(
                "Bulk sync completed",
                extra={
                    "job_id": job_id,
                    "user_id": str(user_id),
                    "total": total,
                    "processed": processed,
                    "failed": failed,
                    "batches": batch_number,
                },
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            self._tracker.fail_job(job_id, message)
            logger.error(
                "Bulk sync failed",
                extra={
                    "job_id": job_id,
                    "user_id": str(user_id),
                    "processed": processed,
                    "failed": failed,
                    "error": message,
                },
            )
        finally:
            await source.aclose()

    async def _persist_batch(self, contacts: list[ContactData]) -> None:
        try:
            async with self._session_scope() as session:
                await self._contact_repository_factory(session).create_many(contacts)
        except Exception as e:
            raise PersistenceError(
                message=f"Failed to store {len(contacts)} contacts: {e}",
                details={"contacts": len(contacts)},
            ) from e


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
