"""
Contact API router.

Listing, single-contact creation, CSV import/export and the CRM bulk sync
endpoints, all scoped to the authenticated user.
"""

from collections.abc import AsyncIterator
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.auth.dependencies import CurrentUser
from contactsync.config import Settings, get_settings
from contactsync.contacts.schemas import (
    ContactCreate,
    ContactCursorResponse,
    ContactListSummary,
    ContactPageResponse,
    ContactResponse,
    ImportResponse,
    SyncStartResponse,
)
from contactsync.contacts.service import (
    ContactService,
    export_contacts_csv,
    import_contacts_from_csv,
    list_crm_contact_lists,
)
from contactsync.crm.factory import ContactSourceFactory, get_contact_source_factory
from contactsync.jobs.dependencies import get_job_tracker, get_task_runner
from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.jobs.tracker import JobStatus, JobStatusTracker
from contactsync.shared.database import SessionScope, get_db_session, get_session_scope
from contactsync.shared.exceptions import ValidationError
from contactsync.shared.logging import get_logger
from contactsync.sync.orchestrator import BulkSyncOrchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


def get_contact_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ContactService:
    """Dependency for contact service."""
    return ContactService(session=session)


def get_sync_orchestrator(
    tracker: Annotated[JobStatusTracker, Depends(get_job_tracker)],
    runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    session_scope: Annotated[SessionScope, Depends(get_session_scope)],
    source_factory: Annotated[ContactSourceFactory, Depends(get_contact_source_factory)],
) -> BulkSyncOrchestrator:
    """Dependency for the bulk sync orchestrator."""
    return BulkSyncOrchestrator(
        tracker=tracker,
        runner=runner,
        session_scope=session_scope,
        contact_source_factory=source_factory,
    )


def describe_size_limit(max_bytes: int) -> str:
    if max_bytes >= 1024 * 1024 and max_bytes % (1024 * 1024) == 0:
        return f"{max_bytes // (1024 * 1024)}MB"
    return f"{max_bytes} bytes"


async def read_upload(
    file: UploadFile,
    max_bytes: int,
    chunk_size: int,
) -> AsyncIterator[bytes]:
    """Yield an upload in chunks, failing once more than ``max_bytes`` were read."""
    received = 0
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            return
        received += len(chunk)
        if received > max_bytes:
            raise ValidationError(
                message=f"File size exceeds the {describe_size_limit(max_bytes)} limit",
                details={"max_bytes": max_bytes},
            )
        yield chunk


@router.get(
    "",
    response_model=ContactPageResponse | ContactCursorResponse,
    summary="List contacts",
    description="Page-numbered listing by default; keyset listing when a cursor is given.",
)
async def list_contacts(
    current_user: CurrentUser,
    service: Annotated[ContactService, Depends(get_contact_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    sort_field: Annotated[str, Query(max_length=50)] = "id",
    sort_direction: Literal["asc", "desc"] = "asc",
    cursor: Annotated[int | None, Query(ge=0)] = None,
    mode: Literal["page", "cursor"] = "page",
) -> ContactPageResponse | ContactCursorResponse:
    """List the caller's contacts.

    Args:
        current_user: Authenticated user.
        service: Contact service.
        page: Page number (1-indexed), page mode only.
        page_size: Number of items per page (max 100).
        sort_field: Column to sort by, page mode only.
        sort_direction: "asc" or "desc".
        cursor: Last id of the previous keyset page.
        mode: "cursor" forces keyset mode without a cursor (first page).
    """
    if cursor is not None or mode == "cursor":
        return await service.get_contacts_after(
            current_user.id,
            page_size=page_size,
            cursor=cursor,
            sort_direction=sort_direction,
        )
    return await service.get_contacts(
        current_user.id,
        page=page,
        page_size=page_size,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


@router.post(
    "",
    response_model=ContactResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create contact",
)
async def create_contact(
    data: ContactCreate,
    current_user: CurrentUser,
    service: Annotated[ContactService, Depends(get_contact_service)],
    source_factory: Annotated[ContactSourceFactory, Depends(get_contact_source_factory)],
    mirror_to_crm: bool = False,
) -> ContactResponse:
    """Create one contact, optionally creating it in the CRM first."""
    if not mirror_to_crm:
        return await service.create_contact(current_user.id, data)

    source = source_factory(current_user)
    try:
        return await service.create_contact(current_user.id, data, contact_source=source)
    finally:
        await source.aclose()


@router.post(
    "/import",
    response_model=ImportResponse,
    status_code=status.HTTP_200_OK,
    summary="Import contacts CSV",
    description="Validate a contacts CSV and store its rows in the background.",
)
async def import_contacts(
    file: Annotated[UploadFile, File(description="CSV file with contacts")],
    current_user: CurrentUser,
    runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    session_scope: Annotated[SessionScope, Depends(get_session_scope)],
    source_factory: Annotated[ContactSourceFactory, Depends(get_contact_source_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
    import_to_constant_contact: bool = False,
    list_ids: Annotated[list[str], Query()] = [],
) -> ImportResponse:
    """Import contacts from a CSV file.

    The header must be exactly the contact template columns. Rows are
    validated before the response is sent; storage happens afterwards.

    Raises:
        400: Wrong extension, file too large or empty, invalid CSV.
    """
    filename = file.filename or ""
    logger.info(
        "CSV import started",
        extra={
            "user_id": str(current_user.id),
            "filename": filename,
            "content_type": file.content_type,
            "import_to_crm": import_to_constant_contact,
        },
    )

    if not filename.lower().endswith(".csv"):
        raise ValidationError("File must be a CSV")
    if file.size is not None:
        if file.size == 0:
            raise ValidationError("Empty file uploaded")
        if file.size > settings.import_max_file_size_bytes:
            raise ValidationError(
                message=(
                    f"File size exceeds the "
                    f"{describe_size_limit(settings.import_max_file_size_bytes)} limit"
                ),
                details={"size": file.size, "max_bytes": settings.import_max_file_size_bytes},
            )

    source = source_factory(current_user) if import_to_constant_contact else None
    try:
        return await import_contacts_from_csv(
            read_upload(file, settings.import_max_file_size_bytes, settings.import_chunk_size),
            current_user.id,
            runner=runner,
            session_scope=session_scope,
            contact_source=source,
            list_ids=list_ids,
            settings=settings,
        )
    except Exception:
        if source is not None:
            await source.aclose()
        raise


@router.get(
    "/export",
    response_class=StreamingResponse,
    summary="Export contacts CSV",
)
async def export_contacts(
    current_user: CurrentUser,
    session_scope: Annotated[SessionScope, Depends(get_session_scope)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StreamingResponse:
    """Stream every contact of the caller as a CSV download."""
    return StreamingResponse(
        export_contacts_csv(session_scope, current_user.id, batch_size=settings.export_batch_size),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=contacts.csv"},
    )


@router.get(
    "/lists",
    response_model=list[ContactListSummary],
    summary="List CRM contact lists",
)
async def get_contact_lists(
    current_user: CurrentUser,
    source_factory: Annotated[ContactSourceFactory, Depends(get_contact_source_factory)],
) -> list[ContactListSummary]:
    return await list_crm_contact_lists(source_factory(current_user))


@router.post(
    "/sync",
    response_model=SyncStartResponse,
    status_code=status.HTTP_200_OK,
    summary="Start CRM bulk sync",
)
async def start_sync(
    current_user: CurrentUser,
    orchestrator: Annotated[BulkSyncOrchestrator, Depends(get_sync_orchestrator)],
) -> SyncStartResponse:
    """Start pulling the caller's CRM contacts; poll ``GET /sync`` with the job id."""
    return await orchestrator.start_bulk_sync(current_user)


@router.get(
    "/sync",
    response_model=JobStatus,
    summary="Get bulk sync status",
)
async def get_sync_status(
    current_user: CurrentUser,
    orchestrator: Annotated[BulkSyncOrchestrator, Depends(get_sync_orchestrator)],
    job_id: Annotated[str | None, Query(alias="jobId")] = None,
) -> JobStatus:
    """Status of one sync job; unknown ids answer with ``status="not_found"``."""
    if not job_id:
        raise ValidationError("jobId is required")
    return orchestrator.get_bulk_sync_status(job_id)


@router.get(
    "/sync/jobs",
    response_model=list[JobStatus],
    summary="List the caller's jobs",
)
async def list_sync_jobs(
    current_user: CurrentUser,
    tracker: Annotated[JobStatusTracker, Depends(get_job_tracker)],
) -> list[JobStatus]:
    return tracker.get_user_jobs(str(current_user.id))


@router.get(
    "/{contact_id}",
    response_model=ContactResponse,
    summary="Get contact details",
)
async def get_contact(
    contact_id: int,
    current_user: CurrentUser,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Get one of the caller's contacts.

    Raises:
        404: Contact not found.
    """
    return await service.get_contact(contact_id, current_user.id)
