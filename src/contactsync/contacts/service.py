"""
Contact service for business logic.

CSV imports are parsed and validated inside the request; writing the accepted
contacts (and the optional CRM bulk import) continues on the background task
runner after the response has been sent.
"""

import asyncio
from collections.abc import AsyncIterator, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.config import Settings, get_settings
from contactsync.contacts.csv_exporter import stream_contacts_csv
from contactsync.contacts.csv_parser import ChunkSource, CSVParser
from contactsync.contacts.repository import ContactRepository, SortDirection
from contactsync.contacts.schemas import (
    CONTACT_CSV_HEADERS,
    ContactCreate,
    ContactCSVRecord,
    ContactCursorResponse,
    ContactData,
    ContactListSummary,
    ContactPageResponse,
    ContactResponse,
    ImportResponse,
)
from contactsync.contacts.transform import (
    contact_to_create_payload,
    contact_to_import_record,
    created_to_contact,
    csv_record_to_contact,
)
from contactsync.crm.config import get_crm_config
from contactsync.crm.interface import ContactSource
from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.shared.database import SessionScope
from contactsync.shared.exceptions import NotFoundError
from contactsync.shared.logging import get_logger

logger = get_logger(__name__)


class ContactService:
    """Service for contact management operations."""

    def __init__(
        self,
        session: AsyncSession,
        contact_repository: ContactRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize contact service.

        Args:
            session: Async database session.
            contact_repository: Optional contact repository (for DI).
            settings: Optional settings override.
        """
        self._session = session
        self._contact_repo = contact_repository or ContactRepository(session)
        self._settings = settings or get_settings()

    async def get_contacts(
        self,
        user_id: UUID,
        page: int = 1,
        page_size: int = 20,
        sort_field: str = "id",
        sort_direction: SortDirection = "asc",
    ) -> ContactPageResponse:
        """Get one page-numbered slice of the user's contacts."""
        result = await self._contact_repo.find_page_count(
            user_id,
            page=page,
            page_size=page_size,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )
        return ContactPageResponse(
            items=[ContactResponse.model_validate(c.model_dump()) for c in result.items],
            total_count=result.total_count,
            total_pages=result.total_pages,
            current_page=result.current_page,
            page_size=page_size,
        )

    async def get_contacts_after(
        self,
        user_id: UUID,
        page_size: int = 20,
        cursor: int | None = None,
        sort_direction: SortDirection = "asc",
    ) -> ContactCursorResponse:
        """Get the keyset page following ``cursor``."""
        result = await self._contact_repo.find_page(
            user_id,
            page_size=page_size,
            cursor=cursor,
            sort_direction=sort_direction,
        )
        return ContactCursorResponse(
            items=[ContactResponse.model_validate(c.model_dump()) for c in result.items],
            next_cursor=result.next_cursor,
        )

    async def get_contact(self, contact_id: int, user_id: UUID) -> ContactResponse:
        """Get one of the user's contacts.

        Raises:
            NotFoundError: If the contact does not exist or belongs to someone else.
        """
        contact = await self._contact_repo.get_by_id(contact_id, user_id=user_id)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return ContactResponse.model_validate(contact.model_dump())

    async def create_contact(
        self,
        user_id: UUID,
        data: ContactCreate,
        contact_source: ContactSource | None = None,
    ) -> ContactResponse:
        """Store a single contact, creating it in the CRM first when a source is given.

        A CRM failure aborts the call before anything is written locally.
        """
        contact = ContactData(
            user_id=user_id,
            first_name=data.first_name,
            last_name=data.last_name,
            email=str(data.email),
            phone_number=data.phone_number,
            address=data.address,
        )

        if contact_source is not None:
            created = await contact_source.create_contact(contact_to_create_payload(contact))
            contact = created_to_contact(created, contact)

        saved = await self._contact_repo.create(contact)
        await self._session.commit()

        logger.info(
            "Contact created",
            extra={
                "user_id": str(user_id),
                "contact_id": saved.id,
                "mirrored_to_crm": contact_source is not None,
            },
        )
        return ContactResponse.model_validate(saved.model_dump())


async def import_contacts_from_csv(
    stream: ChunkSource,
    user_id: UUID,
    runner: BackgroundTaskRunner,
    session_scope: SessionScope,
    contact_source: ContactSource | None = None,
    list_ids: Sequence[str] = (),
    settings: Settings | None = None,
) -> ImportResponse:
    """Parse an uploaded CSV and schedule its contacts for storage.

    The whole stream is validated before anything is scheduled, so a header
    mismatch or a read failure leaves no trace. When ``contact_source`` is
    given the contacts are also pushed to the CRM bulk import.

    Raises:
        InvalidFormatError: Header mismatch or malformed CSV.
        PrematureEndError: The upload ended before the header line.
        StreamError: Reading the upload failed.
    """
    cfg = settings or get_settings()
    result = await CSVParser(row_model=ContactCSVRecord).parse_stream(stream, CONTACT_CSV_HEADERS)
    contacts = [csv_record_to_contact(record, user_id) for record in result.records]

    logger.info(
        "CSV import accepted",
        extra={
            "user_id": str(user_id),
            "imported_count": result.count,
            "rejected_count": len(result.errors),
            "import_to_crm": contact_source is not None,
        },
    )

    if contacts:
        runner.spawn(
            persist_contacts(
                contacts,
                session_scope,
                retry_attempts=cfg.persist_retry_attempts,
                retry_backoff_seconds=cfg.persist_retry_backoff_seconds,
                batch_size=cfg.import_batch_size,
            ),
            name=f"persist-import-{user_id}",
        )

    if contact_source is not None:
        if contacts:
            integration_source = get_crm_config().integration_source
            records = [contact_to_import_record(c, integration_source) for c in contacts]
            runner.spawn(
                push_contacts_to_crm(contact_source, records, list_ids),
                name=f"crm-import-{user_id}",
            )
        else:
            await contact_source.aclose()

    return ImportResponse(
        success=True,
        imported_count=result.count,
        rejected_count=len(result.errors),
        errors=result.errors,
    )


async def persist_contacts(
    contacts: Sequence[ContactData],
    session_scope: SessionScope,
    retry_attempts: int = 0,
    retry_backoff_seconds: float = 0.5,
    batch_size: int = 50,
) -> bool:
    """Write imported contacts batch by batch, each in its own transaction.

    A batch that still fails after ``retry_attempts`` retries is counted and
    logged, and the remaining batches are written regardless. Failures never
    propagate to the runner.

    Returns:
        True if every batch was stored.
    """
    persisted = 0
    failed = 0
    batches = 0
    for start in range(0, len(contacts), batch_size):
        batch = contacts[start:start + batch_size]
        batches += 1
        if await _persist_batch(batch, session_scope, retry_attempts, retry_backoff_seconds):
            persisted += len(batch)
        else:
            failed += len(batch)
            logger.error(
                "Import batch could not be stored",
                extra={"batch": batches, "contacts": len(batch)},
            )

    logger.info(
        "Imported contacts persisted",
        extra={"persisted": persisted, "failed": failed, "batches": batches},
    )
    return failed == 0


async def _persist_batch(
    batch: Sequence[ContactData],
    session_scope: SessionScope,
    retry_attempts: int,
    retry_backoff_seconds: float,
) -> bool:
    attempts = retry_attempts + 1
    for attempt in range(1, attempts + 1):
        try:
            async with session_scope() as session:
                await ContactRepository(session).create_many(batch)
        except Exception as e:
            logger.warning(
                "Background contact persistence failed",
                extra={
                    "attempt": attempt,
                    "attempts": attempts,
                    "contacts": len(batch),
                    "error": str(e),
                },
            )
            if attempt < attempts:
                await asyncio.sleep(retry_backoff_seconds * attempt)
            continue
        return True
    return False


async def push_contacts_to_crm(
    contact_source: ContactSource,
    records: Sequence[dict[str, str]],
    list_ids: Sequence[str],
) -> bool:
    """Submit import records to the CRM and release the client afterwards."""
    try:
        ack = await contact_source.bulk_import(records, list_ids)
    except Exception as e:
        logger.error(
            "CRM bulk import failed",
            extra={"records": len(records), "error": str(e)},
        )
        return False
    finally:
        await contact_source.aclose()

    logger.info(
        "CRM bulk import submitted",
        extra={"records": len(records), "activity_id": ack.get("activity_id")},
    )
    return True


async def export_contacts_csv(
    session_scope: SessionScope,
    user_id: UUID,
    batch_size: int | None = None,
) -> AsyncIterator[bytes]:
    """Stream the user's contacts as CSV using a session owned by the stream.

    The session lives exactly as long as the response body is being produced.
    """
    size = batch_size or get_settings().export_batch_size
    async with session_scope() as session:
        async for chunk in stream_contacts_csv(ContactRepository(session), user_id, batch_size=size):
            yield chunk


async def list_crm_contact_lists(contact_source: ContactSource) -> list[ContactListSummary]:
    """Return the CRM's mailing lists."""
    try:
        lists = await contact_source.list_contact_lists()
    finally:
        await contact_source.aclose()
    return [ContactListSummary(id=item["id"], name=item["name"]) for item in lists]
