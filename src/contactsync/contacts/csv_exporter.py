"""
Streaming CSV export of contacts.

Rows are read in keyset batches (``id > last id``) and written out one batch
per chunk, so memory use is bounded by the batch size, not the table size.
"""

import csv
import io
from collections.abc import AsyncIterator, Iterable
from uuid import UUID

from contactsync.contacts.repository import ContactRepositoryProtocol
from contactsync.contacts.schemas import CONTACT_CSV_HEADERS
from contactsync.contacts.transform import contact_to_csv_values
from contactsync.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 50


def format_csv_rows(rows: Iterable[Iterable[str]]) -> str:
    """Serialize rows to CSV text.

    Fields holding a comma, a double quote or a line break are quoted and inner
    quotes doubled; everything else is written as is.
    """
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerows(rows)
    return output.getvalue()


async def stream_contacts_csv(
    repository: ContactRepositoryProtocol,
    user_id: UUID | None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    encoding: str = "utf-8",
) -> AsyncIterator[bytes]:
    """Yield the contact export as encoded CSV chunks.

    The first chunk is the header row; each following chunk holds one batch.
    Any failure, including the consumer going away mid-stream, is logged and
    re-raised so the response ends in error instead of looking complete.

    Args:
        repository: Storage read with keyset pagination.
        user_id: Owner whose contacts are exported.
        batch_size: Rows requested per page.
        encoding: Output encoding.
    """
    exported = 0
    batches = 0
    cursor: int | None = None

    logger.info(
        "Contact export started",
        extra={"user_id": str(user_id), "batch_size": batch_size},
    )
    try:
        yield format_csv_rows([CONTACT_CSV_HEADERS]).encode(encoding)

        while True:
            page = await repository.find_page(
                user_id,
                page_size=batch_size,
                cursor=cursor,
                sort_direction="asc",
            )
            if not page.items:
                break

            yield format_csv_rows(contact_to_csv_values(c) for c in page.items).encode(encoding)

            batches += 1
            exported += len(page.items)
            cursor = page.items[-1].id
    except BaseException as exc:
        logger.error(
            "Contact export aborted",
            extra={
                "user_id": str(user_id),
                "exported": exported,
                "batches": batches,
                "error": repr(exc),
            },
        )
        raise

    logger.info(
        "Contact export completed",
        extra={"user_id": str(user_id), "exported": exported, "batches": batches},
    )
