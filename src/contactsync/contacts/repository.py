"""
Contact repository for database operations.
"""

from dataclasses import dataclass, field
from typing import Literal, Protocol, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.contacts.models import Contact
from contactsync.contacts.schemas import ContactData

SortDirection = Literal["asc", "desc"]

# Columns a caller may sort the page-numbered listing by.
SORTABLE_FIELDS: dict[str, object] = {
    "id": Contact.id,
    "first_name": Contact.first_name,
    "last_name": Contact.last_name,
    "email": Contact.email,
    "created_at": Contact.created_at,
}


@dataclass
class CursorPage:
    """One keyset page; ``next_cursor`` is the last id, or None when exhausted."""

    items: list[ContactData] = field(default_factory=list)
    next_cursor: int | None = None


@dataclass
class ContactPage:
    """One page of a page-numbered listing with totals."""

    items: list[ContactData]
    total_count: int
    total_pages: int
    current_page: int


class ContactRepositoryProtocol(Protocol):
    """Protocol for contact repository operations."""

    async def create_many(self, contacts: Sequence[ContactData]) -> list[int]:
        """Create multiple contacts in bulk."""
        ...

    async def find_page(
        self,
        user_id: UUID | None,
        page_size: int = 50,
        cursor: int | None = None,
        sort_direction: SortDirection = "asc",
    ) -> CursorPage:
        """Get the next keyset page after ``cursor``."""
        ...


class ContactRepository:
    """Repository for contact database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def create(self, contact: ContactData) -> ContactData:
        """Create a single contact.

        Args:
            contact: Contact to create.

        Returns:
            Created contact with ID.
        """
        row = contact.to_model()
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return ContactData.from_model(row)

    async def create_many(self, contacts: Sequence[ContactData]) -> list[int]:
        """Create multiple contacts in bulk.

        Args:
            contacts: Contacts to create.

        Returns:
            Generated IDs in input order.
        """
        if not contacts:
            return []

        rows = [contact.to_model() for contact in contacts]
        self._session.add_all(rows)
        await self._session.flush()
        return [row.id for row in rows]

    async def get_by_id(self, contact_id: int, user_id: UUID | None = None) -> ContactData | None:
        """Get a contact by ID, optionally restricted to one owner."""
        stmt = select(Contact).where(Contact.id == contact_id)
        if user_id is not None:
            stmt = stmt.where(Contact.user_id == user_id)
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return ContactData.from_model(row) if row else None

    async def find_page(
        self,
        user_id: UUID | None,
        page_size: int = 50,
        cursor: int | None = None,
        sort_direction: SortDirection = "asc",
    ) -> CursorPage:
        """Get the next keyset page.

        Rows are ordered by id; ``cursor`` is the last id of the previous page.
        Ordering on the monotonic id keeps pages stable while new rows are
        appended behind the cursor.

        Args:
            user_id: Owner filter, or None for every owner.
            page_size: Maximum rows to return.
            cursor: Last id already returned, or None for the first page.
            sort_direction: "asc" or "desc".

        Returns:
            The page and the cursor for the next call.
        """
        stmt = select(Contact)
        if user_id is not None:
            stmt = stmt.where(Contact.user_id == user_id)
        if sort_direction == "desc":
            if cursor is not None:
                stmt = stmt.where(Contact.id < cursor)
            stmt = stmt.order_by(Contact.id.desc())
        else:
            if cursor is not None:
                stmt = stmt.where(Contact.id > cursor)
            stmt = stmt.order_by(Contact.id.asc())

        result = await self._session.execute(stmt.limit(page_size))
        items = [ContactData.from_model(row) for row in result.scalars().all()]

        next_cursor = items[-1].id if len(items) == page_size else None
        return CursorPage(items=items, next_cursor=next_cursor)

    async def find_page_count(
        self,
        user_id: UUID | None,
        page: int = 1,
        page_size: int = 20,
        sort_field: str = "id",
        sort_direction: SortDirection = "asc",
    ) -> ContactPage:
        """Get a page-numbered slice with total counts.

        Args:
            user_id: Owner filter, or None for every owner.
            page: Page number (1-indexed).
            page_size: Number of items per page.
            sort_field: One of ``SORTABLE_FIELDS``; unknown names sort by id.
            sort_direction: "asc" or "desc".

        Returns:
            Items of the page plus totals.
        """
        base_query = select(Contact)
        if user_id is not None:
            base_query = base_query.where(Contact.user_id == user_id)

        count_stmt = select(func.count()).select_from(base_query.subquery())
        total_result = await self._session.execute(count_stmt)
        total = total_result.scalar() or 0

        column = SORTABLE_FIELDS.get(sort_field, Contact.id)
        order = column.desc() if sort_direction == "desc" else column.asc()  # type: ignore[attr-defined]
        offset = (page - 1) * page_size
        stmt = base_query.order_by(order, Contact.id.asc()).offset(offset).limit(page_size)
        result = await self._session.execute(stmt)
        items = [ContactData.from_model(row) for row in result.scalars().all()]

        return ContactPage(
            items=items,
            total_count=total,
            total_pages=(total + page_size - 1) // page_size if total > 0 else 0,
            current_page=page,
        )
