"""
SQLAlchemy models for contacts.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from contactsync.shared.database import Base


class ContactSource(str, Enum):
    """Where a contact was first recorded."""

    INTERNAL = "internal"
    EXTERNAL = "external"


class Contact(Base):
    """Contact row.

    The integer primary key grows monotonically and is the keyset used by the
    CSV export and the cursor listing.
    """

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="", index=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Address, flattened; the schema layer nests it back.
    address_line_1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zipcode: Mapped[str | None] = mapped_column(String(50), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)

    source: Mapped[ContactSource] = mapped_column(
        SQLEnum(ContactSource, name="contact_source", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ContactSource.INTERNAL,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, email={self.email}, source={self.source})>"
