"""
Pydantic schemas for contact management.
"""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from contactsync.contacts.models import Contact, ContactSource

ADDRESS_FIELDS: tuple[str, ...] = (
    "address_line_1",
    "address_line_2",
    "city",
    "state",
    "zipcode",
    "country",
)

# Column contract shared by the CSV import template and the CSV export.
CONTACT_CSV_HEADERS: list[str] = [
    "first_name",
    "last_name",
    "email",
    "phone_number",
    *ADDRESS_FIELDS,
]


class Address(BaseModel):
    """Postal address attached to a contact."""

    address_line_1: str
    address_line_2: str | None = None
    city: str | None = None
    state: str | None = None
    zipcode: str | None = None
    country: str | None = None


class ContactData(BaseModel):
    """Internal contact shape exchanged between parser, CRM client and storage."""

    id: int | None = None
    user_id: UUID | None = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str | None = None
    address: Address | None = None
    source: ContactSource = ContactSource.INTERNAL

    @classmethod
    def from_model(cls, contact: Contact) -> "ContactData":
        """Build from an ORM row, nesting the flattened address columns."""
        address = None
        if any(getattr(contact, name) for name in ADDRESS_FIELDS):
            address = Address(
                address_line_1=contact.address_line_1 or "",
                **{name: getattr(contact, name) for name in ADDRESS_FIELDS[1:]},
            )
        return cls(
            id=contact.id,
            user_id=contact.user_id,
            first_name=contact.first_name,
            last_name=contact.last_name,
            email=contact.email,
            phone_number=contact.phone_number,
            address=address,
            source=contact.source,
        )

    def to_model(self) -> Contact:
        """Build an unsaved ORM row."""
        address: dict[str, Any] = self.address.model_dump() if self.address else {}
        return Contact(
            user_id=self.user_id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone_number=self.phone_number,
            source=self.source,
            **{name: address.get(name) for name in ADDRESS_FIELDS},
        )


class ContactCreate(BaseModel):
    """Schema for creating a single contact through the API."""

    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone_number: str | None = Field(default=None, max_length=50)
    address: Address | None = None


class ContactResponse(ContactData):
    """Schema for contact response."""

    model_config = ConfigDict(from_attributes=True)

    id: int


class ContactPageResponse(BaseModel):
    """Page-numbered contact listing."""

    items: list[ContactResponse]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int


class ContactCursorResponse(BaseModel):
    """Keyset-paginated contact listing."""

    items: list[ContactResponse]
    next_cursor: int | None = None


class ContactCSVRecord(BaseModel):
    """One row of the contact CSV template, every column always present.

    Length limits mirror the storage columns so an oversized value is
    rejected with its row instead of failing the write.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=320)
    phone_number: str = Field(default="", max_length=50)
    address_line_1: str = Field(default="", max_length=255)
    address_line_2: str = Field(default="", max_length=255)
    city: str = Field(default="", max_length=255)
    state: str = Field(default="", max_length=255)
    zipcode: str = Field(default="", max_length=50)
    country: str = Field(default="", max_length=255)


class CSVRowError(BaseModel):
    """Schema for CSV row validation error."""

    line_number: int = Field(..., description="Line number in the CSV file (1-indexed)")
    field: str | None = Field(default=None, description="Field that caused the error")
    error: str = Field(..., description="Error description")
    value: str | None = Field(default=None, description="Invalid value")


class ImportResponse(BaseModel):
    """Result of an accepted CSV import; persistence continues in the background."""

    success: bool = True
    imported_count: int = Field(..., ge=0, description="Rows accepted for import")
    rejected_count: int = Field(default=0, ge=0, description="Rows skipped as malformed")
    errors: list[CSVRowError] = Field(default_factory=list)


class SyncStartResponse(BaseModel):
    """Handle returned when a bulk sync is scheduled."""

    success: bool = True
    message: str
    job_id: str
    status: str


class ContactListSummary(BaseModel):
    """A mailing list defined in the CRM."""

    id: str
    name: str
