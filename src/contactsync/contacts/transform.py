"""
Pure mappings between CSV rows, internal contacts and CRM API contacts.

Every function here is total: missing optional input never raises, and every
required output field is present (defaulting to an empty string).
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from contactsync.contacts.models import ContactSource
from contactsync.contacts.schemas import (
    ADDRESS_FIELDS,
    CONTACT_CSV_HEADERS,
    Address,
    ContactCSVRecord,
    ContactData,
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _first(items: Any) -> Mapping[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], Mapping):
        return items[0]
    return {}


def csv_record_to_contact(record: Mapping[str, Any], user_id: UUID | None) -> ContactData:
    """Map one parsed CSV row to an internal contact owned by ``user_id``."""
    row = ContactCSVRecord.model_validate({k: _text(v) for k, v in record.items()})
    return ContactData(
        user_id=user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone_number=row.phone_number,
        address=Address(**{name: getattr(row, name) for name in ADDRESS_FIELDS}),
        source=ContactSource.INTERNAL,
    )


def external_to_contact(api_contact: Mapping[str, Any]) -> ContactData:
    """Map a CRM API contact to an internal contact.

    The first phone number and the first street address are taken as the
    canonical values. The owner is left unset for the caller to stamp.
    """
    email_address = api_contact.get("email_address") or {}
    phone = _first(api_contact.get("phone_numbers"))
    street = _first(api_contact.get("street_addresses"))

    address = None
    if street:
        address = Address(
            address_line_1=_text(street.get("street")),
            address_line_2=_text(street.get("street2")),
            city=_text(street.get("city")),
            state=_text(street.get("state")),
            zipcode=_text(street.get("postal_code")),
            country=_text(street.get("country")),
        )

    return ContactData(
        user_id=None,
        first_name=_text(api_contact.get("first_name")),
        last_name=_text(api_contact.get("last_name")),
        email=_text(email_address.get("address") if isinstance(email_address, Mapping) else ""),
        phone_number=_text(phone.get("phone_number")) or None,
        address=address,
        source=ContactSource.EXTERNAL,
    )


def contact_to_import_record(contact: ContactData, integration_source: str) -> dict[str, str]:
    """Flatten a contact into one record of the CRM bulk JSON import."""
    record = {
        "email": contact.email,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "phone": contact.phone_number or "",
    }
    if contact.address is not None:
        record.update(
            street=contact.address.address_line_1,
            street2=contact.address.address_line_2 or "",
            city=contact.address.city or "",
            state=contact.address.state or "",
            zip=contact.address.zipcode or "",
            country=contact.address.country or "",
        )
    record["cf:integration_source"] = integration_source
    return record


def contact_to_create_payload(contact: ContactData) -> dict[str, Any]:
    """Build the CRM payload for creating a single contact."""
    return {
        "email_address": {"address": contact.email, "permission_to_send": "explicit"},
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "create_source": "Account",
        "phone_numbers": (
            [{"phone_number": contact.phone_number, "kind": "home"}]
            if contact.phone_number
            else []
        ),
        "street_addresses": (
            [
                {
                    "kind": "home",
                    "street": contact.address.address_line_1,
                    "city": contact.address.city or "",
                    "state": contact.address.state or "",
                    "postal_code": contact.address.zipcode or "",
                    "country": contact.address.country or "",
                }
            ]
            if contact.address is not None
            else []
        ),
        "custom_fields": [],
        "list_memberships": [],
        "taggings": [],
        "notes": [],
    }


def created_to_contact(api_contact: Mapping[str, Any], original: ContactData) -> ContactData:
    """Merge the CRM's answer to a create call back onto the submitted contact."""
    created = external_to_contact(api_contact)
    return original.model_copy(
        update={
            "first_name": created.first_name or original.first_name,
            "last_name": created.last_name or original.last_name,
            "email": created.email or original.email,
            "phone_number": created.phone_number or original.phone_number,
        }
    )


def contact_to_csv_values(contact: ContactData) -> list[str]:
    """Return the export columns of a contact in header order."""
    flat: dict[str, Any] = {
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "phone_number": contact.phone_number,
    }
    if contact.address is not None:
        flat.update(contact.address.model_dump())
    return [_text(flat.get(name)) for name in CONTACT_CSV_HEADERS]
