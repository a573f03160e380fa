"""
Contact source interface definition.

A contact source is the external CRM that contacts are pulled from during a
bulk sync and pushed to on import.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

from contactsync.shared.exceptions import ExternalFetchError


@dataclass(frozen=True)
class ContactSourcePage:
    """One page of CRM contacts in the CRM's own shape."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_continuation_token: str | None = None


class ContactSourceError(ExternalFetchError):
    """Error raised by a contact source call."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, details=provider_response or {})
        self.error_code = error_code
        self.provider_response = provider_response or {}


class ContactSource(ABC):
    """Abstract interface for external contact providers."""

    @abstractmethod
    async def fetch_page(
        self,
        updated_after: str | None = None,
        continuation_token: str | None = None,
    ) -> ContactSourcePage:
        """Fetch one page of contacts.

        Args:
            updated_after: ISO-8601 lower bound on modification time; only used
                for the first page.
            continuation_token: Token from the previous page, None for the first.
        """
        ...

    @abstractmethod
    async def create_contact(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create one contact and return the provider's representation."""
        ...

    @abstractmethod
    async def bulk_import(
        self,
        records: Sequence[dict[str, str]],
        list_ids: Sequence[str],
    ) -> dict[str, Any]:
        """Submit an asynchronous bulk import; returns the provider's ack."""
        ...

    @abstractmethod
    async def list_contact_lists(self) -> list[dict[str, str]]:
        """Return the provider's contact lists as ``{"id", "name"}`` dicts."""
        ...

    async def aclose(self) -> None:
        """Release any held resources."""
        return None
