"""
In-memory contact source for tests and local development.
"""

from typing import Any, Sequence

from contactsync.crm.interface import ContactSource, ContactSourceError, ContactSourcePage
from contactsync.shared.logging import get_logger

logger = get_logger(__name__)


class MockContactSource(ContactSource):
    """Serves preconfigured pages and records every write."""

    def __init__(self, pages: Sequence[Sequence[dict[str, Any]]] | None = None) -> None:
        self._pages: list[list[dict[str, Any]]] = [list(p) for p in pages or []]
        self._lists: list[dict[str, str]] = []
        self._fail_on_page: int | None = None
        self._fail_error = "Mock failure"
        self.fetch_calls: list[tuple[str | None, str | None]] = []
        self.created: list[dict[str, Any]] = []
        self.imports: list[tuple[list[dict[str, str]], list[str]]] = []

    def reset(self) -> None:
        self._pages.clear()
        self._lists.clear()
        self._fail_on_page = None
        self.fetch_calls.clear()
        self.created.clear()
        self.imports.clear()

    def set_pages(self, pages: Sequence[Sequence[dict[str, Any]]]) -> None:
        self._pages = [list(p) for p in pages]

    def set_lists(self, lists: Sequence[dict[str, str]]) -> None:
        self._lists = [dict(item) for item in lists]

    def configure_failure(self, page_index: int | None = 0, error_message: str = "Mock failure") -> None:
        """Make ``fetch_page`` raise when asked for the given zero-based page."""
        self._fail_on_page = page_index
        self._fail_error = error_message

    async def fetch_page(
        self,
        updated_after: str | None = None,
        continuation_token: str | None = None,
    ) -> ContactSourcePage:
        self.fetch_calls.append((updated_after, continuation_token))
        index = int(continuation_token) if continuation_token else 0

        if self._fail_on_page is not None and index == self._fail_on_page:
            raise ContactSourceError(message=self._fail_error, error_code="MOCK_ERROR")

        items = self._pages[index] if index < len(self._pages) else []
        has_next = index + 1 < len(self._pages)
        return ContactSourcePage(
            items=[dict(item) for item in items],
            next_continuation_token=str(index + 1) if has_next else None,
        )

    async def create_contact(self, payload: dict[str, Any]) -> dict[str, Any]:
        created = {**payload, "contact_id": f"mock-{len(self.created) + 1}"}
        self.created.append(created)
        return created

    async def bulk_import(
        self,
        records: Sequence[dict[str, str]],
        list_ids: Sequence[str],
    ) -> dict[str, Any]:
        self.imports.append(([dict(r) for r in records], list(list_ids)))
        logger.debug("Mock bulk import", extra={"records": len(records)})
        return {"activity_id": f"mock-import-{len(self.imports)}", "state": "initialized"}

    async def list_contact_lists(self) -> list[dict[str, str]]:
        return [dict(item) for item in self._lists]
