"""
Constant Contact v3 contact source.

Uses httpx for HTTP requests. Pagination follows ``_links.next.href``; the
``cursor`` query parameter of that link is used as the continuation token.
"""

from typing import Any, Sequence
from urllib.parse import parse_qs, urlparse

import httpx

from contactsync.crm.config import CRMConfig, get_crm_config
from contactsync.crm.interface import ContactSource, ContactSourceError, ContactSourcePage
from contactsync.shared.logging import get_logger

logger = get_logger(__name__)

CONTACT_INCLUDES = "custom_fields,phone_numbers,street_addresses"


def cursor_from_next_link(href: str | None) -> str | None:
    """Extract the ``cursor`` parameter from a ``_links.next.href`` value."""
    if not href:
        return None
    values = parse_qs(urlparse(href).query).get("cursor")
    return values[0] if values and values[0] else None


class ConstantContactClient(ContactSource):
    """Constant Contact API client bound to one account's access token."""

    def __init__(
        self,
        access_token: str,
        config: CRMConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_crm_config()
        self._access_token = access_token
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        client = self._get_client()
        try:
            response = await client.request(
                method,
                self._config.get_api_url(path),
                params=params,
                json=json,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.exception(
                "HTTP error calling Constant Contact",
                extra={"method": method, "path": path},
            )
            raise ContactSourceError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            error_data = self._error_payload(response)
            logger.error(
                "Constant Contact request failed",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "error": error_data,
                },
            )
            raise ContactSourceError(
                message=self._error_message(error_data, response.status_code),
                error_code=str(response.status_code),
                provider_response=error_data,
            )

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_payload(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"raw": response.text[:500]}
        # The v3 API answers errors with a list of {error_key, error_message}.
        if isinstance(data, list):
            return {"errors": data}
        return data if isinstance(data, dict) else {"raw": data}

    @staticmethod
    def _error_message(error_data: dict[str, Any], status_code: int) -> str:
        errors = error_data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("error_message")
            if message:
                return str(message)
        return str(error_data.get("error_message") or f"Constant Contact returned HTTP {status_code}")

    async def fetch_page(
        self,
        updated_after: str | None = None,
        continuation_token: str | None = None,
    ) -> ContactSourcePage:
        if continuation_token:
            params: dict[str, Any] = {"cursor": continuation_token}
        else:
            params = {"include": CONTACT_INCLUDES, "limit": self._config.page_limit}
            if updated_after:
                params["updated_after"] = updated_after

        data = await self._request("GET", "/contacts", params=params)
        next_href = ((data.get("_links") or {}).get("next") or {}).get("href")
        return ContactSourcePage(
            items=list(data.get("contacts") or []),
            next_continuation_token=cursor_from_next_link(next_href),
        )

    async def create_contact(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/contacts", json=payload)

    async def bulk_import(
        self,
        records: Sequence[dict[str, str]],
        list_ids: Sequence[str],
    ) -> dict[str, Any]:
        logger.info(
            "Submitting Constant Contact bulk import",
            extra={"records": len(records), "list_ids": list(list_ids)},
        )
        return await self._request(
            "POST",
            "/activities/contacts_json_import",
            json={"import_data": list(records), "list_ids": list(list_ids)},
        )

    async def list_contact_lists(self) -> list[dict[str, str]]:
        data = await self._request("GET", "/contact_lists")
        return [
            {"id": str(item.get("list_id") or item.get("id") or ""), "name": str(item.get("name") or "")}
            for item in data.get("lists") or []
        ]
