"""
Tests for the streaming contact CSV export.
"""

import pytest

from contactsync.contacts.csv_exporter import format_csv_rows, stream_contacts_csv
from contactsync.contacts.csv_parser import parse_csv_stream
from contactsync.contacts.repository import CursorPage
from contactsync.contacts.schemas import CONTACT_CSV_HEADERS, Address, ContactData
from contactsync.contacts.transform import contact_to_csv_values

from conftest import HEADER_LINE


class InMemoryContacts:
    """Keyset-paginated reads over a list, recording every request."""

    def __init__(self, contacts, fail_on_call=None):
        self.contacts = sorted(contacts, key=lambda c: c.id)
        self.calls = []
        self.fail_on_call = fail_on_call

    async def create_many(self, contacts):
        raise NotImplementedError

    async def find_page(self, user_id, page_size=50, cursor=None, sort_direction="asc"):
        self.calls.append((cursor, page_size))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("connection lost")
        rows = [c for c in self.contacts if cursor is None or c.id > cursor][:page_size]
        next_cursor = rows[-1].id if len(rows) == page_size else None
        return CursorPage(items=rows, next_cursor=next_cursor)


def make_contacts(n):
    return [
        ContactData(
            id=i,
            first_name=f"First{i}",
            last_name=f"Last{i}",
            email=f"person{i}@example.com",
            phone_number=f"555-{i:04d}",
            address=Address(address_line_1=f"{i} Main St", city="Springfield", country="US"),
        )
        for i in range(1, n + 1)
    ]


async def collect(stream):
    return [chunk async for chunk in stream]


class TestFormatCsvRows:
    def test_plain_fields_unquoted(self):
        assert format_csv_rows([["a", "b", ""]]) == "a,b,\n"

    def test_special_characters_are_quoted(self):
        text = format_csv_rows([["Smith, Jr.", 'say "hi"', "two\nlines"]])
        assert text == '"Smith, Jr.","say ""hi""","two\nlines"\n'


class TestStreamContactsCsv:
    @pytest.mark.asyncio
    async def test_header_then_one_chunk_per_batch(self):
        repo = InMemoryContacts(make_contacts(5))

        chunks = await collect(stream_contacts_csv(repo, None, batch_size=2))

        assert chunks[0] == (HEADER_LINE + "\n").encode("utf-8")
        assert len(chunks) == 4
        assert [c.count(b"\n") for c in chunks[1:]] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_keyset_cursor_advances_by_last_id(self):
        repo = InMemoryContacts(make_contacts(5))

        await collect(stream_contacts_csv(repo, None, batch_size=2))

        assert repo.calls == [(None, 2), (2, 2), (4, 2), (5, 2)]

    @pytest.mark.asyncio
    async def test_no_contacts_exports_header_only(self):
        repo = InMemoryContacts([])

        chunks = await collect(stream_contacts_csv(repo, None))

        assert b"".join(chunks).decode() == HEADER_LINE + "\n"

    @pytest.mark.asyncio
    async def test_missing_optional_fields_are_empty(self):
        repo = InMemoryContacts(
            [ContactData(id=1, first_name="Ann", last_name="Lee", email="ann@example.com")]
        )

        chunks = await collect(stream_contacts_csv(repo, None))

        assert chunks[1] == b"Ann,Lee,ann@example.com,,,,,,,\n"

    @pytest.mark.asyncio
    async def test_failure_mid_stream_propagates(self):
        repo = InMemoryContacts(make_contacts(5), fail_on_call=2)
        stream = stream_contacts_csv(repo, None, batch_size=2)

        received = [await stream.__anext__(), await stream.__anext__()]
        with pytest.raises(RuntimeError, match="connection lost"):
            await stream.__anext__()
        assert len(received) == 2

    @pytest.mark.asyncio
    async def test_export_reimports_to_the_same_values(self):
        contacts = make_contacts(3)
        contacts.append(
            ContactData(
                id=4,
                first_name='Quote "Q"',
                last_name="Comma, Inc",
                email="odd@example.com",
                address=Address(address_line_1="Line one\nLine two", zipcode="00501"),
            )
        )
        repo = InMemoryContacts(contacts)

        chunks = await collect(stream_contacts_csv(repo, None, batch_size=3))
        parsed = await parse_csv_stream(chunks, CONTACT_CSV_HEADERS)

        assert parsed.count == 4
        for contact, record in zip(contacts, parsed.records):
            assert [record[h] for h in CONTACT_CSV_HEADERS] == contact_to_csv_values(contact)
