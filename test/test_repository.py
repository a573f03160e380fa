"""
Tests for the contact and user repositories against SQLite.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from contactsync.contacts.models import ContactSource
from contactsync.contacts.repository import ContactRepository
from contactsync.contacts.schemas import Address, ContactData
from contactsync.users.repository import UserRepository


def contacts_for(user_id, n, prefix="c"):
    return [
        ContactData(
            user_id=user_id,
            first_name=f"{prefix}{i}",
            last_name="Tester",
            email=f"{prefix}{i}@example.com",
        )
        for i in range(n)
    ]


class TestContactRepository:
    @pytest.mark.asyncio
    async def test_create_many_returns_increasing_ids(self, db_session, test_user):
        repo = ContactRepository(db_session)

        ids = await repo.create_many(contacts_for(test_user.id, 3))

        assert len(ids) == 3
        assert ids == sorted(ids)
        assert await repo.create_many([]) == []

    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, db_session, test_user):
        repo = ContactRepository(db_session)
        created = await repo.create(
            ContactData(
                user_id=test_user.id,
                first_name="Ann",
                last_name="Lee",
                email="ann@example.com",
                phone_number="555-0100",
                address=Address(address_line_1="1 Main", city="Dayton"),
                source=ContactSource.EXTERNAL,
            )
        )

        fetched = await repo.get_by_id(created.id, user_id=test_user.id)

        assert fetched.first_name == "Ann"
        assert fetched.address.address_line_1 == "1 Main"
        assert fetched.address.city == "Dayton"
        assert fetched.source == ContactSource.EXTERNAL

    @pytest.mark.asyncio
    async def test_get_by_id_respects_owner(self, db_session, test_user, other_user):
        repo = ContactRepository(db_session)
        [contact_id] = await repo.create_many(contacts_for(test_user.id, 1))

        assert await repo.get_by_id(contact_id, user_id=other_user.id) is None
        assert await repo.get_by_id(contact_id + 1000) is None

    @pytest.mark.asyncio
    async def test_contact_without_address_stays_flat(self, db_session, test_user):
        repo = ContactRepository(db_session)
        created = await repo.create(
            ContactData(user_id=test_user.id, first_name="No", last_name="Address", email="n@example.com")
        )
        assert created.address is None

    @pytest.mark.asyncio
    async def test_find_page_walks_keyset(self, db_session, test_user, other_user):
        repo = ContactRepository(db_session)
        await repo.create_many(contacts_for(test_user.id, 5))
        await repo.create_many(contacts_for(other_user.id, 2, prefix="x"))

        seen = []
        cursor = None
        while True:
            page = await repo.find_page(test_user.id, page_size=2, cursor=cursor)
            seen.extend(c.first_name for c in page.items)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        assert seen == ["c0", "c1", "c2", "c3", "c4"]

    @pytest.mark.asyncio
    async def test_find_page_descending(self, db_session, test_user):
        repo = ContactRepository(db_session)
        ids = await repo.create_many(contacts_for(test_user.id, 3))

        first = await repo.find_page(test_user.id, page_size=2, sort_direction="desc")
        second = await repo.find_page(
            test_user.id, page_size=2, cursor=first.next_cursor, sort_direction="desc"
        )

        assert [c.id for c in first.items] == [ids[2], ids[1]]
        assert [c.id for c in second.items] == [ids[0]]
        assert second.next_cursor is None

    @pytest.mark.asyncio
    async def test_rows_added_behind_cursor_show_up_once(self, db_session, test_user):
        repo = ContactRepository(db_session)
        await repo.create_many(contacts_for(test_user.id, 2))

        first = await repo.find_page(test_user.id, page_size=2)
        await repo.create_many(contacts_for(test_user.id, 1, prefix="late"))
        second = await repo.find_page(test_user.id, page_size=2, cursor=first.next_cursor)

        assert [c.first_name for c in second.items] == ["late0"]

    @pytest.mark.asyncio
    async def test_find_page_count(self, db_session, test_user):
        repo = ContactRepository(db_session)
        await repo.create_many(contacts_for(test_user.id, 5))

        page = await repo.find_page_count(test_user.id, page=2, page_size=2)

        assert page.total_count == 5
        assert page.total_pages == 3
        assert page.current_page == 2
        assert [c.first_name for c in page.items] == ["c2", "c3"]

    @pytest.mark.asyncio
    async def test_find_page_count_sorting(self, db_session, test_user):
        repo = ContactRepository(db_session)
        await repo.create_many(contacts_for(test_user.id, 3))

        page = await repo.find_page_count(
            test_user.id, page=1, page_size=10, sort_field="email", sort_direction="desc"
        )

        assert [c.email for c in page.items] == [
            "c2@example.com",
            "c1@example.com",
            "c0@example.com",
        ]

    @pytest.mark.asyncio
    async def test_find_page_count_empty(self, db_session):
        page = await ContactRepository(db_session).find_page_count(uuid4())

        assert page.total_count == 0
        assert page.total_pages == 0
        assert page.items == []


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_update_last_synced_at(self, db_manager, test_user):
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        async with db_manager.session() as session:
            assert await UserRepository(session).update_last_synced_at(test_user.id, stamp)

        async with db_manager.session() as session:
            user = await UserRepository(session).get_by_id(test_user.id)

        assert user.last_synced_at.replace(tzinfo=None) == stamp.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, db_session):
        stamp = datetime.now(timezone.utc)
        assert await UserRepository(db_session).update_last_synced_at(uuid4(), stamp) is False
