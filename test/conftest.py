"""
Pytest configuration and shared fixtures.

Database tests run against a throwaway file-backed SQLite database through
aiosqlite, so background tasks can open their own connections next to the
request's.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

import jwt
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.config import get_settings
from contactsync.crm.factory import get_contact_source_factory
from contactsync.crm.mock import MockContactSource
from contactsync.shared.database import (
    DatabaseManager,
    SessionScope,
    get_db_session,
    get_session_scope,
)
from contactsync.users.models import User
from contactsync.users.repository import UserRepository

HEADER_LINE = (
    "first_name,last_name,email,phone_number,address_line_1,"
    "address_line_2,city,state,zipcode,country"
)


def crm_contact(n: int, with_address: bool = True) -> dict[str, Any]:
    """A contact in the shape the CRM API returns."""
    contact: dict[str, Any] = {
        "contact_id": f"cc-{n}",
        "email_address": {"address": f"person{n}@example.com", "permission_to_send": "implicit"},
        "first_name": f"First{n}",
        "last_name": f"Last{n}",
        "phone_numbers": [{"phone_number": f"555-010{n}", "kind": "home"}],
        "street_addresses": [],
    }
    if with_address:
        contact["street_addresses"] = [
            {
                "kind": "home",
                "street": f"{n} Main St",
                "city": "Springfield",
                "state": "IL",
                "postal_code": "62701",
                "country": "US",
            }
        ]
    return contact


def make_token(user_id: Any) -> str:
    settings = get_settings()
    return jwt.encode({"sub": str(user_id)}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def flaky_session_scope(db_manager: DatabaseManager, failures: int) -> SessionScope:
    """A session scope whose first ``failures`` openings raise."""
    state = {"left": failures}

    @asynccontextmanager
    async def scope() -> AsyncGenerator[AsyncSession, None]:
        if state["left"] > 0:
            state["left"] -= 1
            raise OSError("database is locked")
        async with db_manager.session() as session:
            yield session

    return scope


@pytest_asyncio.fixture
async def db_manager(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    async with db_manager.session() as session:
        yield session


async def _create_user(db_manager: DatabaseManager, email: str, **fields: Any) -> User:
    async with db_manager.session() as session:
        return await UserRepository(session).create(
            User(email=email, name=email.split("@")[0], **fields)
        )


@pytest_asyncio.fixture
async def test_user(db_manager: DatabaseManager) -> User:
    return await _create_user(db_manager, "owner@example.com", crm_access_token="cc-token")


@pytest_asyncio.fixture
async def other_user(db_manager: DatabaseManager) -> User:
    return await _create_user(db_manager, "someone-else@example.com")


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(test_user.id)}"}


@pytest.fixture
def mock_source() -> MockContactSource:
    return MockContactSource()


@pytest.fixture
def source_factory(mock_source: MockContactSource) -> Callable[[User], MockContactSource]:
    return lambda user: mock_source


@pytest_asyncio.fixture
async def app(
    db_manager: DatabaseManager,
    source_factory: Callable[[User], MockContactSource],
) -> AsyncGenerator[FastAPI, None]:
    from contactsync.main import create_app

    application = create_app()

    async def _override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with db_manager.session() as session:
            yield session

    application.dependency_overrides[get_db_session] = _override_get_db_session
    application.dependency_overrides[get_session_scope] = lambda: db_manager.session
    application.dependency_overrides[get_contact_source_factory] = lambda: source_factory

    yield application

    await application.state.task_runner.shutdown(grace_seconds=5.0)
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
