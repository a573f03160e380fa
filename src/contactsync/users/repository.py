"""
User repository for database operations.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.users.models import User


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User) -> User:
        """Create a user and return it with its generated ID."""
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Get a user by ID.

        Args:
            user_id: User UUID.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_last_synced_at(self, user_id: UUID, timestamp: datetime) -> bool:
        """Record when the user's contacts were last pulled from the CRM.

        Args:
            user_id: User UUID.
            timestamp: Completion time of the sync.

        Returns:
            True if a user row was updated.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(last_synced_at=timestamp)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)
