"""
FastAPI dependencies resolving the calling user from a bearer token.

Tokens are HS256 JWTs whose ``sub`` claim is the user's UUID. Issuing them is
left to the identity provider in front of this service.
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from contactsync.config import get_settings
from contactsync.shared.database import get_db_session
from contactsync.shared.logging import get_logger
from contactsync.users.models import User
from contactsync.users.repository import UserRepository

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> uuid.UUID:
    """Validate a token and return the user id it was issued for.

    Raises:
        jwt.InvalidTokenError: Bad signature, expired, or malformed claims.
    """
    settings = get_settings()
    claims = jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub"]},
    )
    try:
        return uuid.UUID(str(claims["sub"]))
    except ValueError as e:
        raise jwt.InvalidTokenError("sub is not a user id") from e


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    if credentials is None:
        raise _unauthorized("missing_credentials")
    try:
        user_id = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info("Rejected bearer token", extra={"error": str(e)})
        raise _unauthorized("invalid_token") from e

    user = await UserRepository(session).get_by_id(user_id)
    if user is None:
        raise _unauthorized("user_not_found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
