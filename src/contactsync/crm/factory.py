"""
Contact source factory.

Configuration comes from CRMConfig (pydantic settings: OS env + .env).
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

from contactsync.crm.config import CRMConfig, ProviderType, get_crm_config
from contactsync.crm.constant_contact import ConstantContactClient
from contactsync.crm.interface import ContactSource
from contactsync.crm.mock import MockContactSource
from contactsync.shared.exceptions import ValidationError
from contactsync.shared.logging import get_logger
from contactsync.users.models import User

logger = get_logger(__name__)

ContactSourceFactory = Callable[[User], ContactSource]


@lru_cache(maxsize=1)
def _shared_mock_source() -> MockContactSource:
    return MockContactSource()


def build_contact_source(user: User, config: CRMConfig | None = None) -> ContactSource:
    """Create the contact source for ``user``'s CRM account.

    Raises:
        ValidationError: If the user has no CRM token and none is configured.
    """
    cfg = config or get_crm_config()

    if cfg.provider_type == ProviderType.MOCK:
        return _shared_mock_source()

    if cfg.provider_type == ProviderType.CONSTANT_CONTACT:
        token = user.crm_access_token or cfg.default_access_token
        if not token:
            raise ValidationError(
                message="Constant Contact is not connected for this user",
                details={"user_id": str(user.id)},
            )
        return ConstantContactClient(access_token=token, config=cfg)

    raise ValueError(f"Unsupported CRM provider_type: {cfg.provider_type}")


def get_contact_source_factory() -> ContactSourceFactory:
    """FastAPI dependency returning the factory used to reach a user's CRM."""
    return build_contact_source
