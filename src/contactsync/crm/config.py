"""
CRM provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported contact source providers."""

    CONSTANT_CONTACT = "constant_contact"
    MOCK = "mock"


class CRMConfig(BaseSettings):
    """CRM provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="CRM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider_type: ProviderType = Field(default=ProviderType.CONSTANT_CONTACT)

    base_url: str = Field(default="https://api.cc.email/v3")
    # Used when a user has no token of their own (single-account deployments).
    default_access_token: str = Field(default="")

    page_limit: int = Field(default=500, ge=1, le=1000)
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    # Written to the "cf:integration_source" custom field on bulk imports.
    integration_source: str = Field(default="contactsync")

    def get_api_url(self, path: str) -> str:
        base = self.base_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"


def get_crm_config() -> CRMConfig:
    return CRMConfig()
