"""
Configuration for the wallet ledger service.

Everything is read from environment variables prefixed with ``WALLET_``
(or a local ``.env`` file) and validated once at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-secret-change-me"


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Auth
    jwt_secret: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="HMAC secret used to sign access tokens",
    )
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_minutes: int = Field(
        default=60 * 24 * 7,
        ge=1,
        description="Lifetime of an issued bearer token",
    )
    google_client_id: Optional[str] = Field(
        default=None,
        description="OAuth client id expected as the audience of Google ID tokens",
    )
    google_jwks: Optional[str] = Field(
        default=None,
        description="JSON web key set used to verify Google ID tokens",
    )

    # Store
    store_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long a request may wait on a contended account or budget",
    )

    # Validation policy
    max_label_length: int = Field(default=120, ge=1)
    max_category_length: int = Field(default=40, ge=1)
    strict_categories: bool = Field(
        default=False,
        description="Reject unknown categories instead of filing them under 'other'",
    )
    allow_expense_overdraft: bool = Field(
        default=False,
        description="Allow expenses to take the wallet balance below zero",
    )

    # Logging / HTTP
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)
    cors_origins: str = Field(default="*")

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> LedgerSettings:
    return LedgerSettings()
