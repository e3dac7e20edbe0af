"""Application settings loaded from environment variables.

Environment Configuration:
    CASEFILE_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: PostgreSQL connection string (required)
    CASEFILE_INTERNAL_SECRET: Internal API secret (required in staging/prod)
    APP_URL: Public web site URL (email redirect links)
    API_URL: This API's own base URL (target of the payment verification hop)

Supabase Configuration:
    SUPABASE_URL: Project URL (storage signing, auth REST API)
    SUPABASE_SERVICE_KEY: Service role key
    SUPABASE_JWKS_URL: Full URL to Supabase JWKS endpoint
    SUPABASE_ISSUER: Expected JWT issuer (trailing slash stripped)
    SUPABASE_AUDIENCES: Comma-separated list of allowed audiences

Payment Configuration:
    PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET: REST app credentials
    PAYPAL_API_BASE: Orders API base URL (sandbox by default)
    CAPTURE_TIMEOUT_S: Upper bound on a single capture call

Auth settings are only validated when the auth middleware is built
(see casefile.app.create_token_verifier), so tests and scripts can load
settings without a Supabase project.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Every case is priced in a single currency.
CURRENCY_CODE = "USD"
PRICE_QUANTUM = Decimal("0.01")


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - CASEFILE_INTERNAL_SECRET is required in staging and prod only
    - CAPTURE_TIMEOUT_S and SIGNED_URL_EXPIRY_S must be positive
    """

    casefile_env: Environment = Field(default=Environment.LOCAL, alias="CASEFILE_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    casefile_internal_secret: str | None = Field(default=None, alias="CASEFILE_INTERNAL_SECRET")
    app_url: str = Field(default="http://localhost:3000", alias="APP_URL")
    api_url: str = Field(default="http://localhost:8000", alias="API_URL")

    # Supabase auth settings
    supabase_jwks_url: str | None = Field(default=None, alias="SUPABASE_JWKS_URL")
    supabase_issuer: str | None = Field(default=None, alias="SUPABASE_ISSUER")
    supabase_audiences: str | None = Field(default=None, alias="SUPABASE_AUDIENCES")

    # Supabase project (storage + auth REST)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    storage_bucket: str = Field(default="case-media", alias="STORAGE_BUCKET")
    signed_url_expiry_s: int = Field(default=3600, alias="SIGNED_URL_EXPIRY_S")  # 1 hour

    # CORS allow-list for the /api/* endpoints
    cors_allowed_origins: str = Field(
        default="http://localhost:3000", alias="CORS_ALLOWED_ORIGINS"
    )

    # PayPal
    paypal_client_id: str | None = Field(default=None, alias="PAYPAL_CLIENT_ID")
    paypal_client_secret: str | None = Field(default=None, alias="PAYPAL_CLIENT_SECRET")
    paypal_api_base: str = Field(
        default="https://api-m.sandbox.paypal.com", alias="PAYPAL_API_BASE"
    )
    capture_timeout_s: float = Field(default=30.0, alias="CAPTURE_TIMEOUT_S")

    # Catalog cache; None keeps entries until explicitly cleared
    catalog_cache_ttl_s: float | None = Field(default=None, alias="CATALOG_CACHE_TTL_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure environment-dependent settings are present and sane."""
        if self.casefile_env in (Environment.STAGING, Environment.PROD):
            if not self.casefile_internal_secret:
                raise ValueError(
                    f"CASEFILE_INTERNAL_SECRET is required for CASEFILE_ENV={self.casefile_env.value}"
                )

        if self.capture_timeout_s <= 0:
            raise ValueError("CAPTURE_TIMEOUT_S must be > 0")
        if self.signed_url_expiry_s <= 0:
            raise ValueError("SIGNED_URL_EXPIRY_S must be > 0")

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether internal routes must include the internal secret header."""
        return self.casefile_env in (Environment.STAGING, Environment.PROD)

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.supabase_audiences:
            return [a.strip() for a in self.supabase_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.supabase_issuer:
            return self.supabase_issuer.rstrip("/")
        return None

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse the CORS allow-list, preserving order (first entry is the default)."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def normalized_app_url(self) -> str:
        return self.app_url.rstrip("/")

    @property
    def normalized_api_url(self) -> str:
        return self.api_url.rstrip("/")

    @property
    def missing_auth_settings(self) -> list[str]:
        """Names of Supabase auth settings that are not configured."""
        missing = []
        if not self.supabase_jwks_url:
            missing.append("SUPABASE_JWKS_URL")
        if not self.supabase_issuer:
            missing.append("SUPABASE_ISSUER")
        if not self.supabase_audiences:
            missing.append("SUPABASE_AUDIENCES")
        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
