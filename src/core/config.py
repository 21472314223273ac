"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Auth0 - shared with frontend (VITE_ prefix for Vite exposure)
    auth0_domain: str = Field(default="", validation_alias="VITE_AUTH0_DOMAIN")
    auth0_audience: str = Field(default="", validation_alias="VITE_AUTH0_AUDIENCE")

    # Development mode - bypasses auth for local development (shared with frontend)
    dev_mode: bool = Field(default=False, validation_alias="VITE_DEV_MODE")

    # Public base URL of this API, used to build attachment file URLs
    api_url: str = Field(
        default="http://localhost:8000",
        validation_alias="VITE_API_URL",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # Attachment ingestion (icon / main image fetched from remote URLs)
    attachment_fetch_timeout: float = Field(
        default=10.0, validation_alias="ATTACHMENT_FETCH_TIMEOUT",
    )
    max_attachment_bytes: int = Field(
        default=5 * 1024 * 1024, validation_alias="MAX_ATTACHMENT_BYTES",
    )
    attachment_allow_private_hosts: bool = Field(
        default=False, validation_alias="ATTACHMENT_ALLOW_PRIVATE_HOSTS",
    )

    # Field length limits - shared with frontend (VITE_ prefix for Vite exposure)
    max_description_length: int = Field(
        default=2000, validation_alias="VITE_MAX_DESCRIPTION_LENGTH",
    )
    max_title_length: int = Field(
        default=500, validation_alias="VITE_MAX_TITLE_LENGTH",
    )

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE completely bypasses authentication, so it is only allowed with a
        local database server or a SQLite file/in-memory database.
        """
        if not self.dev_mode:
            return self

        try:
            parsed = urlparse(self.database_url)
            scheme = parsed.scheme or ""
            hostname = parsed.hostname or ""
        except Exception:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            scheme, hostname = "", ""

        if scheme.startswith("sqlite"):
            return self

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses all authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def auth0_issuer(self) -> str:
        """Get the Auth0 issuer URL."""
        return f"https://{self.auth0_domain}/"

    @property
    def auth0_jwks_url(self) -> str:
        """Get the Auth0 JWKS URL for fetching public keys."""
        return f"https://{self.auth0_domain}/.well-known/jwks.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
