"""Configuration via environment variables.

Provides type-safe settings loading using pydantic-settings.
Environment variables can be loaded from a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .tenancy.schemas import NullTenantReferenceHandling, TenantReferenceOptions


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Environment Variables:
        DATABASE_URL: SQLAlchemy connection string
        LOG_LEVEL: Logging level (default INFO)
        LOG_JSON: Emit JSON log lines (default True)
        TENANT_REFERENCE_NAME: Default tenant reference attribute (default tenant_id)
        TENANT_INDEX_REFERENCES: Index tenant reference columns (default True)
        TENANT_INDEX_NAME_FORMAT: Index name format, '{0}' = reference name
        TENANT_NULL_HANDLING: Default null tenant reference handling mode
        TENANT_REFERENCE_MAX_LENGTH: Max length of string tenant keys
        JWT_SECRET: Key used to verify bearer tokens carrying the tenant claim
        JWT_ALGORITHM: Token signing algorithm (default HS256)
        TENANT_CLAIM: Token claim holding the tenant id (default tenant_id)
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./tenantguard.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Tenancy defaults
    TENANT_REFERENCE_NAME: Optional[str] = "tenant_id"
    TENANT_INDEX_REFERENCES: bool = True
    TENANT_INDEX_NAME_FORMAT: Optional[str] = None
    TENANT_NULL_HANDLING: NullTenantReferenceHandling = NullTenantReferenceHandling.NOT_NULL_DENY_ACCESS
    TENANT_REFERENCE_MAX_LENGTH: Optional[int] = None

    # Tenant context from bearer tokens
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    TENANT_CLAIM: str = "tenant_id"

    def reference_options(self) -> TenantReferenceOptions:
        """Build model-wide tenant reference defaults from these settings."""
        return TenantReferenceOptions(
            reference_name=self.TENANT_REFERENCE_NAME,
            index_references=self.TENANT_INDEX_REFERENCES,
            index_name_format=self.TENANT_INDEX_NAME_FORMAT,
            null_handling=self.TENANT_NULL_HANDLING,
            max_length=self.TENANT_REFERENCE_MAX_LENGTH,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
