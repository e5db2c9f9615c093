"""tenantguard - row-level multi-tenancy enforcement for SQLAlchemy."""

from .tenancy import (
    ConfigurationError,
    NullTenantReferenceHandling,
    TenancyContextMissing,
    TenancyError,
    TenancyModelState,
    TenancyReferenceRequired,
    TenancyViolation,
    TenantReferenceOptions,
    check_tenancy_access,
    has_tenancy,
    tenant_scope,
)
from .database import (
    TenancySession,
    create_engine_from_settings,
    create_session_factory,
    get_db_session,
    install_tenancy,
    tenant_scoped_session,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "NullTenantReferenceHandling",
    "TenancyContextMissing",
    "TenancyError",
    "TenancyModelState",
    "TenancyReferenceRequired",
    "TenancyViolation",
    "TenantReferenceOptions",
    "check_tenancy_access",
    "has_tenancy",
    "tenant_scope",
    "TenancySession",
    "create_engine_from_settings",
    "create_session_factory",
    "get_db_session",
    "install_tenancy",
    "tenant_scoped_session",
]
