"""Tenancy module - row-level multi-tenant isolation.

This module provides:
- Tenancy model registry (entity type -> tenant reference policy)
- Standing tenant filters for ORM queries (read isolation)
- Pre-flush checks and tenant stamping of pending changes (write isolation)
- Tenant ownership check with audit hook
- Tenant context (ContextVar) and HTTP middleware feeding it
"""

from .access import check_tenancy_access
from .context import (
    get_current_tenant_id,
    reset_current_tenant_id,
    resolve_session_tenant_id,
    set_current_tenant_id,
    tenant_scope,
)
from .enforcement import (
    ChangeKind,
    PendingChange,
    bulk_update_assignments,
    ensure_bulk_update_tenancy,
    ensure_tenancy,
    install_bulk_update_enforcement,
    install_write_enforcement,
    pending_changes,
)
from .exceptions import (
    ConfigurationError,
    TenancyContextMissing,
    TenancyError,
    TenancyReferenceRequired,
    TenancyViolation,
)
from .filters import SKIP_TENANT_FILTER, TenantFilter, build_filter, install_query_filters
from .registry import TenancyModelState, default_unset_value, has_tenancy
from .schemas import NullTenantReferenceHandling, TenancyPolicy, TenantReferenceOptions

__all__ = [
    "check_tenancy_access",
    "get_current_tenant_id",
    "reset_current_tenant_id",
    "resolve_session_tenant_id",
    "set_current_tenant_id",
    "tenant_scope",
    "ChangeKind",
    "PendingChange",
    "bulk_update_assignments",
    "ensure_bulk_update_tenancy",
    "ensure_tenancy",
    "install_bulk_update_enforcement",
    "install_write_enforcement",
    "pending_changes",
    "ConfigurationError",
    "TenancyContextMissing",
    "TenancyError",
    "TenancyReferenceRequired",
    "TenancyViolation",
    "SKIP_TENANT_FILTER",
    "TenantFilter",
    "build_filter",
    "install_query_filters",
    "TenancyModelState",
    "default_unset_value",
    "has_tenancy",
    "NullTenantReferenceHandling",
    "TenancyPolicy",
    "TenantReferenceOptions",
]
