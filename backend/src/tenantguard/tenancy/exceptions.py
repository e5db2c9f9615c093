"""Tenancy error taxonomy.

- ConfigurationError: model build cannot resolve a tenant reference (fatal)
- TenancyContextMissing: write attempted without a tenant in scope
- TenancyReferenceRequired: administrative write without an explicit tenant
- TenancyViolation: entity references a tenant other than the caller's

All runtime errors abort the whole unit of work.
"""

from typing import Any, Optional


class TenancyError(Exception):
    """Base class for all tenancy errors."""
    pass


class ConfigurationError(TenancyError):
    """Raised at model build time for invalid tenancy configuration."""
    pass


class TenancyContextMissing(TenancyError):
    """Raised when a tenanted change is flushed with no tenant in scope."""
    pass


class TenancyReferenceRequired(TenancyError):
    """Raised when a write without tenant context leaves the reference unset."""

    def __init__(self, entity_type: str, reference_name: str):
        self.entity_type = entity_type
        self.reference_name = reference_name
        super().__init__(
            f"{reference_name} is required on entity of type {entity_type} and the "
            f"current tenant from the tenancy context is unset - possibly because "
            f"no scoped tenancy was found."
        )


class TenancyViolation(TenancyError):
    """Raised when an accessed tenant reference differs from the caller's tenant."""

    def __init__(
        self,
        expected_tenant: Any,
        actual_tenant: Any,
        entity_type: Optional[str] = None,
    ):
        self.expected_tenant = expected_tenant
        self.actual_tenant = actual_tenant
        self.entity_type = entity_type
        target = f" on entity of type {entity_type}" if entity_type else ""
        super().__init__(
            f"Tenancy access violation{target}: current tenant {expected_tenant!r} "
            f"attempted to access data of tenant {actual_tenant!r}."
        )
