"""Pydantic schemas for tenant reference configuration.

TenantReferenceOptions holds the model-wide defaults every tenanted entity
falls back to. TenancyPolicy is the resolved, immutable configuration of a
single entity type, stored in the registry once registration completes.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NullTenantReferenceHandling(str, Enum):
    """How a missing tenant context is treated for an entity type.

    NOT_NULL_DENY_ACCESS: reference is required; without a tenant in scope
        reads see nothing and writes are rejected.
    NOT_NULL_GLOBAL_ACCESS: reference is required; without a tenant in scope
        every row is visible and writes must name their tenant explicitly.
        Only reachable from trusted/administrative code paths.
    NULLABLE_ENTITY_ACCESS: reference may be null; plain equality filtering.
    """
    NOT_NULL_DENY_ACCESS = "NOT_NULL_DENY_ACCESS"
    NOT_NULL_GLOBAL_ACCESS = "NOT_NULL_GLOBAL_ACCESS"
    NULLABLE_ENTITY_ACCESS = "NULLABLE_ENTITY_ACCESS"

    @property
    def requires_reference(self) -> bool:
        return self is not NullTenantReferenceHandling.NULLABLE_ENTITY_ACCESS


class TenantReferenceOptions(BaseModel):
    """Default tenant reference settings for a whole model.

    Any value left unspecified on an entity registration is taken from here.
    """
    model_config = ConfigDict(frozen=True)

    reference_name: Optional[str] = Field(
        default="tenant_id",
        description="Attribute holding the owning tenant's id (None forces per-entity names)"
    )
    index_references: bool = Field(
        default=True,
        description="Create a secondary index on the reference column"
    )
    index_name_format: Optional[str] = Field(
        default=None,
        description="Index name or format string, '{0}' is replaced by the reference name"
    )
    null_handling: NullTenantReferenceHandling = Field(
        default=NullTenantReferenceHandling.NOT_NULL_DENY_ACCESS,
        description="Null tenant reference handling mode"
    )
    max_length: Optional[int] = Field(
        default=None,
        gt=0,
        description="Maximum length of variable-length tenant keys"
    )

    @field_validator("reference_name", "index_name_format")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as unset."""
        if v is not None and not v.strip():
            return None
        return v


class TenancyPolicy(BaseModel):
    """Resolved tenancy configuration of one entity type.

    Frozen: assigning to any field raises a ValidationError, so concurrent
    readers never observe a policy being changed.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity_name: str
    reference_name: str = Field(min_length=1)
    key_type: Any
    null_handling: NullTenantReferenceHandling
    index_references: bool = False
    index_name_format: Optional[str] = None
    max_length: Optional[int] = Field(default=None, gt=0)

    @property
    def index_name(self) -> Optional[str]:
        """Explicit index name, or None when the default naming applies."""
        if not self.index_references or not self.index_name_format:
            return None
        return self.index_name_format.format(self.reference_name)
