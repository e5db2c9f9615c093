"""SQLAlchemy Models for tenantguard"""

from .base import Base
from .tenancy_audit_log import TenancyAuditLog

__all__ = [
    "Base",
    "TenancyAuditLog",
]
