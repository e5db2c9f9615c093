"""Audit trail for rejected cross-tenant access."""

from .service import (
    AuditSink,
    DatabaseAuditSink,
    LoggingAuditSink,
    MemoryAuditSink,
    TenancyAuditRecord,
    log_tenancy_violation,
)

__all__ = [
    "AuditSink",
    "DatabaseAuditSink",
    "LoggingAuditSink",
    "MemoryAuditSink",
    "TenancyAuditRecord",
    "log_tenancy_violation",
]
