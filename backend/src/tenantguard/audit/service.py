"""Audit sinks for tenancy violations.

Every rejected cross-tenant access produces one TenancyAuditRecord which is
handed to an AuditSink before the TenancyViolation is raised.

Sinks:
- LoggingAuditSink: structured WARNING log line (default)
- DatabaseAuditSink: tenancy_audit_log row written in its own session
- MemoryAuditSink: keeps records in a list
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from sqlalchemy.orm import Session

from ..models.tenancy_audit_log import TenancyAuditLog
from ..observability import get_logger, get_request_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class TenancyAuditRecord:
    """Structured record of one rejected cross-tenant access."""
    entity_type: Optional[str]
    expected_tenant: Any
    actual_tenant: Any
    request_id: str = field(default_factory=get_request_id)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "entity_type": self.entity_type,
            "expected_tenant": self.expected_tenant,
            "actual_tenant": self.actual_tenant,
            "request_id": self.request_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


class AuditSink(ABC):
    """Receiver of tenancy audit records."""

    @abstractmethod
    def record(self, entry: TenancyAuditRecord) -> None:
        """Store or emit one audit record.

        Raises:
            Exception: Any failure; callers log it and still raise the
                underlying TenancyViolation
        """
        pass


class LoggingAuditSink(AuditSink):
    """Emit audit records as structured log lines."""

    def __init__(self, logger_name: str = "tenantguard.audit"):
        self.logger = get_logger(logger_name)

    def record(self, entry: TenancyAuditRecord) -> None:
        self.logger.warning(
            "Tenancy access violation",
            extra={
                "entity_type": entry.entity_type,
                "expected_tenant": entry.expected_tenant,
                "actual_tenant": entry.actual_tenant,
            },
        )


class MemoryAuditSink(AuditSink):
    """Collect audit records in memory."""

    def __init__(self):
        self.records: List[TenancyAuditRecord] = []

    def record(self, entry: TenancyAuditRecord) -> None:
        self.records.append(entry)

    def clear(self) -> None:
        self.records.clear()


def log_tenancy_violation(db: Session, entry: TenancyAuditRecord) -> TenancyAuditLog:
    """Create a tenancy audit log row.

    Args:
        db: Database session
        entry: Audit record to persist

    Returns:
        TenancyAuditLog: The created (flushed, not committed) row
    """
    audit_entry = TenancyAuditLog(
        entity_type=entry.entity_type,
        expected_tenant=_as_text(entry.expected_tenant),
        actual_tenant=_as_text(entry.actual_tenant),
        request_id=entry.request_id,
        created_at=entry.occurred_at,
    )
    db.add(audit_entry)
    db.flush()
    return audit_entry


class DatabaseAuditSink(AuditSink):
    """Persist audit records to the tenancy_audit_log table.

    Uses a dedicated session per record and commits it immediately: the unit
    of work that triggered the violation is about to be rolled back, and the
    audit row must not go with it. The factory must not have tenancy
    listeners installed (TenancyAuditLog is not tenanted anyway).

    Example:
        audit_sink = DatabaseAuditSink(sessionmaker(bind=engine))
        install_tenancy(SessionLocal, tenancy, audit_sink=audit_sink)
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, entry: TenancyAuditRecord) -> None:
        session = self.session_factory()
        try:
            log_tenancy_violation(session, entry)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)
