"""TenancyAuditLog SQLAlchemy model"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenancyAuditLog(Base):
    """Append-only record of rejected cross-tenant access attempts.

    Tenant ids are stored as text so one table serves every tenant key type.
    Rows are written by DatabaseAuditSink in a session of their own, so they
    survive the rollback of the unit of work that was rejected.
    """
    __tablename__ = "tenancy_audit_log"
    __table_args__ = (
        Index("ix_tenancy_audit_log_expected_tenant", "expected_tenant"),
        Index("ix_tenancy_audit_log_actual_tenant", "actual_tenant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(Text, nullable=True)
    expected_tenant = Column(Text, nullable=True)
    actual_tenant = Column(Text, nullable=True)
    request_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "expected_tenant": self.expected_tenant,
            "actual_tenant": self.actual_tenant,
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<TenancyAuditLog(id={self.id}, entity_type='{self.entity_type}', "
            f"expected='{self.expected_tenant}', actual='{self.actual_tenant}')>"
        )
