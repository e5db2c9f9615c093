"""Tenant ownership check shared by write enforcement and application code.

Example:
    invoice = session.get(Invoice, invoice_id)
    check_tenancy_access(current_tenant, invoice.tenant_id, entity_type="Invoice")
"""

from typing import Any, Optional

from .exceptions import TenancyViolation
from ..audit.service import AuditSink, LoggingAuditSink, TenancyAuditRecord
from ..observability import get_logger

logger = get_logger(__name__)

_default_sink = LoggingAuditSink()


def _normalize(value: Any, unset_value: Any) -> Any:
    if value is None or value == unset_value:
        return None
    return value


def check_tenancy_access(
    tenant_id: Any,
    accessed_tenant_id: Any,
    audit_sink: Optional[AuditSink] = None,
    entity_type: Optional[str] = None,
    unset_value: Any = None,
) -> None:
    """Ensure the accessed tenant id is the caller's tenant id.

    None and ``unset_value`` are the same "unset" value on both sides, so an
    unset caller may only touch unowned data. On mismatch the audit record is
    emitted first; a failing sink is logged and never hides the violation.

    Args:
        tenant_id: Tenant id of the caller (current tenant context)
        accessed_tenant_id: Tenant id referenced by the accessed data
        audit_sink: Receiver of the audit record (structured log by default)
        entity_type: Name of the accessed entity type, if known
        unset_value: Model-specific "no tenant" sentinel (e.g. 0 for int keys)

    Raises:
        TenancyViolation: If the tenant ids differ
    """
    expected = _normalize(tenant_id, unset_value)
    actual = _normalize(accessed_tenant_id, unset_value)
    if expected == actual:
        return

    sink = audit_sink or _default_sink
    try:
        sink.record(
            TenancyAuditRecord(
                entity_type=entity_type,
                expected_tenant=tenant_id,
                actual_tenant=accessed_tenant_id,
            )
        )
    except Exception:
        logger.exception(
            "Audit sink failed while recording tenancy violation",
            extra={
                "entity_type": entity_type,
                "expected_tenant": tenant_id,
                "actual_tenant": accessed_tenant_id,
            },
        )

    raise TenancyViolation(tenant_id, accessed_tenant_id, entity_type=entity_type)
