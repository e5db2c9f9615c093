"""Write isolation: tenant checks on pending changes before flush.

ensure_tenancy() walks the inserts, updates and deletes of one unit of work:

- entity types that are not registered pass through untouched
- with no tenant in scope:
    NOT_NULL_DENY_ACCESS   -> TenancyContextMissing
    NOT_NULL_GLOBAL_ACCESS -> allowed if the entity names its tenant,
                              TenancyReferenceRequired otherwise
    NULLABLE_ENTITY_ACCESS -> checked like any other change
- with a tenant in scope:
    unset reference        -> stamped with the current tenant
    same tenant            -> allowed
    other tenant           -> TenancyViolation (audited)

Updates and deletes are also checked against the reference value loaded
from storage, so re-pointing a foreign row at the caller's tenant is a
violation too.

Nothing is changed unless the whole set passes: stamps are applied after
the last check.

ORM bulk UPDATE statements never reach the flush, so
ensure_bulk_update_tenancy() checks the tenant reference values they assign
before they run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import ORMExecuteState, Session
from sqlalchemy.sql.elements import BindParameter, ClauseElement, Null

from .access import check_tenancy_access
from .context import resolve_session_tenant_id
from .exceptions import TenancyContextMissing, TenancyReferenceRequired
from .registry import TenancyModelState
from .schemas import NullTenantReferenceHandling, TenancyPolicy
from ..audit.service import AuditSink
from ..observability import get_logger

logger = get_logger(__name__)


class ChangeKind(str, Enum):
    """Kind of change tracked for an entity in a unit of work."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNCHANGED = "UNCHANGED"


WRITE_KINDS = frozenset({ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE})


@dataclass
class PendingChange:
    """View of one entity instance touched by a unit of work.

    Attributes:
        entity: The entity instance
        kind: Change kind
        original: Persisted attribute values, for entities not tracked by
            the ORM; mapped instances read them from attribute history
    """
    entity: Any
    kind: ChangeKind
    original: Mapping[str, Any] = field(default_factory=dict)

    @property
    def entity_type(self) -> type:
        return type(self.entity)

    def get_reference(self, name: str) -> Any:
        return getattr(self.entity, name, None)

    def set_reference(self, name: str, value: Any) -> None:
        setattr(self.entity, name, value)

    def persisted_reference(self, name: str) -> Any:
        """Reference value as loaded from storage.

        Registered reference attributes load their stored value before a
        set, so history holds it even for expired instances. Falls back to
        the current value when the attribute has no net change.
        """
        if name in self.original:
            return self.original[name]

        state = sa_inspect(self.entity, raiseerr=False)
        if state is not None and name in state.attrs:
            history = state.attrs[name].history
            if history.deleted:
                return history.deleted[0]

        return self.get_reference(name)


def pending_changes(session: Session) -> List[PendingChange]:
    """Collect the pending changes of a session.

    Dirty instances without net attribute changes are left out.
    """
    changes = [PendingChange(obj, ChangeKind.INSERT) for obj in session.new]
    changes.extend(
        PendingChange(obj, ChangeKind.UPDATE)
        for obj in session.dirty
        if session.is_modified(obj)
    )
    changes.extend(PendingChange(obj, ChangeKind.DELETE) for obj in session.deleted)
    return changes


def ensure_tenancy(
    changes: Iterable[PendingChange],
    tenant_id: Any,
    model_state: TenancyModelState,
    audit_sink: Optional[AuditSink] = None,
) -> int:
    """Ensure pending changes only reference the current tenant.

    Entities with an unset tenant reference are stamped with ``tenant_id``.

    Args:
        changes: Pending changes of one unit of work
        tenant_id: Current tenant id (snapshot for the whole pass)
        model_state: Tenancy model configuration
        audit_sink: Receiver of violation audit records

    Returns:
        int: Number of entities stamped with the current tenant

    Raises:
        TenancyContextMissing: No tenant in scope for a NOT_NULL_DENY_ACCESS entity
        TenancyReferenceRequired: No tenant in scope and no explicit reference
            on a NOT_NULL_GLOBAL_ACCESS entity
        TenancyViolation: An entity references another tenant
    """
    policy_cache: Dict[type, Optional[TenancyPolicy]] = {}
    stamps: List[Tuple[PendingChange, str]] = []
    tenant_unset = model_state.is_unset(tenant_id)

    for change in changes:
        if change.kind not in WRITE_KINDS:
            continue

        entity_type = change.entity_type
        if entity_type not in policy_cache:
            policy_cache[entity_type] = model_state.lookup(entity_type)
        policy = policy_cache[entity_type]
        if policy is None:
            continue

        name = policy.reference_name
        entity_name = entity_type.__name__
        current = change.get_reference(name)

        if tenant_unset:
            if policy.null_handling is NullTenantReferenceHandling.NOT_NULL_DENY_ACCESS:
                logger.warning(
                    f"Rejected {change.kind.value} on {entity_name}: no tenant in scope",
                    extra={"entity_type": entity_name, "null_handling": policy.null_handling.value},
                )
                raise TenancyContextMissing(
                    "Tenancy context is unset - possibly because no scoped tenancy was found."
                )
            if policy.null_handling is NullTenantReferenceHandling.NOT_NULL_GLOBAL_ACCESS:
                if model_state.is_unset(current):
                    logger.warning(
                        f"Rejected {change.kind.value} on {entity_name}: tenant reference required",
                        extra={"entity_type": entity_name, "reference_name": name},
                    )
                    raise TenancyReferenceRequired(entity_name, name)
                continue
            # NULLABLE_ENTITY_ACCESS: checked against the unset tenant below

        if change.kind is not ChangeKind.INSERT:
            persisted = change.persisted_reference(name)
            if not model_state.is_unset(persisted) and persisted != current:
                check_tenancy_access(
                    tenant_id, persisted, audit_sink,
                    entity_type=entity_name, unset_value=model_state.unset_value,
                )

        if model_state.is_unset(current):
            if not tenant_unset and change.kind is not ChangeKind.DELETE:
                stamps.append((change, name))
        else:
            check_tenancy_access(
                tenant_id, current, audit_sink,
                entity_type=entity_name, unset_value=model_state.unset_value,
            )

    for change, name in stamps:
        change.set_reference(name, tenant_id)

    if stamps:
        logger.debug(
            f"Stamped {len(stamps)} entities with current tenant",
            extra={"tenant_id": tenant_id, "change_count": len(stamps)},
        )
    return len(stamps)


def bulk_update_assignments(orm_execute_state: ORMExecuteState) -> List[Tuple[str, Any]]:
    """Column keys and values assigned by an ORM bulk UPDATE.

    Covers values() on the statement and execute-time parameters. Bound
    literals are unwrapped; SQL expressions are returned unchanged.
    """
    statement = orm_execute_state.statement
    pairs = list((statement._values or {}).items())
    pairs.extend(getattr(statement, "_ordered_values", None) or ())

    params = orm_execute_state.parameters or {}
    for row in (params if isinstance(params, (list, tuple)) else [params]):
        pairs.extend(row.items())

    assignments = []
    for key, value in pairs:
        if isinstance(value, BindParameter):
            value = value.effective_value
        elif isinstance(value, Null):
            value = None
        assignments.append((key if isinstance(key, str) else key.key, value))
    return assignments


def ensure_bulk_update_tenancy(
    entity_type: type,
    assignments: Iterable[Tuple[str, Any]],
    tenant_id: Any,
    model_state: TenancyModelState,
    audit_sink: Optional[AuditSink] = None,
) -> None:
    """Ensure a bulk UPDATE only assigns the current tenant as reference.

    Follows the ensure_tenancy() rules, except that an unset value cannot
    be stamped and so counts as another tenant while a tenant is in scope.
    A SQL expression assigned to the reference is always a violation for a
    tenant-scoped caller.

    Raises:
        TenancyContextMissing: No tenant in scope for a NOT_NULL_DENY_ACCESS entity
        TenancyReferenceRequired: No tenant in scope and the reference is
            cleared on a NOT_NULL_GLOBAL_ACCESS entity
        TenancyViolation: The statement assigns another tenant
    """
    policy = model_state.lookup(entity_type)
    if policy is None:
        return

    column = sa_inspect(entity_type).columns[policy.reference_name]
    names = {policy.reference_name, column.key, column.name}
    entity_name = entity_type.__name__

    for key, value in assignments:
        if key not in names:
            continue
        if isinstance(value, ClauseElement):
            value = str(value)

        if model_state.is_unset(tenant_id):
            if policy.null_handling is NullTenantReferenceHandling.NOT_NULL_DENY_ACCESS:
                logger.warning(
                    f"Rejected bulk UPDATE on {entity_name}: no tenant in scope",
                    extra={"entity_type": entity_name, "null_handling": policy.null_handling.value},
                )
                raise TenancyContextMissing(
                    "Tenancy context is unset - possibly because no scoped tenancy was found."
                )
            if policy.null_handling is NullTenantReferenceHandling.NOT_NULL_GLOBAL_ACCESS:
                if model_state.is_unset(value):
                    raise TenancyReferenceRequired(entity_name, policy.reference_name)
                continue

        check_tenancy_access(
            tenant_id, value, audit_sink,
            entity_type=entity_name, unset_value=model_state.unset_value,
        )


def install_write_enforcement(
    target: Any,
    model_state: TenancyModelState,
    tenant_id: Optional[Callable[[Session], Any]] = None,
    audit_sink: Optional[AuditSink] = None,
) -> Callable:
    """Run ensure_tenancy() before every flush of ``target``.

    An exception raised by the listener aborts the flush, so the commit
    never reaches the database. The session must then be rolled back.

    Args:
        target: Session subclass, sessionmaker or Session instance
        model_state: Tenancy model configuration
        tenant_id: Callable returning a session's tenant id; defaults to
            session.info["tenant_id"] falling back to the context variable
        audit_sink: Receiver of violation audit records

    Returns:
        The registered listener (for event.remove)
    """
    resolve = tenant_id or resolve_session_tenant_id

    def enforce_tenancy_before_flush(session, flush_context, instances):
        ensure_tenancy(pending_changes(session), resolve(session), model_state, audit_sink)

    event.listen(target, "before_flush", enforce_tenancy_before_flush)
    return enforce_tenancy_before_flush


def install_bulk_update_enforcement(
    target: Any,
    model_state: TenancyModelState,
    tenant_id: Optional[Callable[[Session], Any]] = None,
    audit_sink: Optional[AuditSink] = None,
) -> Callable[[ORMExecuteState], None]:
    """Run ensure_bulk_update_tenancy() before every ORM bulk UPDATE of ``target``.

    Applies even to statements executed with ``skip_tenant_filter``.

    Returns:
        The registered listener (for event.remove)
    """
    resolve = tenant_id or resolve_session_tenant_id

    def enforce_tenancy_on_bulk_update(orm_execute_state: ORMExecuteState) -> None:
        if not orm_execute_state.is_update:
            return

        current = resolve(orm_execute_state.session)
        assignments = bulk_update_assignments(orm_execute_state)
        for mapper in orm_execute_state.all_mappers:
            ensure_bulk_update_tenancy(mapper.class_, assignments, current, model_state, audit_sink)

    event.listen(target, "do_orm_execute", enforce_tenancy_on_bulk_update)
    return enforce_tenancy_on_bulk_update
