"""Read isolation: standing tenant filters for ORM queries.

build_filter() derives the predicate for one tenanted entity type;
install_query_filters() attaches the predicates of every registered type to
each ORM SELECT, bulk UPDATE and bulk DELETE through with_loader_criteria, so
joins, relationship loads and Session.get() are filtered too.

Predicates by null handling mode (``t`` = current tenant id):

    NOT_NULL_DENY_ACCESS    t is set AND ref == t     (no tenant: nothing visible)
    NOT_NULL_GLOBAL_ACCESS  t is unset OR ref == t    (no tenant: everything visible)
    NULLABLE_ENTITY_ACCESS  ref == t                  (no tenant: ref IS NULL)

Bypass for one statement:
    session.execute(select(Invoice).execution_options(skip_tenant_filter=True))
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import event, false, true
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql.elements import ColumnElement

from .context import TenantIdProvider, resolve_session_tenant_id
from .registry import TenancyModelState
from .schema import is_mapped_class
from .schemas import NullTenantReferenceHandling, TenancyPolicy
from ..observability import get_logger

logger = get_logger(__name__)

SKIP_TENANT_FILTER = "skip_tenant_filter"


@dataclass(frozen=True)
class TenantFilter:
    """Tenant predicate of one entity type, bound to a tenant id provider.

    The provider is called by every criteria() call, so the predicate always
    reflects the tenant in effect when the query runs.
    """
    model_state: TenancyModelState
    entity_type: type
    policy: TenancyPolicy
    tenant_id: TenantIdProvider

    def criteria(self) -> ColumnElement:
        """SQL boolean expression for the current tenant."""
        tenant_id = self.tenant_id()
        reference = getattr(self.entity_type, self.policy.reference_name)
        handling = self.policy.null_handling

        if handling is NullTenantReferenceHandling.NOT_NULL_DENY_ACCESS:
            if self.model_state.is_unset(tenant_id):
                return false()
            return reference == tenant_id

        if handling is NullTenantReferenceHandling.NOT_NULL_GLOBAL_ACCESS:
            if self.model_state.is_unset(tenant_id):
                return true()
            return reference == tenant_id

        return reference == tenant_id


def build_filter(
    model_state: TenancyModelState,
    entity_type: type,
    tenant_id: TenantIdProvider,
) -> Optional[TenantFilter]:
    """Build the tenant filter of an entity type.

    Args:
        model_state: Tenancy model configuration
        entity_type: Queried entity class
        tenant_id: Zero-argument callable returning the current tenant id

    Returns:
        TenantFilter, or None if the entity type is not tenanted
    """
    policy = model_state.lookup(entity_type)
    if policy is None:
        return None
    return TenantFilter(model_state, entity_type, policy, tenant_id)


def install_query_filters(
    target: Any,
    model_state: TenancyModelState,
    tenant_id: Optional[Callable[[Session], Any]] = None,
) -> Callable[[ORMExecuteState], None]:
    """Apply tenant filters to every ORM SELECT, UPDATE and DELETE run by ``target``.

    Args:
        target: Session subclass, sessionmaker or Session instance
        model_state: Tenancy model configuration
        tenant_id: Callable returning a session's tenant id; defaults to
            session.info["tenant_id"] falling back to the context variable

    Returns:
        The registered listener (for event.remove)
    """
    resolve = tenant_id or resolve_session_tenant_id

    def apply_tenant_filters(orm_execute_state: ORMExecuteState) -> None:
        if orm_execute_state.is_select:
            if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
                return
        elif not (orm_execute_state.is_update or orm_execute_state.is_delete):
            # Bulk UPDATE/DELETE bypass before_flush, so they are filtered too
            return
        if orm_execute_state.execution_options.get(SKIP_TENANT_FILTER, False):
            logger.debug("Tenant filter skipped for statement")
            return

        # One tenant snapshot per statement
        current = resolve(orm_execute_state.session)
        options = []
        for entity_type in model_state.tenanted_types():
            if not is_mapped_class(entity_type):
                continue
            tenant_filter = build_filter(model_state, entity_type, lambda: current)
            options.append(
                with_loader_criteria(entity_type, tenant_filter.criteria(), include_aliases=True)
            )

        if options:
            orm_execute_state.statement = orm_execute_state.statement.options(*options)

    event.listen(target, "do_orm_execute", apply_tenant_filters)
    return apply_tenant_filters
