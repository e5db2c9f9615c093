"""Tenant context for the currently executing unit of work.

The current tenant id is held in a ContextVar so each request, thread and
asyncio task has its own value. A session can pin a tenant through
``session.info["tenant_id"]`` (see database.tenant_scoped_session), which
takes precedence over the context variable.

Usage:
    with tenant_scope(tenant_id):
        session.add(Invoice(total=10))
        session.commit()  # tenant_id is stamped automatically
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Callable, Generator, Optional

SESSION_TENANT_KEY = "tenant_id"

# Provider of the current tenant id, read lazily each time it is needed
TenantIdProvider = Callable[[], Any]

_current_tenant_id: ContextVar[Any] = ContextVar("current_tenant_id", default=None)


def get_current_tenant_id() -> Any:
    """Return the tenant id in scope, or None when no tenant is set."""
    return _current_tenant_id.get()


def set_current_tenant_id(tenant_id: Any) -> Token:
    """Set the tenant id for the current context.

    Returns:
        Token: pass to reset_current_tenant_id() to restore the previous value
    """
    return _current_tenant_id.set(tenant_id)


def reset_current_tenant_id(token: Token) -> None:
    _current_tenant_id.reset(token)


@contextmanager
def tenant_scope(tenant_id: Any) -> Generator[Any, None, None]:
    """Run a block with ``tenant_id`` as the current tenant.

    Passing None runs the block without tenant context, which under
    NOT_NULL_GLOBAL_ACCESS grants visibility of every tenant's rows. Callers
    must only do so from code paths that already passed an admin check.
    """
    token = _current_tenant_id.set(tenant_id)
    try:
        yield tenant_id
    finally:
        _current_tenant_id.reset(token)


def resolve_session_tenant_id(session: Optional[Any]) -> Any:
    """Effective tenant id for a session.

    ``session.info["tenant_id"]`` wins when present (even when it is None, to
    let a worker explicitly run without tenant context); otherwise the
    context variable is used.
    """
    info = getattr(session, "info", None)
    if info is not None and SESSION_TENANT_KEY in info:
        return info[SESSION_TENANT_KEY]
    return _current_tenant_id.get()
