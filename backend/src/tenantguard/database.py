"""Session wiring for tenant isolation.

Connects a TenancyModelState to SQLAlchemy sessions: standing query filters
(read isolation) and before_flush enforcement (write isolation).

Usage:
    engine = create_engine_from_settings()
    SessionLocal = create_session_factory(engine, tenancy)

    with tenant_scope(tenant_id), get_db_session(SessionLocal) as session:
        session.add(Invoice(total=10))
"""

from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .audit.service import AuditSink
from .config import Settings, get_settings
from .tenancy.context import SESSION_TENANT_KEY, resolve_session_tenant_id
from .tenancy.enforcement import install_bulk_update_enforcement, install_write_enforcement
from .tenancy.filters import install_query_filters
from .tenancy.registry import TenancyModelState
from .observability import get_logger

logger = get_logger(__name__)


def create_engine_from_settings(settings: Optional[Settings] = None, **kwargs: Any) -> Engine:
    """Create an engine for DATABASE_URL.

    Pool sizing only applies to non-SQLite databases. Extra keyword
    arguments are passed to create_engine.
    """
    settings = settings or get_settings()
    url = settings.DATABASE_URL

    kwargs.setdefault("pool_pre_ping", True)
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)

    return create_engine(url, **kwargs)


class TenancySession(Session):
    """Session exposing the tenant it operates for."""

    @property
    def tenant_id(self) -> Any:
        """Effective tenant id: session.info override, else the tenant context."""
        return resolve_session_tenant_id(self)


def install_tenancy(
    target: Any,
    model_state: TenancyModelState,
    tenant_id: Optional[Callable[[Session], Any]] = None,
    audit_sink: Optional[AuditSink] = None,
) -> TenancyModelState:
    """Install read and write isolation on a session class or factory.

    Freezes the model state: registrations must be complete at this point.

    Args:
        target: Session subclass, sessionmaker or Session instance
        model_state: Tenancy model configuration
        tenant_id: Callable returning a session's tenant id
        audit_sink: Receiver of violation audit records

    Returns:
        TenancyModelState: The frozen model state
    """
    model_state.freeze()
    install_query_filters(target, model_state, tenant_id)
    install_write_enforcement(target, model_state, tenant_id, audit_sink)
    install_bulk_update_enforcement(target, model_state, tenant_id, audit_sink)
    logger.info(
        f"Tenant isolation installed on {getattr(target, '__name__', type(target).__name__)}",
        extra={"change_count": len(model_state.policies)},
    )
    return model_state


def create_session_factory(
    engine: Engine,
    model_state: TenancyModelState,
    tenant_id: Optional[Callable[[Session], Any]] = None,
    audit_sink: Optional[AuditSink] = None,
    **kwargs: Any,
) -> sessionmaker:
    """Create a sessionmaker of TenancySession with tenant isolation installed.

    Extra keyword arguments are passed to sessionmaker.
    """
    kwargs.setdefault("autoflush", False)
    factory = sessionmaker(bind=engine, class_=TenancySession, **kwargs)
    install_tenancy(factory, model_state, tenant_id, audit_sink)
    return factory


def tenant_scoped_session(session_factory: Callable[[], Session], tenant_id: Any) -> Session:
    """Create a session pinned to one tenant, independent of the tenant context.

    Useful for background jobs that process data for a specific tenant.
    Passing None pins the session to "no tenant" (administrative work).

    Example:
        session = tenant_scoped_session(SessionLocal, tenant_id)
        try:
            invoice = session.get(Invoice, invoice_id)  # None for other tenants
            ...
            session.commit()
        finally:
            session.close()
    """
    session = session_factory()
    session.info[SESSION_TENANT_KEY] = tenant_id
    return session


@contextmanager
def get_db_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Commits on success, rolls back on exception (including tenancy errors
    raised during flush).
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
