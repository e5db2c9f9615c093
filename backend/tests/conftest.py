"""Pytest fixtures for tenant isolation testing.

Provides reusable test fixtures for:
- In-memory SQLite engine with the tenanted test models
- Session factory with tenant isolation installed
- Raw session factory (no isolation) for seeding and inspecting rows
- In-memory audit sink

Usage:
    def test_reads_are_scoped(session_factory, seed):
        seed(Invoice(number="A-1", tenant_id="tenant-a"))
        with tenant_scope("tenant-a"):
            ...
"""

import os
import sys
from pathlib import Path
from typing import Callable, Generator

# Make the package and the test fixtures importable without installation
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))
sys.path.insert(0, str(Path(__file__).parent))

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenantguard.audit.service import MemoryAuditSink
from tenantguard.database import create_session_factory
from fixtures.tenanted_models import ModelBase, tenancy


def _memory_engine() -> Engine:
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with all test tables."""
    engine = _memory_engine()
    ModelBase.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        ModelBase.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture(scope="function")
def session_factory(engine: Engine, audit_sink: MemoryAuditSink) -> sessionmaker:
    """Session factory with read and write isolation installed."""
    return create_session_factory(engine, tenancy, audit_sink=audit_sink)


@pytest.fixture(scope="function")
def raw_session_factory(engine: Engine) -> sessionmaker:
    """Session factory without tenant isolation."""
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture(scope="function")
def seed(raw_session_factory: sessionmaker) -> Callable[..., list]:
    """Insert rows directly, bypassing tenant isolation.

    Returns the primary keys of the inserted entities.
    """
    def _seed(*entities) -> list:
        session = raw_session_factory()
        try:
            session.add_all(entities)
            session.commit()
            return [entity.id for entity in entities]
        finally:
            session.close()

    return _seed


@pytest.fixture(scope="function")
def raw_session(raw_session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Session without tenant isolation for inspecting stored rows."""
    session = raw_session_factory()
    try:
        yield session
    finally:
        session.close()
