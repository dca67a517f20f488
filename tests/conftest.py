"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite session factory (StaticPool)
- Order store and operation log bound to it
- Raw row and record builders
"""

import os

# Keep the application's default engine off the working tree
os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base
from src.services.operation_log_service import OperationLogService
from src.services.order_store import OrderStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def session_factory() -> Generator[Callable[[], Session], None, None]:
    """Create an in-memory SQLite database shared across threads.

    StaticPool keeps a single connection, so sessions opened from
    asyncio.to_thread workers see the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory: Callable[[], Session]) -> OrderStore:
    return OrderStore(session_factory)


@pytest.fixture
def operation_log(session_factory: Callable[[], Session]) -> OperationLogService:
    return OperationLogService(session_factory)
