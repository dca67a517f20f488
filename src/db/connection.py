"""Database connection management for LogiSync.

Provides synchronous database access using SQLAlchemy. SQLite is the
default for development; any SQLAlchemy URL can be supplied through
DATABASE_URL or the ``database.url`` config key.

Usage:
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. LOGISYNC_DB_PATH (compat fallback, converted to sqlite URL)
    3. sqlite:///<project root>/logisync.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("LOGISYNC_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    return f"sqlite:///{PROJECT_ROOT / 'logisync.db'}"


def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers alongside the single writer
      used by batch imports.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.close()


def create_db_engine(url: str) -> Engine:
    """Create an engine, applying SQLite pragmas when the URL is SQLite."""
    is_sqlite = url.startswith("sqlite")
    db_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if is_sqlite:
        event.listen(db_engine, "connect", _set_sqlite_pragma)
    return db_engine


# Engine creation
DATABASE_URL = get_database_url()

engine = create_db_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def configure_database(url: str) -> None:
    """Rebind the application's engine and SessionLocal to another URL.

    SessionLocal is reconfigured in place, so factories already handed
    to services pick up the new engine.
    """
    global engine, DATABASE_URL
    if url == DATABASE_URL:
        return
    engine.dispose()
    DATABASE_URL = url
    engine = create_db_engine(url)
    SessionLocal.configure(bind=engine)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            order = db.query(Order).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all database tables.

    Safe to call multiple times - will not recreate existing tables.
    """
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Dispose of the engine's connection pool."""
    engine.dispose()
