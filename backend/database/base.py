# backend/database/base.py
"""
SQLAlchemy Base and Engine Configuration

Provides the declarative base for all models, the engine factory and the
session context manager used by every Store operation.
"""

import logging
import os
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError, TimeoutError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(UTC)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the configured database.

    SQLite engines allow use from the background poller thread and enforce
    foreign keys; in-memory SQLite shares one connection so every session
    sees the same database.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Engine instance
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            pool_pre_ping=True,  # Verify connections before use
            echo=False,
            hide_parameters=True,  # Redact credentials in logs
        )

    kwargs = {"connect_args": {"check_same_thread": False}}
    if not url.database or url.database == ":memory:":
        kwargs["poolclass"] = StaticPool
    else:
        directory = os.path.dirname(os.path.abspath(url.database))
        os.makedirs(directory, exist_ok=True)

    engine = create_engine(url, echo=False, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker):
    """Get a new SQLAlchemy session (context manager); callers commit."""
    try:
        db = session_factory()
    except TimeoutError:
        logger.error("Connection pool exhausted (all connections in use)")
        raise
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise

    try:
        yield db
    except Exception as e:
        logger.error(f"Session error: {e}")
        db.rollback()  # Explicit rollback on error
        raise
    finally:
        db.close()
