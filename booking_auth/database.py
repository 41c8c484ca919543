"""
Database configuration and session management for the booking authentication service.

This module provides the SQLAlchemy declarative base and a ``Database`` handle
that owns the engine and hands out transactional sessions. The handle is
constructed once at application start and injected into the stores.
"""
import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from booking_auth.errors import StorageUnavailableError

# Create SQLAlchemy base class for models
Base = declarative_base()

# Configure logger
logger = logging.getLogger(__name__)


def _configure_sqlite(engine) -> None:
    """
    Enable foreign keys and make every SQLite transaction take the write lock up front.

    Without ``BEGIN IMMEDIATE`` two connections that both read before writing
    can deadlock on lock upgrade instead of waiting on the busy timeout.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        # Let SQLAlchemy's begin event emit BEGIN instead of pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Database connection and session management."""

    def __init__(self, db_url: str, echo: bool = False, busy_timeout: int = 30):
        """
        Initialize the database connection.

        Args:
            db_url: SQLAlchemy database URL.
            echo: Whether to log emitted SQL.
            busy_timeout: Seconds a SQLite writer waits for the lock.
        """
        connect_args = {}
        is_sqlite = db_url.startswith("sqlite")
        if is_sqlite:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = busy_timeout

        self.url = db_url
        self.engine = create_engine(db_url, connect_args=connect_args, echo=echo)
        if is_sqlite:
            _configure_sqlite(self.engine)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def create_all(self) -> None:
        """Create all tables defined in the models."""
        # Import models so their tables are registered on Base.metadata
        from booking_auth import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all tables. Use with caution, primarily for testing."""
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            A new SQLAlchemy session.
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, Any, None]:
        """
        Context manager for database sessions.

        Provides automatic commit/rollback and session closing. Driver and
        ORM failures surface as ``StorageUnavailableError``.

        Yields:
            An active SQLAlchemy session.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e.__class__.__name__}: {str(e)}")
            raise StorageUnavailableError() from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def describe_url(database: Optional[Database]) -> str:
    """Database URL with the password masked, for log lines."""
    if database is None:
        return "<none>"
    return database.engine.url.render_as_string(hide_password=True)
