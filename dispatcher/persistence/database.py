"""Engine and session lifecycle for the notification store."""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dispatcher.logging import get_logger

from .exceptions import DatabaseConnectionError

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Create the engine, verify connectivity and create missing tables.

    Call once at startup. SQLite gets foreign keys and WAL enabled; an
    in-memory SQLite database is shared by every thread through a static
    pool so the API and the dispatcher see the same data.

    Raises:
        DatabaseConnectionError: If the database cannot be initialized

    Example:
        >>> init_database("sqlite:///./data/notifications.db")
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": _redact_url(database_url)},
    )

    try:
        is_sqlite = database_url.startswith("sqlite")
        in_memory = is_sqlite and (database_url.endswith(":memory:") or database_url == "sqlite://")

        if is_sqlite and not in_memory:
            _ensure_sqlite_directory(database_url)

        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool

        _engine = create_engine(database_url, **engine_kwargs)

        if is_sqlite:
            _configure_sqlite(_engine, wal=not in_memory)

        _validate_connection(_engine)

        _session_factory = sessionmaker(
            bind=_engine,
            autoflush=True,
            expire_on_commit=False,
        )

        from .schema import create_schema

        create_schema(_engine)

        logger.info(
            "Database initialized successfully",
            extra={"event": "database.initialised", "database_url": _redact_url(database_url)},
        )

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e


def _ensure_sqlite_directory(database_url: str) -> None:
    db_file = Path(make_url(database_url).database or "")
    if db_file.parent and not db_file.parent.exists():
        logger.info(f"Creating database directory: {db_file.parent}")
        db_file.parent.mkdir(parents=True, exist_ok=True)


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Hide the password of a server database URL before logging it."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable database url>"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error.

    Raises:
        DatabaseConnectionError: If init_database() has not been called

    Example:
        >>> with get_session() as session:
        ...     NotificationQueueRepository(session).get_stats()
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        session.commit()
        logger.debug("Database session committed", extra={"event": "database.session.committed"})
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back due to exception: {e}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the engine created by init_database().

    Raises:
        DatabaseConnectionError: If init_database() has not been called
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Safe to call more than once."""
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database connections", extra={"event": "database.closing"})
        _engine.dispose()
        _engine = None
        _session_factory = None
