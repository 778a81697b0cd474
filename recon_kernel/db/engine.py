"""
Module: recon_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the reconciliation system.
Architecture position: Kernel > DB.  May import from db/base.py.
    create_tables/drop_tables import the models package so that
    Base.metadata knows every table.

Invariants enforced:
    - SQLite connections run with ``PRAGMA foreign_keys=ON`` so foreign keys
      are enforced the same way on every backend.
    - In-memory SQLite URLs share one connection (StaticPool) so every
      session sees the same database.
    - Other backends use QueuePool with pre-ping.

Failure modes:
    - RuntimeError if get_engine/get_session called before
      init_engine_from_url().

Audit relevance:
    session_scope() gives atomic commit-or-rollback around recording a
    report or a human decision.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from recon_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        A second call replaces the first.

    Args:
        database_url: SQLAlchemy URL (e.g. ``sqlite:///:memory:``).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (non-SQLite backends).
        max_overflow: Max connections beyond pool_size (non-SQLite backends).
        pool_pre_ping: Test connections before use (non-SQLite backends).

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the exception
        is re-raised.

    Usage:
        with session_scope() as session:
            ReconciliationRecorder(session, clock).record(report, case_id, actor_id)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every reconciliation table on the current engine."""
    from recon_kernel.db.base import Base
    import recon_kernel.models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from recon_kernel.db.base import Base
    import recon_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
