"""
Module: kas_kernel.db.engine
Responsibility: SQLAlchemy engine construction and the transactional
    session scope used by the entity store.  Callers own the engine and the
    sessionmaker they build from it.
Architecture position: Kernel > DB.  May import from db/base.py.
    create_tables imports models so metadata is complete.

Invariants enforced:
    - PostgreSQL (via psycopg) in production; SQLite for tests and local use.
    - SQLite connections run with ``PRAGMA foreign_keys=ON`` so the
      ON DELETE CASCADE / SET NULL rules behave as they do on PostgreSQL.
    - In-memory SQLite uses StaticPool: every session shares the one
      connection, otherwise each session would see an empty database.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from kas_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite URLs get foreign keys switched on; ``sqlite://`` and
    ``sqlite:///:memory:`` share a single connection through StaticPool.
    """
    if database_url.startswith("sqlite"):
        options: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **options)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_recycle=pool_recycle,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed and the exception
        is re-raised to the caller.
    """
    session = factory()
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


def create_tables(engine: Engine) -> None:
    """Create every table known to the models package."""
    from kas_kernel.db.base import Base
    import kas_kernel.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(engine)
