"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation, and
    transactional scope utilities.  There is no module-level engine: callers
    build one and inject the session factory into the services that need it.
Architecture position: Kernel > DB.  May import from db/base.py and models/
    (create_tables/drop_tables only).

Invariants enforced:
    - PostgreSQL sessions run at REPEATABLE READ (configurable), with
      explicit row-level locking (FOR UPDATE) on accounts and entries.
    - SQLite sessions start with BEGIN IMMEDIATE, so a writer holds the
      database write lock from its first statement and concurrent closes
      serialise instead of failing at commit time.
    - Connection pooling with pre-ping on server databases.

Failure modes:
    - OperationalError when the database is unreachable, locked past the
      busy timeout, or a serialization failure occurs.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    All mutating work flows through sessions created here.  session_scope()
    guarantees commit-or-rollback around a unit of work.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    isolation_level: str = "REPEATABLE READ",
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Build a SQLAlchemy engine for PostgreSQL or SQLite.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://... or sqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (server databases only).
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        isolation_level: Transaction isolation for server databases.
        sqlite_busy_timeout: Seconds SQLite waits on a locked database.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        )
        _install_sqlite_begin_immediate(engine)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level=isolation_level,
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "database": url.database,
            "isolation_level": "SERIALIZABLE" if dialect == "sqlite" else isolation_level,
            "echo": echo,
        },
    )
    return engine


def _install_sqlite_begin_immediate(engine: Engine) -> None:
    """Take over transaction control from pysqlite and begin IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite's own BEGIN handling is deferred and unreliable
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory used by every service and selector."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On any exception (including KeyboardInterrupt), the session is
        rolled back and closed and the exception is re-raised.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except BaseException:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all ledger tables.

    Importing ledger_kernel.models registers every table on Base.metadata.
    """
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"tables": sorted(Base.metadata.tables)},
    )


def drop_tables(engine: Engine) -> None:
    """Drop all ledger tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    return engine.dialect.name == "postgresql"
