"""
Module: fulfillment_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    transactional scope helper.  Nothing here is global: callers build an
    engine, derive a session factory from it, and hand sessions to services.
Architecture position: Kernel > DB.  May import from db/base.py.  Only
    create_tables/drop_tables reach into the module ORM registry (inline).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Row locks are taken
      explicitly with SELECT ... FOR UPDATE where a read feeds a write.
    - SQLite (local runs and tests) gets foreign keys enabled on every
      connection.  FOR UPDATE is not rendered on SQLite.
    - session_scope() commits on success and rolls back on any exception,
      re-raising it.

Failure modes:
    - OperationalError if the database is unreachable.
    - Pool exhaustion if pool_size + max_overflow is exceeded (PostgreSQL).
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an engine for the given database URL.

    PostgreSQL URLs get a sized connection pool and READ COMMITTED
    isolation.  SQLite URLs get the driver's default pool and foreign key
    enforcement.

    Args:
        database_url: SQLAlchemy URL, e.g. postgresql+psycopg://user@host/db
            or sqlite:///path/to/file.db
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_created",
        extra={
            "dialect": engine.dialect.name,
            "echo": echo,
        },
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Session factory bound to ``engine``.

    expire_on_commit is off so DTOs can be built from ORM rows after the
    service commits.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
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
    """
    Create every table registered by the fulfillment ORM modules.

    Imports the ORM registry first so Base.metadata knows all tables.
    """
    from fulfillment_kernel.db.base import Base
    from fulfillment_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.tables)},
    )


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Primarily for tests."""
    from fulfillment_kernel.db.base import Base
    from fulfillment_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    return engine.dialect.name == "postgresql"
