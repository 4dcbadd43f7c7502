"""
Database connection and session management.
Uses SQLAlchemy; any URL SQLAlchemy understands works (Postgres in production,
SQLite for local runs and tests).
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from catalog.core.config import get_config
from catalog.utils.logger import get_logger

logger = get_logger("data.database")

# Base class for all our database models (must be defined before engine)
Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT inside our transactions.

    The driver otherwise manages BEGIN itself and silently drops nested
    transactions, which the counter sync depends on.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_catalog_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url`` with the hooks the catalog needs."""
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    return engine


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from config on first use."""
    global _engine
    if _engine is None:
        database_url = get_config().database_url
        logger.info(f"Creating database engine for {database_url.split('@')[-1]}")
        _engine = create_catalog_engine(database_url)
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)
    return _session_factory


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an explicit engine (tests, scripts)."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """
    Transactional scope: commit on success, roll back on any exception.

    Every query and mutation in the catalog runs inside exactly one scope, so a
    mutation's product write and its counter update commit or fail together.
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables and seed one counter row per product status."""
    # Imported here so model classes register on Base before create_all
    from catalog.data import models
    from catalog.aggregate.count_aggregate import CountAggregate

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    with session_scope(make_session_factory(engine)) as session:
        CountAggregate().ensure_namespaces(session, models.PRODUCT_STATUSES)
