# nftdice/core/db.py
"""
Database management for nftdice.
Single relational store; row locks on PostgreSQL, writer lock on SQLite.
"""
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session

from config import Config
from models.base import Base

logger = logging.getLogger(__name__)

# Database engines
_engine = None
_SessionFactory = None


def _install_sqlite_locking(engine):
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    Each unit of work holds the database write lock from its first
    statement, so SQLite sessions are serialized the way FOR UPDATE
    serializes same-row sessions on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        database_url = Config.get(Config.DATABASE_URL, "sqlite:///nftdice.db")
        timeout_ms = Config.get(Config.LOCK_TIMEOUT_MS, 5000)
        backend = make_url(database_url).get_backend_name()

        if backend == "sqlite":
            _engine = create_engine(
                database_url,
                echo=False,
                connect_args={
                    "check_same_thread": False,
                    "timeout": timeout_ms / 1000,
                },
            )
            _install_sqlite_locking(_engine)
        elif backend == "postgresql":
            _engine = create_engine(
                database_url,
                echo=False,
                pool_pre_ping=True,
                connect_args={"options": f"-c lock_timeout={int(timeout_ms)}"},
            )
        else:
            _engine = create_engine(database_url, echo=False, pool_pre_ping=True)

        logger.info(f"Database engine created: {backend}")
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine)
        logger.info("Session factory created")
    return _SessionFactory


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        Session instance
    """
    factory = get_session_factory()
    return factory()


@contextmanager
def get_db_session_ctx():
    """
    Context manager for database sessions.

    One context = one unit of work: commit on success, rollback on any error.

    Usage:
        with get_db_session_ctx() as session:
            account = session.query(Account).first()
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()


def setup_database():
    """Initialize database - create all tables."""
    import models  # noqa: F401  registers tables on Base.metadata

    logger.info("Setting up database...")
    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database setup completed")


def reset_all_data(session: Session) -> int:
    """
    Delete every row of every table, children first.

    Returns:
        Number of rows deleted
    """
    deleted = 0
    for table in reversed(Base.metadata.sorted_tables):
        result = session.execute(table.delete())
        deleted += result.rowcount or 0
    logger.warning(f"All data wiped ({deleted} rows)")
    return deleted


def dispose_engine():
    """Drop cached engine and session factory (picks up new DATABASE_URL)."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
