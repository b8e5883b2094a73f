"""
Database engine and session handling for DoseCheck

Every DateTime column holds naive UTC; see tools.clock.
"""

import logging
from contextlib import contextmanager
from typing import Generator, List

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from config import settings


logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL

    In-memory SQLite shares one connection across threads so the API, the
    jobs and the tests see the same tables. Server databases get a bounded
    pool with a short checkout timeout, so a stuck connection fails the
    current batch item rather than the whole job.
    """
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            options["poolclass"] = StaticPool
        new_engine = create_engine(url, echo=echo, **options)
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
        return new_engine

    return create_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_timeout=10,
        pool_pre_ping=True
    )


engine = build_engine(settings.DATABASE_URL, settings.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Session for batch jobs and services called without a session

    Services commit per item themselves; the final commit here only flushes
    whatever the last item left pending.

    Usage:
        with get_db_context() as db:
            db.query(ConfirmationSession).filter(...).all()
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


def init_db(bind: Engine = None) -> None:
    """Create any missing tables"""
    # Register the models with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


def drop_db(bind: Engine = None) -> None:
    """Drop every DoseCheck table. Destroys all data."""
    Base.metadata.drop_all(bind=bind or engine)
    logger.warning("All database tables dropped")


class DatabaseHealthCheck:
    """Checks reported by /health"""

    @staticmethod
    def is_connected() -> bool:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed")
            return False

    @staticmethod
    def missing_tables() -> List[str]:
        """Model tables not present in the connected database"""
        import models  # noqa: F401

        existing = set(inspect(engine).get_table_names())
        return sorted(name for name in Base.metadata.tables if name not in existing)


__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "build_engine",
    "get_db",
    "get_db_context",
    "init_db",
    "drop_db",
    "DatabaseHealthCheck"
]
