"""Database engine and session management."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from audit.recorder import register_audit_recorder
from config import settings
from models import Base

logger = logging.getLogger(__name__)

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """Create an engine for ``url``, enforcing foreign keys on SQLite."""
    db_url = url or settings.database.url
    engine = create_engine(
        db_url,
        echo=settings.database.echo if echo is None else echo,
        pool_pre_ping=True,
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory whose sessions write audit rows on flush."""
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    register_audit_recorder(factory)
    return factory


def get_sync_engine() -> Engine:
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_db_engine()
    return _sync_engine


def get_sync_session() -> Session:
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = create_session_factory(get_sync_engine())
    return _sync_session_factory()


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Provide a session that commits on success and rolls back on error.

    Usage:
        with session_scope() as session:
            session.add(flag)
    """
    session = factory() if factory is not None else get_sync_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine or get_sync_engine())
    logger.info("Database tables created")


def check_connection(engine: Engine | None = None) -> bool:
    """Check if database connection is working."""
    try:
        with (engine or get_sync_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
