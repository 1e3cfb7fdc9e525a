"""Sync engine and sessions for workers, scripts and the run-inspection API."""

from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from .config import settings


def sync_url(database_url: str) -> URL:
    """Parse DATABASE_URL, pinning plain ``postgresql://`` to the psycopg driver."""
    url = make_url(database_url)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg")
    return url


def is_sqlite(url: URL) -> bool:
    return url.drivername.startswith("sqlite")


def _sqlite_engine(url: URL):
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout_ms / 1000.0},
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _pragmas(dbapi_connection, connection_record):
        # Pipeline steps look up companies/listings while a worker holds the write lock.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute(f"PRAGMA busy_timeout={settings.sqlite_busy_timeout_ms};")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    return engine


def _postgres_engine(url: URL):
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=max(1, settings.db_pool_size),
        max_overflow=max(0, settings.db_max_overflow),
        pool_timeout=max(1, settings.db_pool_timeout_s),
        pool_recycle=max(0, settings.db_pool_recycle_s),
    )


database_url = sync_url(settings.database_url)
sync_engine = _sqlite_engine(database_url) if is_sqlite(database_url) else _postgres_engine(database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)


def init_db():
    """Create tables on local SQLite. Postgres is migrated with Alembic only."""
    if not is_sqlite(database_url):
        return
    from .models import Base
    Base.metadata.create_all(bind=sync_engine)


def get_sync_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
