"""Engine, session factory and the declarative base."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from letterpress.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for every Letterpress table."""


# Register the mapped classes on Base.metadata for Alembic and create_all.
import letterpress.models  # noqa: E402,F401


def _connect_args(url: str) -> dict[str, Any]:
    # Sync endpoints and delivery workers use connections from other threads.
    # A delivery claim holds the SQLite write lock for the whole send, so
    # writers wait longer than the email gateway timeout before giving up.
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.email_timeout_seconds + 20}
    return {}


engine = create_engine(
    settings.database_url_sync,
    connect_args=_connect_args(settings.database_url_sync),
    pool_pre_ping=True,
    echo=settings.sql_debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; the handler decides when to commit."""
    with SessionLocal() as db:
        yield db
