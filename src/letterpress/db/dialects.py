"""Dialect-specific statement constructors."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(session: Session) -> Any:
    """Return the ``insert`` construct supporting ``on_conflict_do_nothing``.

    Raises:
        NotImplementedError: For dialects without ``ON CONFLICT`` support.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"ON CONFLICT inserts are not supported on {dialect!r}")


def is_sqlite(session: Session) -> bool:
    """Return True when the session is bound to a SQLite database."""
    return session.get_bind().dialect.name == "sqlite"
