# src/letterpress/models/idempotency.py
"""SQLAlchemy model for saved idempotent responses."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, LargeBinary, SmallInteger, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from letterpress.db.session import Base
from letterpress.db.time import utcnow


class IdempotencyRecord(Base):
    """Marker claiming an idempotency key, later holding the saved response.

    A row without ``response_status_code`` is still being processed by the
    request that inserted it.
    """

    __tablename__ = "idempotency"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.user_id"),
        primary_key=True,
    )
    idempotency_key: Mapped[str] = mapped_column(Text, primary_key=True)
    response_status_code: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    # List of [name, value] pairs, preserving order and repeated headers.
    response_headers: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def is_completed(self) -> bool:
        """Return True once a response has been saved against the key."""
        return self.response_status_code is not None
