# src/letterpress/models/user.py
"""SQLAlchemy model for operator accounts."""

from __future__ import annotations

import uuid

from sqlalchemy import Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from letterpress.db.session import Base


class User(Base):
    """An operator allowed to publish newsletter issues.

    Credentials live with the authentication layer; only the identity that
    scopes idempotency keys is kept here.
    """

    __tablename__ = "users"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
