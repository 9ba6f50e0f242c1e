# src/letterpress/models/subscription.py
"""SQLAlchemy model for newsletter subscriptions."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from letterpress.db.session import Base
from letterpress.db.time import utcnow

SUBSCRIPTION_STATUS_PENDING = "pending_confirmation"
SUBSCRIPTION_STATUS_CONFIRMED = "confirmed"


class Subscription(Base):
    """A subscriber as seen by the delivery subsystem.

    Only rows whose status is ``confirmed`` are targeted when an issue is
    published; the confirmation flow that flips the status lives elsewhere.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=SUBSCRIPTION_STATUS_PENDING
    )
