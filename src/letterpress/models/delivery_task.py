# src/letterpress/models/delivery_task.py
"""SQLAlchemy model for the issue delivery outbox."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from letterpress.db.session import Base
from letterpress.db.time import utcnow


class IssueDeliveryTask(Base):
    """One outstanding unit of work: send this issue to this subscriber.

    Rows are inserted in bulk together with their issue and deleted once the
    delivery reaches a terminal outcome. They are never updated in place; a
    transient failure replaces the row with a newer one.
    """

    __tablename__ = "issue_delivery_queue"
    __table_args__ = (Index("ix_issue_delivery_queue_enqueued_at", "enqueued_at"),)

    # (newsletter_issue_id, subscriber_email) -> existence means "still to deliver".
    newsletter_issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("newsletter_issues.newsletter_issue_id"),
        primary_key=True,
    )
    subscriber_email: Mapped[str] = mapped_column(Text, primary_key=True)
    # Claim order. Reset when a failed task is put back in the queue.
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    # Transient failures so far.
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
