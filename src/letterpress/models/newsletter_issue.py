# src/letterpress/models/newsletter_issue.py
"""SQLAlchemy model for published newsletter issues."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from letterpress.db.session import Base
from letterpress.db.time import utcnow


class NewsletterIssue(Base):
    """Immutable content of a published issue, referenced by delivery tasks."""

    __tablename__ = "newsletter_issues"

    newsletter_issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[str] = mapped_column(Text, nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
