# src/letterpress/models/__init__.py
"""SQLAlchemy models for the Letterpress application."""

from .delivery_task import IssueDeliveryTask
from .idempotency import IdempotencyRecord
from .newsletter_issue import NewsletterIssue
from .subscription import Subscription
from .user import User

__all__ = [
    "IdempotencyRecord",
    "IssueDeliveryTask",
    "NewsletterIssue",
    "Subscription",
    "User",
]
