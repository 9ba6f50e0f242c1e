"""Newsletter issue storage and fan-out to the delivery queue."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import DateTime, Integer, Uuid, insert, literal, select
from sqlalchemy.orm import Session

from letterpress.db.dialects import insert_for
from letterpress.db.time import utcnow
from letterpress.models import IssueDeliveryTask, NewsletterIssue, Subscription
from letterpress.models.subscription import SUBSCRIPTION_STATUS_CONFIRMED

# Configure logger for this module
logger = logging.getLogger(__name__)


class NewsletterValidationError(ValueError):
    """Raised when a submitted issue is missing required content."""


@dataclass(frozen=True)
class NewsletterContent:
    """Content of an issue as submitted by the operator."""

    title: str
    text_content: str
    html_content: str


def validate_newsletter_content(content: NewsletterContent) -> None:
    """Ensure every field carries something other than whitespace.

    Raises:
        NewsletterValidationError: Naming the first empty field.
    """
    if not content.title.strip():
        raise NewsletterValidationError("Title is required field")
    if not content.text_content.strip():
        raise NewsletterValidationError("Content text field is required")
    if not content.html_content.strip():
        raise NewsletterValidationError("Content html field is required")


def insert_newsletter_issue(session: Session, content: NewsletterContent) -> uuid.UUID:
    """Persist a new issue in the current transaction and return its id."""
    issue_id = uuid.uuid4()
    session.execute(
        insert(NewsletterIssue).values(
            newsletter_issue_id=issue_id,
            title=content.title,
            text_content=content.text_content,
            html_content=content.html_content,
            published_at=utcnow(),
        )
    )
    return issue_id


def enqueue_delivery_tasks(session: Session, newsletter_issue_id: uuid.UUID) -> int:
    """Queue one delivery task per currently confirmed subscriber.

    A single ``INSERT ... SELECT`` sourced from the subscriptions table, so the
    target set is whatever is confirmed inside the publishing transaction.
    Pairs already queued are skipped, so re-running the fan-out adds nothing.

    Returns:
        The number of tasks queued.
    """
    confirmed_emails = select(
        literal(newsletter_issue_id, Uuid()),
        Subscription.email,
        literal(utcnow(), DateTime(timezone=True)),
        literal(0, Integer()),
    ).where(Subscription.status == SUBSCRIPTION_STATUS_CONFIRMED)
    result = session.execute(
        insert_for(session)(IssueDeliveryTask.__table__)
        .from_select(
            ["newsletter_issue_id", "subscriber_email", "enqueued_at", "attempts"],
            confirmed_emails,
        )
        .on_conflict_do_nothing()
    )
    queued = result.rowcount or 0
    logger.info("Queued %d delivery tasks for issue %s", queued, newsletter_issue_id)
    return queued


def get_newsletter_issue(session: Session, newsletter_issue_id: uuid.UUID) -> NewsletterIssue:
    """Load an issue referenced by a delivery task."""
    return session.execute(
        select(NewsletterIssue).where(
            NewsletterIssue.newsletter_issue_id == newsletter_issue_id
        )
    ).scalar_one()
