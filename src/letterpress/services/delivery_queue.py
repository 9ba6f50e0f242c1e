"""Claim and retire rows of the issue delivery queue.

A claimed row stays locked until the claiming transaction ends. Committing
after :func:`delete_task` retires it; rolling back (or closing the session)
hands it back to the queue for the next sweep.

Rows are claimed oldest ``enqueued_at`` first. A task that failed
transiently is replaced by :func:`requeue_task` with a fresh timestamp, so it
waits behind everything queued before the failure.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, false, func, insert, select, update
from sqlalchemy.orm import Session

from letterpress.db.dialects import is_sqlite
from letterpress.db.time import utcnow
from letterpress.models import IssueDeliveryTask

_queue = IssueDeliveryTask.__table__


@dataclass(frozen=True)
class ClaimedTask:
    """Identifiers of a delivery task locked by the current transaction."""

    newsletter_issue_id: uuid.UUID
    subscriber_email: str
    attempts: int = 0


def _lock_queue(session: Session) -> None:
    """Open the claiming transaction with SQLite's database write lock.

    SQLite has no row locks and ignores ``FOR UPDATE``. Any write statement
    takes the reserved lock, held until commit or rollback, so a second
    claimer waits here instead of reading a row that is already claimed.
    Must run before anything else in the transaction.
    """
    session.execute(update(_queue).where(false()).values(attempts=_queue.c.attempts))


def dequeue_task(session: Session) -> ClaimedTask | None:
    """Lock the oldest pending task, skipping rows locked by other workers."""
    if is_sqlite(session):
        _lock_queue(session)
    row = session.execute(
        select(
            IssueDeliveryTask.newsletter_issue_id,
            IssueDeliveryTask.subscriber_email,
            IssueDeliveryTask.attempts,
        )
        .order_by(
            IssueDeliveryTask.enqueued_at,
            IssueDeliveryTask.newsletter_issue_id,
            IssueDeliveryTask.subscriber_email,
        )
        .limit(1)
        .with_for_update(skip_locked=True)
    ).first()
    if row is None:
        return None
    return ClaimedTask(
        newsletter_issue_id=row.newsletter_issue_id,
        subscriber_email=row.subscriber_email,
        attempts=row.attempts,
    )


def delete_task(session: Session, task: ClaimedTask) -> None:
    """Remove a task that reached a terminal outcome. The caller commits."""
    session.execute(
        delete(IssueDeliveryTask).where(
            IssueDeliveryTask.newsletter_issue_id == task.newsletter_issue_id,
            IssueDeliveryTask.subscriber_email == task.subscriber_email,
        )
    )


def requeue_task(session: Session, task: ClaimedTask) -> None:
    """Move a transiently failed task to the back of the queue.

    The row is replaced rather than updated: it is deleted and inserted again
    with a new ``enqueued_at`` and one more recorded attempt. The caller
    commits.
    """
    delete_task(session, task)
    session.execute(
        insert(_queue).values(
            newsletter_issue_id=task.newsletter_issue_id,
            subscriber_email=task.subscriber_email,
            enqueued_at=utcnow(),
            attempts=task.attempts + 1,
        )
    )


def count_pending_tasks(session: Session, newsletter_issue_id: uuid.UUID | None = None) -> int:
    """Return the queue backlog, optionally for a single issue."""
    stmt = select(func.count()).select_from(IssueDeliveryTask)
    if newsletter_issue_id is not None:
        stmt = stmt.where(IssueDeliveryTask.newsletter_issue_id == newsletter_issue_id)
    return session.execute(stmt).scalar_one()
