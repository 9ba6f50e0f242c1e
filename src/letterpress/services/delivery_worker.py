"""Background delivery of queued newsletter issues.

This module provides the DeliveryWorker class that drains the issue delivery
queue one task at a time. Several workers may run side by side, in one
process or many. On PostgreSQL each claim locks its row and skips rows
locked by others; on SQLite a claim holds the database write lock, so other
claimers wait. The database is the only coordination between workers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from letterpress.core.settings import settings
from letterpress.domain.subscriber_email import InvalidSubscriberEmail, SubscriberEmail
from letterpress.services.delivery_queue import (
    ClaimedTask,
    delete_task,
    dequeue_task,
    requeue_task,
)
from letterpress.services.email_client import (
    EmailClient,
    PermanentDeliveryError,
    TransientDeliveryError,
)
from letterpress.services.newsletter import get_newsletter_issue

# Configure logger for this module
logger = logging.getLogger(__name__)


class ExecutionOutcome(Enum):
    """Result of a single pass over the delivery queue."""

    TASK_DELIVERED = "task_delivered"
    TASK_DROPPED = "task_dropped"      # Task removed without delivery
    TASK_RELEASED = "task_released"    # Transient failure, task queued again
    EMPTY_QUEUE = "empty_queue"


class DeliveryWorker:
    """Repeatedly claims one delivery task and hands it to the email gateway.

    The email client and the session factory are supplied by the caller; the
    worker keeps no state about in-flight tasks beyond the open transaction
    of the current claim.
    """

    def __init__(
        self,
        email_client: EmailClient,
        session_factory: Callable[[], Session],
        *,
        idle_seconds: float | None = None,
        retry_backoff_seconds: float | None = None,
        max_attempts: int | None = None,
        name: str = "delivery-worker",
    ) -> None:
        """Initialize the delivery worker.

        Args:
            email_client: Gateway used to send each issue.
            session_factory: Callable returning a new database session per task.
            idle_seconds: Wait after finding the queue empty.
            retry_backoff_seconds: Wait after a transient failure or storage error.
            max_attempts: Transient failures after which a task is dropped.
            name: Label used in log records.
        """
        self.email_client = email_client
        self._session_factory = session_factory
        self.idle_seconds = (
            settings.delivery_idle_seconds if idle_seconds is None else idle_seconds
        )
        self.retry_backoff_seconds = (
            settings.delivery_retry_backoff_seconds
            if retry_backoff_seconds is None
            else retry_backoff_seconds
        )
        self.max_attempts = (
            settings.delivery_max_attempts if max_attempts is None else max_attempts
        )
        self.name = name
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background delivery loop."""

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        """Stop the loop after the in-flight task, if any, finishes."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        logger.info("%s started", self.name)
        while not self._stopping.is_set():
            try:
                outcome = await self.try_execute_task()
            except SQLAlchemyError as e:
                logger.error("%s encountered a storage error: %s", self.name, e, exc_info=True)
                await self._pause(self.retry_backoff_seconds)
                continue
            except (OSError, ConnectionError, TimeoutError) as e:
                logger.warning("%s encountered network error: %s", self.name, e)
                await self._pause(self.retry_backoff_seconds)
                continue
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.error(
                    "%s encountered data processing error: %s", self.name, e, exc_info=True
                )
                await self._pause(self.retry_backoff_seconds)
                continue

            if outcome is ExecutionOutcome.EMPTY_QUEUE:
                await self._pause(self.idle_seconds)
            elif outcome is ExecutionOutcome.TASK_RELEASED:
                await self._pause(self.retry_backoff_seconds)
        logger.info("%s stopped", self.name)

    async def _pause(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless asked to stop first."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=max(0.0, seconds))
        except TimeoutError:
            pass

    async def try_execute_task(self) -> ExecutionOutcome:
        """Claim one task and drive it to an outcome.

        The claim lives in the session's transaction; closing the session
        without committing releases it back to the queue. Database calls run
        in a thread so a claim waiting on a lock never blocks the event loop.
        """
        session = self._session_factory()
        try:
            task = await asyncio.to_thread(dequeue_task, session)
            if task is None:
                return ExecutionOutcome.EMPTY_QUEUE
            return await self._deliver(session, task)
        finally:
            await asyncio.to_thread(session.close)

    async def _deliver(self, session: Session, task: ClaimedTask) -> ExecutionOutcome:
        try:
            recipient = SubscriberEmail.parse(task.subscriber_email)
        except InvalidSubscriberEmail as e:
            logger.warning(
                "Skipping a confirmed subscriber. Their stored contact details are invalid: %s",
                e,
            )
            await asyncio.to_thread(_retire, session, task)
            return ExecutionOutcome.TASK_DROPPED

        issue = await asyncio.to_thread(get_newsletter_issue, session, task.newsletter_issue_id)
        try:
            await self.email_client.send_email(
                recipient,
                issue.title,
                issue.html_content,
                issue.text_content,
            )
        except TransientDeliveryError as e:
            attempts = task.attempts + 1
            if attempts >= self.max_attempts:
                logger.warning(
                    "Giving up on issue %s to %s after %d attempts: %s",
                    task.newsletter_issue_id,
                    recipient,
                    attempts,
                    e,
                )
                await asyncio.to_thread(_retire, session, task)
                return ExecutionOutcome.TASK_DROPPED
            logger.warning(
                "Failed to deliver issue %s to %s, queueing it again: %s",
                task.newsletter_issue_id,
                recipient,
                e,
            )
            await asyncio.to_thread(_requeue, session, task)
            return ExecutionOutcome.TASK_RELEASED
        except PermanentDeliveryError as e:
            logger.warning(
                "Dropping delivery of issue %s to %s: %s",
                task.newsletter_issue_id,
                recipient,
                e,
            )
            await asyncio.to_thread(_retire, session, task)
            return ExecutionOutcome.TASK_DROPPED

        await asyncio.to_thread(_retire, session, task)
        logger.debug("Delivered issue %s to %s", task.newsletter_issue_id, recipient)
        return ExecutionOutcome.TASK_DELIVERED

    async def run_until_empty(self, max_iterations: int | None = None) -> int:
        """Drain the queue in the foreground and return the number of passes.

        Transient failures are followed by the usual backoff and the task goes
        to the back of the queue, so one failing recipient never holds up the
        others. Draining ends once every task is delivered or dropped.
        """
        iterations = 0
        while max_iterations is None or iterations < max_iterations:
            outcome = await self.try_execute_task()
            iterations += 1
            if outcome is ExecutionOutcome.EMPTY_QUEUE:
                break
            if outcome is ExecutionOutcome.TASK_RELEASED:
                await asyncio.sleep(self.retry_backoff_seconds)
        return iterations


def _retire(session: Session, task: ClaimedTask) -> None:
    delete_task(session, task)
    session.commit()


def _requeue(session: Session, task: ClaimedTask) -> None:
    requeue_task(session, task)
    session.commit()
