"""Tests for the background delivery worker."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, call

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from letterpress.domain.subscriber_email import SubscriberEmail
from letterpress.models import IssueDeliveryTask, Subscription
from letterpress.services.delivery_queue import count_pending_tasks, dequeue_task, requeue_task
from letterpress.services.delivery_worker import DeliveryWorker, ExecutionOutcome
from letterpress.services.email_client import PermanentDeliveryError, TransientDeliveryError
from letterpress.services.newsletter import (
    NewsletterContent,
    enqueue_delivery_tasks,
    insert_newsletter_issue,
)
from tests.conftest import count_rows, queued_emails

CONTENT = NewsletterContent(
    title="Issue #1",
    text_content="Plain text body",
    html_content="<p>HTML body</p>",
)


@pytest.fixture
def publish_issue(db_session: Session) -> Callable[[], None]:
    def _publish() -> None:
        issue_id = insert_newsletter_issue(db_session, CONTENT)
        enqueue_delivery_tasks(db_session, issue_id)
        db_session.commit()

    return _publish


def _worker(email_client: AsyncMock, session_factory: sessionmaker[Session]) -> DeliveryWorker:
    return DeliveryWorker(
        email_client,
        session_factory,
        idle_seconds=0.01,
        retry_backoff_seconds=0,
    )


@pytest.mark.asyncio
async def test_empty_queue(
    mock_email_client: AsyncMock, session_factory: sessionmaker[Session]
) -> None:
    worker = _worker(mock_email_client, session_factory)

    assert await worker.try_execute_task() is ExecutionOutcome.EMPTY_QUEUE
    mock_email_client.send_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_drains_queue_and_sends_issue_content(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("first@example.com")
    add_subscriber("second@example.com")
    publish_issue()
    worker = _worker(mock_email_client, session_factory)

    iterations = await worker.run_until_empty()

    assert iterations == 3
    assert count_pending_tasks(db_session) == 0
    assert mock_email_client.send_email.await_count == 2
    issue_args = (CONTENT.title, CONTENT.html_content, CONTENT.text_content)
    mock_email_client.send_email.assert_has_awaits(
        [
            call(SubscriberEmail("first@example.com"), *issue_args),
            call(SubscriberEmail("second@example.com"), *issue_args),
        ],
        any_order=True,
    )


@pytest.mark.asyncio
async def test_transient_failure_leaves_task_queued(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("flaky@example.com")
    add_subscriber("steady@example.com")
    publish_issue()
    failures = {"flaky@example.com": 1}

    async def send_email(recipient, subject, html_content, text_content) -> None:
        if failures.get(recipient.value, 0) > 0:
            failures[recipient.value] -= 1
            raise TransientDeliveryError("gateway unavailable")

    mock_email_client.send_email.side_effect = send_email
    worker = _worker(mock_email_client, session_factory)

    queued_after_release: set[str] | None = None
    for _ in range(10):
        outcome = await worker.try_execute_task()
        if outcome is ExecutionOutcome.TASK_RELEASED:
            queued_after_release = queued_emails(db_session)
        if outcome is ExecutionOutcome.EMPTY_QUEUE:
            break

    assert queued_after_release is not None
    assert "flaky@example.com" in queued_after_release
    assert count_pending_tasks(db_session) == 0
    sent_to = [c.args[0].value for c in mock_email_client.send_email.await_args_list]
    assert sent_to.count("flaky@example.com") == 2
    assert sent_to.count("steady@example.com") == 1


@pytest.mark.asyncio
async def test_permanent_failure_drops_task(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("rejected@example.com")
    publish_issue()
    mock_email_client.send_email.side_effect = PermanentDeliveryError("inactive recipient")
    worker = _worker(mock_email_client, session_factory)

    assert await worker.try_execute_task() is ExecutionOutcome.TASK_DROPPED
    assert count_rows(db_session, IssueDeliveryTask) == 0
    assert await worker.try_execute_task() is ExecutionOutcome.EMPTY_QUEUE


@pytest.mark.asyncio
async def test_invalid_stored_email_is_skipped(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("definitely-not-an-email")
    publish_issue()
    worker = _worker(mock_email_client, session_factory)

    assert await worker.try_execute_task() is ExecutionOutcome.TASK_DROPPED
    assert count_rows(db_session, IssueDeliveryTask) == 0
    mock_email_client.send_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_until_empty_respects_iteration_limit(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("down@example.com")
    publish_issue()
    mock_email_client.send_email.side_effect = TransientDeliveryError("gateway unavailable")
    worker = _worker(mock_email_client, session_factory)

    assert await worker.run_until_empty(max_iterations=3) == 3
    assert mock_email_client.send_email.await_count == 3
    assert queued_emails(db_session) == {"down@example.com"}


@pytest.mark.asyncio
async def test_background_loop_delivers_and_stops(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("first@example.com")
    publish_issue()
    worker = _worker(mock_email_client, session_factory)

    await worker.start()
    assert worker.running
    for _ in range(100):
        if count_pending_tasks(db_session) == 0:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert not worker.running
    assert count_pending_tasks(db_session) == 0
    mock_email_client.send_email.assert_awaited_once()


@pytest.mark.asyncio
async def test_storage_errors_do_not_kill_the_loop(
    mocker: MockerFixture,
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
) -> None:
    worker = _worker(mock_email_client, session_factory)
    attempts = 0
    original = worker.try_execute_task

    async def flaky_execute() -> ExecutionOutcome:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return await original()

    mocker.patch.object(worker, "try_execute_task", side_effect=flaky_execute)

    await worker.start()
    for _ in range(100):
        if attempts >= 2:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert attempts >= 2


@pytest.mark.asyncio
async def test_data_errors_do_not_kill_the_loop(
    mocker: MockerFixture,
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
) -> None:
    worker = _worker(mock_email_client, session_factory)
    attempts = 0
    original = worker.try_execute_task

    async def flaky_execute() -> ExecutionOutcome:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise ValueError("unexpected row shape")
        return await original()

    mocker.patch.object(worker, "try_execute_task", side_effect=flaky_execute)

    await worker.start()
    for _ in range(100):
        if attempts >= 2:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert attempts >= 2
    assert not worker.running


@pytest.mark.asyncio
async def test_concurrent_claimers_deliver_a_task_once(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("only@example.com")
    publish_issue()

    async def slow_send(recipient, subject, html_content, text_content) -> None:
        await asyncio.sleep(0.05)

    mock_email_client.send_email.side_effect = slow_send
    first = _worker(mock_email_client, session_factory)
    second = _worker(mock_email_client, session_factory)

    outcomes = await asyncio.gather(first.try_execute_task(), second.try_execute_task())

    assert sorted(outcome.value for outcome in outcomes) == ["empty_queue", "task_delivered"]
    mock_email_client.send_email.assert_awaited_once()
    assert count_pending_tasks(db_session) == 0


@pytest.mark.asyncio
async def test_parallel_workers_send_each_task_once(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    emails = [f"reader{index}@example.com" for index in range(6)]
    for email in emails:
        add_subscriber(email)
    publish_issue()

    async def slow_send(recipient, subject, html_content, text_content) -> None:
        await asyncio.sleep(0.01)

    mock_email_client.send_email.side_effect = slow_send
    workers = [_worker(mock_email_client, session_factory) for _ in range(3)]

    await asyncio.gather(*(worker.run_until_empty() for worker in workers))

    sent_to = [c.args[0].value for c in mock_email_client.send_email.await_args_list]
    assert len(sent_to) == len(emails)
    assert sorted(sent_to) == sorted(emails)
    assert count_pending_tasks(db_session) == 0


@pytest.mark.asyncio
async def test_failing_recipient_does_not_hold_up_the_queue(
    mock_email_client: AsyncMock,
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("a-broken@example.com")
    add_subscriber("b-healthy@example.com")
    publish_issue()

    async def send_email(recipient, subject, html_content, text_content) -> None:
        if recipient.value == "a-broken@example.com":
            raise TransientDeliveryError("mailbox unavailable")

    mock_email_client.send_email.side_effect = send_email
    worker = DeliveryWorker(
        mock_email_client,
        session_factory,
        idle_seconds=0.01,
        retry_backoff_seconds=0,
        max_attempts=5,
    )

    iterations = await worker.run_until_empty(max_iterations=50)

    sent_to = [c.args[0].value for c in mock_email_client.send_email.await_args_list]
    assert sent_to[:2] == ["a-broken@example.com", "b-healthy@example.com"]
    assert sent_to.count("b-healthy@example.com") == 1
    assert sent_to.count("a-broken@example.com") == 5
    # Five failures, one delivery, then the empty pass.
    assert iterations == 7
    assert count_pending_tasks(db_session) == 0


def test_requeued_task_moves_behind_older_tasks(
    session_factory: sessionmaker[Session],
    db_session: Session,
    add_subscriber: Callable[..., Subscription],
    publish_issue: Callable[[], None],
) -> None:
    add_subscriber("a@example.com")
    add_subscriber("b@example.com")
    publish_issue()

    with session_factory() as session:
        first = dequeue_task(session)
        assert first is not None
        requeue_task(session, first)
        session.commit()
    with session_factory() as session:
        second = dequeue_task(session)

    assert first.subscriber_email == "a@example.com"
    assert first.attempts == 0
    assert second is not None
    assert second.subscriber_email == "b@example.com"
    requeued = db_session.get(IssueDeliveryTask, (first.newsletter_issue_id, "a@example.com"))
    assert requeued is not None
    assert requeued.attempts == 1
    assert queued_emails(db_session) == {"a@example.com", "b@example.com"}
