"""Idempotency store backing the publish endpoint.

A request claims its ``(user_id, idempotency_key)`` pair by inserting a
processing marker. The primary key on that pair is the only concurrency
control: a second request with the same key either finds the saved response
and replays it, or finds the marker still in flight and is told to retry.

The marker is written inside the caller's transaction, so whatever else the
request writes before :func:`complete` commits atomically with the saved
response.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from starlette.responses import Response

from letterpress.db.dialects import insert_for
from letterpress.db.time import utcnow
from letterpress.domain.idempotency_key import IdempotencyKey
from letterpress.models import IdempotencyRecord

# Configure logger for this module
logger = logging.getLogger(__name__)


class IdempotencyError(RuntimeError):
    """Base exception raised for idempotency store failures."""


class IdempotencyConflictError(IdempotencyError):
    """Raised when another request with the same key is still being processed.

    The caller should retry shortly; the outcome is never treated as success.
    """


@dataclass(frozen=True)
class StartProcessing:
    """The key was unseen: the caller owns it and must call :func:`complete`."""

    session: Session
    user_id: uuid.UUID
    key: IdempotencyKey


@dataclass(frozen=True)
class ReturnSaved:
    """The key was already completed: replay ``response`` and do nothing else."""

    response: Response


NextAction = StartProcessing | ReturnSaved


def _record_filter(user_id: uuid.UUID, key: IdempotencyKey) -> tuple[Any, Any]:
    return (
        IdempotencyRecord.user_id == user_id,
        IdempotencyRecord.idempotency_key == key.value,
    )


def begin_or_return(session: Session, user_id: uuid.UUID, key: IdempotencyKey) -> NextAction:
    """Claim ``key`` for ``user_id`` or return the response saved against it.

    Args:
        session: Session whose transaction will also hold the request's writes.
        user_id: Operator issuing the request; keys are scoped per user.
        key: Validated idempotency key.

    Returns:
        ``StartProcessing`` when the marker was inserted, ``ReturnSaved`` when a
        completed response already exists.

    Raises:
        IdempotencyConflictError: If the key is claimed but not yet completed.
    """
    insert = insert_for(session)
    stmt = (
        insert(IdempotencyRecord)
        .values(user_id=user_id, idempotency_key=key.value, created_at=utcnow())
        .on_conflict_do_nothing(index_elements=["user_id", "idempotency_key"])
    )
    result = session.execute(stmt)
    if result.rowcount > 0:
        logger.debug("Claimed idempotency key %s for user %s", key, user_id)
        return StartProcessing(session=session, user_id=user_id, key=key)

    saved_response = get_saved_response(session, user_id, key)
    session.rollback()
    if saved_response is None:
        raise IdempotencyConflictError(
            f"A request with idempotency key {key} is already being processed"
        )
    logger.info("Replaying saved response for idempotency key %s", key)
    return ReturnSaved(response=saved_response)


def get_saved_response(
    session: Session, user_id: uuid.UUID, key: IdempotencyKey
) -> Response | None:
    """Rebuild the response saved against ``key``, if the key has completed."""
    record = session.execute(
        select(IdempotencyRecord).where(*_record_filter(user_id, key))
    ).scalar_one_or_none()
    if record is None or not record.is_completed:
        return None

    response = Response(status_code=record.response_status_code or 0)
    response.body = record.response_body or b""
    response.raw_headers = [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in record.response_headers or []
    ]
    return response


def complete(handle: StartProcessing, response: Response) -> Response:
    """Save ``response`` against the claimed key and commit the transaction.

    Everything written through ``handle.session`` since :func:`begin_or_return`
    becomes visible together with the saved response.
    """
    body = getattr(response, "body", None)
    if body is None:
        raise IdempotencyError("Only fully rendered responses can be saved")

    headers = [
        [name.decode("latin-1"), value.decode("latin-1")]
        for name, value in response.raw_headers
    ]
    handle.session.execute(
        update(IdempotencyRecord)
        .where(*_record_filter(handle.user_id, handle.key))
        .values(
            response_status_code=response.status_code,
            response_headers=headers,
            response_body=bytes(body),
        )
    )
    handle.session.commit()
    return response


def purge_expired_records(session: Session, older_than: datetime) -> int:
    """Delete completed records created before ``older_than``.

    Markers still in flight are left alone. The caller commits.
    """
    result = session.execute(
        delete(IdempotencyRecord).where(
            IdempotencyRecord.created_at < older_than,
            IdempotencyRecord.response_status_code.is_not(None),
        )
    )
    return result.rowcount or 0
