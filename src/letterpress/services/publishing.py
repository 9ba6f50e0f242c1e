"""Publishing a newsletter issue behind an idempotency key.

Issue creation, fan-out to the delivery queue and the saved response are one
database transaction. Emails are only sent later by the delivery worker, so
a crash at any point either leaves all three artifacts or none of them.
"""

from __future__ import annotations

import logging
import uuid
from urllib.parse import quote

from sqlalchemy.orm import Session
from starlette.responses import RedirectResponse, Response

from letterpress.domain.idempotency_key import IdempotencyKey
from letterpress.services import idempotency
from letterpress.services.newsletter import (
    NewsletterContent,
    NewsletterValidationError,
    enqueue_delivery_tasks,
    insert_newsletter_issue,
    validate_newsletter_content,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

FLASH_INFO_COOKIE = "flash_info"
FLASH_ERROR_COOKIE = "flash_error"
PUBLISH_SUCCESS_MESSAGE = "Newsletters were sent to subscribers!"
DASHBOARD_PATH = "/admin/dashboard"
NEWSLETTER_FORM_PATH = "/admin/newsletters"


def see_other(location: str) -> Response:
    """Return a 303 redirect to ``location``."""
    return RedirectResponse(url=location, status_code=303)


def flash(response: Response, cookie_name: str, message: str) -> Response:
    """Attach a one-shot message for the next page the browser renders."""
    response.set_cookie(cookie_name, quote(message), httponly=True, samesite="lax")
    return response


def publish_newsletter(
    session: Session,
    *,
    user_id: uuid.UUID,
    content: NewsletterContent,
    raw_idempotency_key: str,
) -> Response:
    """Publish ``content`` once per ``(user_id, idempotency key)``.

    Args:
        session: Session owning the publishing transaction.
        user_id: Authenticated operator.
        content: Issue submitted through the form.
        raw_idempotency_key: Key as sent by the client.

    Returns:
        A redirect back to the form with an error flash when the content is
        incomplete, otherwise the redirect to the dashboard, saved against the
        key and replayed verbatim on retries.

    Raises:
        InvalidIdempotencyKey: If the key is malformed; nothing was written.
        IdempotencyConflictError: If the same key is still being processed.
        sqlalchemy.exc.SQLAlchemyError: On storage failure; nothing was committed.
    """
    try:
        validate_newsletter_content(content)
    except NewsletterValidationError as e:
        return flash(see_other(NEWSLETTER_FORM_PATH), FLASH_ERROR_COOKIE, str(e))

    key = IdempotencyKey.parse(raw_idempotency_key)

    try:
        next_action = idempotency.begin_or_return(session, user_id, key)
        if isinstance(next_action, idempotency.ReturnSaved):
            return next_action.response

        issue_id = insert_newsletter_issue(session, content)
        enqueue_delivery_tasks(session, issue_id)
        response = flash(see_other(DASHBOARD_PATH), FLASH_INFO_COOKIE, PUBLISH_SUCCESS_MESSAGE)
        response = idempotency.complete(next_action, response)
    except Exception:
        session.rollback()
        raise

    logger.info("Published issue %s for user %s", issue_id, user_id)
    return response
