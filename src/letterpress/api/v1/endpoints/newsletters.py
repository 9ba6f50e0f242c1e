"""Newsletter publishing endpoints for the Letterpress API."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Form, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from letterpress.api.v1.dependencies import CurrentUserDep, SessionDep
from letterpress.domain.idempotency_key import InvalidIdempotencyKey
from letterpress.schemas.newsletter import IdempotencyKeyResponse, NewsletterForm
from letterpress.services.idempotency import IdempotencyConflictError
from letterpress.services.publishing import publish_newsletter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/newsletters", tags=["newsletters"])


@router.get("/idempotency-key", response_model=IdempotencyKeyResponse)
def issue_idempotency_key(current_user: CurrentUserDep) -> IdempotencyKeyResponse:
    """Return a fresh idempotency key for the next newsletter form."""
    return IdempotencyKeyResponse(idempotency_key=str(uuid.uuid4()))


@router.post("")
def publish_newsletter_issue(
    db: SessionDep,
    current_user: CurrentUserDep,
    title: Annotated[str, Form()] = "",
    content_text: Annotated[str, Form()] = "",
    content_html: Annotated[str, Form()] = "",
    idempotency_key: Annotated[str, Form()] = "",
) -> Response:
    """Publish a newsletter issue to every confirmed subscriber.

    Delivery happens asynchronously through the issue delivery queue. Retrying
    with the same idempotency key replays the first response.

    Raises:
        HTTPException: 400 for a malformed idempotency key, 409 while the same
            key is still being processed, 500 on storage failure
    """
    form = NewsletterForm(
        title=title,
        content_text=content_text,
        content_html=content_html,
        idempotency_key=idempotency_key,
    )
    try:
        return publish_newsletter(
            db,
            user_id=current_user.user_id,
            content=form.to_content(),
            raw_idempotency_key=form.idempotency_key,
        )
    except InvalidIdempotencyKey as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(err),
        ) from err
    except IdempotencyConflictError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This newsletter is already being published, try again shortly",
            headers={"Retry-After": "1"},
        ) from err
    except SQLAlchemyError as err:
        logger.exception("Failed to publish a newsletter issue")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to publish newsletter issue",
        ) from err
