"""Access token helpers for operator authentication."""
from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from letterpress.core.settings import settings


class InvalidAccessToken(ValueError):
    """Raised when a bearer token is unsigned, expired or has no usable subject."""


def create_access_token(user_id: uuid.UUID, expires_minutes: int | None = None) -> str:
    """Issue a signed bearer token whose subject is ``user_id``."""
    minutes = settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    expire = datetime.now(UTC) + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Verify ``token`` and return the operator id it was issued for."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise InvalidAccessToken(str(err)) from err

    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise InvalidAccessToken("Token has no subject")
    try:
        return uuid.UUID(subject)
    except ValueError as err:
        raise InvalidAccessToken(f"Token subject {subject!r} is not a user id") from err
