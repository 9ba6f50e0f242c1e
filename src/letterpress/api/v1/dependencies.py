"""Request dependencies shared by the v1 endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from letterpress.core.security import InvalidAccessToken, decode_access_token
from letterpress.db.session import get_db
from letterpress.models import User

bearer_scheme = HTTPBearer()

SessionDep = Annotated[Session, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Resolve the operator behind the bearer token.

    Raises:
        HTTPException: 401 if the token does not verify or names no known operator
    """
    try:
        user_id = decode_access_token(credentials.credentials)
    except InvalidAccessToken as err:
        raise _unauthorized("Could not validate credentials") from err

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]
