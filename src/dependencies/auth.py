from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from core.security import decode_token
from crud.user import get_user_by_id
from dependencies.db import DbSession
from models.users import User


# --------------------------------------------------------------------------- #
# Common constants / helpers
# --------------------------------------------------------------------------- #
LOGGER = logging.getLogger(__name__)
BEARER = "Bearer"


def unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    """Return the canonical 401 response."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": BEARER},
    )


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login", auto_error=False
)


async def _resolve_user(db: DbSession, token: str) -> User:
    # `decode_token` raises HTTPException(401) on a bad or expired token
    token_data = decode_token(token)

    sub = token_data.sub
    if not sub:
        LOGGER.debug("Token missing 'sub' claim")
        raise unauthorized()

    try:
        user_id = UUID(sub)
    except ValueError as exc:
        LOGGER.debug("Token 'sub' is not a valid UUID", exc_info=exc)
        raise unauthorized() from exc

    user = await get_user_by_id(db, user_id)
    if user is None:
        LOGGER.debug("User not found for sub=%s", sub)
        raise unauthorized()

    return user


# --------------------------------------------------------------------------- #
# The dependencies
# --------------------------------------------------------------------------- #
async def get_current_user(
    db: DbSession,
    token: Annotated[str, Depends(oauth2_scheme)],
) -> User:
    """
    Resolve the currently authenticated user from a JWT.

    Raises
    ------
    HTTPException(401)
        If the token is missing, malformed, expired, or the user does not exist.
    """
    return await _resolve_user(db, token)


async def get_optional_user(
    db: DbSession,
    token: Annotated[str | None, Depends(optional_oauth2_scheme)],
) -> User | None:
    """Resolve the caller when a valid bearer token is sent, else None.

    Generation works for anonymous callers; only history needs a user, so an
    absent or invalid token degrades to "signed out" instead of a 401.
    """
    if not token:
        return None
    try:
        return await _resolve_user(db, token)
    except HTTPException:
        LOGGER.debug("Ignoring invalid bearer token on optional-auth route")
        return None


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]
