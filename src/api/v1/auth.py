"""Auth (register/login) API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from core.exceptions import DuplicateUserError
from core.ratelimit import check_rate_limit
from core.security import create_access_token, get_password_hash, verify_password
from crud.user import create_user, get_user_by_username
from dependencies.auth import CurrentUser
from dependencies.db import DbSession
from schemas.api import ApiResponse
from schemas.auth import Token, UserRegister
from schemas.user import UserPublic


router = APIRouter(prefix="/auth", tags=["auth"])

PasswordForm = Annotated[OAuth2PasswordRequestForm, Depends()]

_logger = logging.getLogger(__name__)


@router.post("/login", response_model=Token, dependencies=[Depends(check_rate_limit)])
async def login(form_data: PasswordForm, db: DbSession) -> Token:
    """
    OAuth2-compatible token login, get an access token for future requests.

    - **username**: The user's username
    - **password**: The user's password
    """
    user = await get_user_by_username(db=db, username=form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"sub": str(user.id)})
    return Token(access_token=access_token, token_type="bearer")


@router.post(
    "/register",
    response_model=Token,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def register(payload: UserRegister, db: DbSession) -> Token:
    """
    Register a new user account and sign it in.

    - **username**: The user's username (3-32 chars, alphanumeric, underscore, hyphen)
    - **email**: Valid email address
    - **password**: Password with minimum length of 12 characters
    """
    try:
        user = await create_user(
            db=db,
            email=payload.email.lower(),
            username=payload.username,
            hashed_password=get_password_hash(payload.password),
        )
    except DuplicateUserError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        ) from err

    _logger.info("Registered user %s", user.id)
    access_token = create_access_token(data={"sub": str(user.id)})
    return Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=ApiResponse[UserPublic])
async def read_me(current_user: CurrentUser) -> ApiResponse[UserPublic]:
    """Return the signed-in user."""
    return ApiResponse(
        success=True,
        data=UserPublic.model_validate(current_user),
        message="Current user retrieved",
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(current_user: CurrentUser) -> None:
    """Sign out.

    Access tokens are stateless JWTs: the client discards its token and it
    expires on its own after ``ACCESS_TOKEN_EXPIRE_MINUTES``.
    """
    _logger.info("User %s signed out", current_user.id)
