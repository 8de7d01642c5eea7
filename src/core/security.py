import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerifyMismatchError
from fastapi import HTTPException, status
from jose import JWTError, jwt

from core.config import Settings, get_settings
from schemas.auth import TokenData


def _settings() -> Settings:  # lazy accessor to allow tests to set env first
    return get_settings()


# Argon2id with library defaults
_password_hasher = PasswordHasher()

_logger = logging.getLogger(__name__)


def create_access_token(
    data: dict[str, Any], expires_delta: timedelta | None = None
) -> str:
    """Encode a JWT carrying ``sub`` and an expiry."""
    s = _settings()
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=s.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode["exp"] = datetime.now(UTC) + lifetime
    return jwt.encode(to_encode, s.SECRET_KEY, algorithm=s.ALGORITHM)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against an Argon2 hash.

    Mismatches and unreadable hashes return False rather than raising.
    """
    try:
        return _password_hasher.verify(hashed, plain)
    except (VerifyMismatchError, HashingError, InvalidHashError):
        return False


def get_password_hash(password: str) -> str:
    return _password_hasher.hash(password)


def _credentials_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> TokenData:
    """Decode and validate a JWT, returning TokenData or raising 401."""
    s = _settings()
    try:
        payload = jwt.decode(
            token,
            s.SECRET_KEY,
            algorithms=[s.ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as err:
        raise _credentials_error("Could not validate credentials") from err

    sub = payload.get("sub")
    if sub is None:
        raise _credentials_error("Token missing subject")
    _logger.debug("Decoded access token for subject %s", sub)
    return TokenData(sub=str(sub))
