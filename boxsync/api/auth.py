"""
Box authentication.

A box trades its API key for a short-lived bearer token. The token's
subject is the box id, and every account, job and sync request is scoped
to it.
"""

import hmac
from datetime import datetime, timedelta
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from boxsync.config import get_settings
from boxsync.types.api import TokenResponse
from boxsync.utils.clock import utc_from_timestamp, utcnow

BOX_SCOPE = "box"

security = HTTPBearer()


class TokenData(BaseModel):
    """Claims of a verified box token."""

    box_id: str
    exp: datetime


class AuthenticatedBox(BaseModel):
    """The box making the request."""

    box_id: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(box_id: str, expires_delta: timedelta | None = None) -> str:
    """
    Sign a token for ``box_id``.

    Args:
        box_id: Token subject.
        expires_delta: Lifetime; defaults to ``api_access_token_expire_minutes``.
    """
    settings = get_settings()
    issued_at = utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.api_access_token_expire_minutes)

    claims = {
        "sub": box_id,
        "scope": BOX_SCOPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.api_secret_key, algorithm=settings.api_algorithm)


def decode_token(token: str) -> TokenData:
    """
    Verify a box token.

    Raises:
        HTTPException: 401 if the signature, expiry, subject or scope is bad.
    """
    settings = get_settings()

    try:
        claims = jwt.decode(token, settings.api_secret_key, algorithms=[settings.api_algorithm])
    except JWTError:
        raise _unauthorized("Invalid token")

    box_id = claims.get("sub")
    if not box_id or claims.get("scope") != BOX_SCOPE:
        raise _unauthorized("Invalid token: not a box token")

    return TokenData(box_id=box_id, exp=utc_from_timestamp(claims["exp"]))


async def get_current_box(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthenticatedBox:
    """FastAPI dependency resolving the bearer token to its box."""
    return AuthenticatedBox(box_id=decode_token(credentials.credentials).box_id)


CurrentBox = Annotated[AuthenticatedBox, Depends(get_current_box)]


def validate_api_key(api_key: str, box_id: str) -> bool:
    """
    Check a box's API key.

    Boxes listed in ``box_api_keys`` must present their provisioned key.
    Other boxes are provisioned outside this service and any non-empty key
    is accepted for them.
    """
    if not api_key or not box_id:
        return False

    expected = get_settings().box_api_keys.get(box_id)
    if expected is None:
        return True
    return hmac.compare_digest(api_key.encode(), expected.encode())


def issue_token(api_key: str, box_id: str) -> TokenResponse:
    """
    Exchange an API key for a token response.

    Raises:
        HTTPException: 401 if the key is not valid for the box.
    """
    if not validate_api_key(api_key, box_id):
        raise _unauthorized("Invalid API key")

    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(box_id),
        expires_in=settings.api_access_token_expire_minutes * 60,
    )
