"""Signed session cookies.

Same envelope and secret as magic-link tokens, distinguished by
``typ="session"``. The cookie is set HttpOnly, SameSite=Lax, path ``/``,
Secure everywhere except local development.
"""

import hashlib
import logging

from pydantic import ValidationError
from starlette.responses import Response

from src.lambdas.shared.auth import token_codec
from src.lambdas.shared.auth.token_codec import b64url_encode
from src.lambdas.shared.errors.session_errors import (
    InvalidSessionError,
    InvalidTokenError,
    MissingSessionError,
)
from src.lambdas.shared.models.session import (
    SESSION_TTL_SECONDS,
    SESSION_TYPE,
    SESSION_VERSION,
    SessionClaims,
)

logger = logging.getLogger(__name__)

SESSION_ID_LENGTH = 22


def derive_session_id(nonce: str) -> str:
    """Short, stable id for one login event, derived from the redeemed nonce."""
    digest = hashlib.sha256(f"sid:{nonce}".encode()).digest()
    return b64url_encode(digest)[:SESSION_ID_LENGTH]


def issue_session_token(claims: SessionClaims, secret: str) -> str:
    return token_codec.encode(claims.to_payload(), secret)


def read_session(
    cookie_value: str | None,
    secret: str,
    now: int,
    max_age_seconds: int = SESSION_TTL_SECONDS,
) -> SessionClaims:
    """Verify a session cookie value.

    Raises:
        MissingSessionError: No cookie value
        InvalidSessionError: Bad signature, wrong ``typ``, bad shape, or
            older than ``max_age_seconds``
    """
    if not cookie_value:
        raise MissingSessionError()

    try:
        payload = token_codec.decode(cookie_value, secret)
    except InvalidTokenError as e:
        logger.warning("Session cookie rejected", extra={"reason": e.reason})
        raise InvalidSessionError() from None

    if payload.get("typ") != SESSION_TYPE or payload.get("v") != SESSION_VERSION:
        raise InvalidSessionError()

    try:
        claims = SessionClaims.model_validate(payload)
    except ValidationError:
        raise InvalidSessionError() from None

    if "@" not in claims.email:
        raise InvalidSessionError()
    if claims.iat > now + 60 or claims.iat + max_age_seconds <= now:
        # Clock skew allowance of one minute for iat in the future
        raise InvalidSessionError()
    return claims


def set_session_cookie(
    response: Response,
    *,
    name: str,
    value: str,
    secure: bool,
    max_age: int = SESSION_TTL_SECONDS,
) -> None:
    """Attach the session cookie with its fixed security attributes."""
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )
