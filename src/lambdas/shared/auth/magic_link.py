"""Mint and read magic-link tokens on top of the token codec."""

import logging
import secrets

from pydantic import ValidationError

from src.lambdas.shared.auth import token_codec
from src.lambdas.shared.errors.session_errors import (
    MalformedTokenError,
    TokenExpiredError,
)
from src.lambdas.shared.models.magic_link_token import (
    MAGIC_LINK_TTL_SECONDS,
    MAGIC_LINK_TYPE,
    MAGIC_LINK_VERSION,
    NONCE_BYTES,
    MagicLinkClaims,
    MagicLinkIntent,
)

logger = logging.getLogger(__name__)


def new_nonce() -> str:
    """Fresh URL-safe nonce (16 random bytes)."""
    return secrets.token_urlsafe(NONCE_BYTES)


def mint_magic_link_token(
    *,
    email: str,
    customer_id: str,
    intent: MagicLinkIntent,
    secret: str,
    now: int,
    ttl_seconds: int = MAGIC_LINK_TTL_SECONDS,
) -> tuple[str, MagicLinkClaims]:
    """Build and sign a single-use magic-link token.

    Returns:
        Tuple of (token, claims)
    """
    claims = MagicLinkClaims(
        intent=intent,
        email=email,
        customer_id=customer_id,
        iat=now,
        exp=now + ttl_seconds,
        nonce=new_nonce(),
    )
    return token_codec.encode(claims.to_payload(), secret), claims


def read_magic_link_token(token: str, secret: str, now: int) -> MagicLinkClaims:
    """Verify signature, discriminator, shape and expiry of a magic-link token.

    Raises:
        MalformedTokenError: Bad envelope, wrong ``typ``/``v`` or bad claims
        InvalidSignatureError: Signature mismatch
        TokenExpiredError: ``exp`` <= now
    """
    payload = token_codec.decode(token, secret)

    # A session cookie is signed with the same secret; never accept one here
    if payload.get("typ") != MAGIC_LINK_TYPE or payload.get("v") != MAGIC_LINK_VERSION:
        logger.warning(
            "Token discriminator mismatch",
            extra={"typ": str(payload.get("typ"))[:20]},
        )
        raise MalformedTokenError()

    try:
        claims = MagicLinkClaims.model_validate(payload)
    except ValidationError:
        raise MalformedTokenError() from None

    if claims.is_expired(now):
        raise TokenExpiredError(expired_at=claims.exp)
    return claims
