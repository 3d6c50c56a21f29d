"""Compact signed envelopes for magic-link tokens and session cookies.

Wire format::

    base64url(json(payload)) + "." + base64url(HMAC-SHA256(secret, first_part))

No ``=`` padding; ``+``/``/`` are replaced by ``-``/``_``.

The same codec and secret serve both token kinds. The codec does not look
inside the payload: callers MUST check the ``typ`` discriminator of what
they decoded (see models.magic_link_token and models.session).

Security Notes:
    - Signature is checked before the body is parsed; nothing in an
      unverified body is trusted.
    - Length mismatch is rejected before hmac.compare_digest, which then
      runs in constant time over equal-length inputs.
"""

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any

from src.lambdas.shared.errors.session_errors import (
    InvalidSignatureError,
    MalformedTokenError,
)

SEPARATOR = "."


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Inverse of b64url_encode. Raises ValueError on bad input."""
    padding = "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode((value + padding).encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError("invalid base64url") from e


def _canonical_bytes(payload: dict[str, Any]) -> bytes:
    return json.dumps(
        payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")


def _sign(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256)
    return b64url_encode(digest.digest())


def encode(payload: dict[str, Any], secret: str) -> str:
    """Serialize and sign ``payload``.

    Args:
        payload: JSON-serializable mapping
        secret: HMAC signing secret

    Returns:
        ``<body>.<sig>`` token string
    """
    body = b64url_encode(_canonical_bytes(payload))
    return f"{body}{SEPARATOR}{_sign(body, secret)}"


def decode(token: str, secret: str) -> dict[str, Any]:
    """Verify and parse a token produced by :func:`encode`.

    Args:
        token: ``<body>.<sig>`` string from an URL or cookie
        secret: HMAC signing secret

    Returns:
        The decoded payload mapping

    Raises:
        MalformedTokenError: Not exactly two non-empty parts, or the body is
            not base64url JSON describing an object
        InvalidSignatureError: Signature does not match
    """
    parts = token.split(SEPARATOR) if token else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MalformedTokenError()

    body, provided = parts
    try:
        expected = _sign(body, secret)
    except UnicodeEncodeError:
        # Non-ASCII body can never have been produced by encode()
        raise MalformedTokenError() from None

    provided_bytes = provided.encode("utf-8")
    expected_bytes = expected.encode("ascii")
    if len(provided_bytes) != len(expected_bytes):
        raise InvalidSignatureError()
    if not hmac.compare_digest(provided_bytes, expected_bytes):
        raise InvalidSignatureError()

    try:
        payload = json.loads(b64url_decode(body).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        raise MalformedTokenError() from None

    if not isinstance(payload, dict):
        raise MalformedTokenError()
    return payload
