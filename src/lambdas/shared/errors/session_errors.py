"""Token and session error types.

Raised by the token codec, the nonce ledger and session verification.
Each carries a short ``reason`` used as the ``?reason=`` value when the
verifier redirects back to the app.
"""

from src.lambdas.shared.errors.auth_errors import AccessError, AccessErrorCode


class InvalidTokenError(AccessError):
    """Magic-link token cannot be accepted (base for all token faults)."""

    code = AccessErrorCode.INVALID_TOKEN
    status_code = 400
    message = "Invalid link. Please request a new one."
    reason = "bad_payload"

    def __init__(self, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__()


class MalformedTokenError(InvalidTokenError):
    """Token is not a two-part envelope, or its body is not a JSON object."""

    code = AccessErrorCode.MALFORMED_TOKEN
    reason = "bad_payload"


class InvalidSignatureError(InvalidTokenError):
    """Signature does not match the body under the configured secret."""

    code = AccessErrorCode.INVALID_SIGNATURE
    reason = "bad_signature"


class TokenExpiredError(InvalidTokenError):
    """Token ``exp`` is at or before now."""

    code = AccessErrorCode.TOKEN_EXPIRED
    message = "This link has expired. Please request a new one."
    reason = "expired"

    def __init__(self, expired_at: int | None = None) -> None:
        self.expired_at = expired_at
        super().__init__()


class LinkAlreadyUsedError(AccessError):
    """Magic-link nonce was already redeemed.

    Raised when a concurrent or earlier request has consumed the token.
    This is the replay defense working as intended.
    """

    code = AccessErrorCode.LINK_ALREADY_USED
    status_code = 409
    message = "This link has already been used. Please request a new one."
    reason = "link_used"

    def __init__(self, nonce_prefix: str | None = None) -> None:
        self.nonce_prefix = nonce_prefix
        super().__init__()


class MissingSessionError(AccessError):
    code = AccessErrorCode.NO_SESSION
    status_code = 401
    message = "You must verify your magic link first."


class InvalidSessionError(AccessError):
    """Session cookie failed signature, shape or age checks."""

    code = AccessErrorCode.INVALID_SESSION
    status_code = 401
    message = "Your session is no longer valid. Please sign in again."
