"""Access error taxonomy.

Every failure the access Lambda can report to a caller is an AccessError
subclass carrying a stable machine-readable code, an HTTP status and a
user-safe message. Collaborator exceptions (stripe.StripeError, botocore
ClientError, SendGrid errors) are caught at the adapter boundary and
re-raised as one of these with ``raise ... from e``; they never reach a
response body.

Error codes (returned as ``error_code`` in JSON bodies):
    INVALID_EMAIL, RATE_LIMITED, INVALID_TOKEN, MALFORMED_TOKEN,
    INVALID_SIGNATURE, TOKEN_EXPIRED, LINK_ALREADY_USED, NO_SESSION,
    INVALID_SESSION, BILLING_ERROR, EMAIL_DISPATCH_FAILED, ISSUE_FAILED,
    STORE_UNAVAILABLE, CONFIG_ERROR
"""

from __future__ import annotations

from enum import Enum


class AccessErrorCode(str, Enum):
    """Machine-readable error codes surfaced to clients."""

    INVALID_EMAIL = "INVALID_EMAIL"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_TOKEN = "INVALID_TOKEN"  # noqa: S105 - error code name, not a secret
    MALFORMED_TOKEN = "MALFORMED_TOKEN"  # noqa: S105
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"  # noqa: S105
    LINK_ALREADY_USED = "LINK_ALREADY_USED"
    NO_SESSION = "NO_SESSION"
    INVALID_SESSION = "INVALID_SESSION"
    BILLING_ERROR = "BILLING_ERROR"
    EMAIL_DISPATCH_FAILED = "EMAIL_DISPATCH_FAILED"
    ISSUE_FAILED = "ISSUE_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    CONFIG_ERROR = "CONFIG_ERROR"


class AccessError(Exception):
    """Base class for all access errors."""

    code: AccessErrorCode = AccessErrorCode.ISSUE_FAILED
    status_code: int = 500
    message: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_response_body(self) -> dict:
        """JSON body for this error. Never includes internal detail."""
        return {"ok": False, "error": self.message, "error_code": self.code.value}


class InvalidEmailError(AccessError):
    code = AccessErrorCode.INVALID_EMAIL
    status_code = 400
    message = "Please enter a valid email address."


class RateLimitedError(AccessError):
    """Caller exceeded a rate-limit policy. Always carries a retry hint."""

    code = AccessErrorCode.RATE_LIMITED
    status_code = 429
    message = "Too many requests. Please try again soon."

    def __init__(self, retry_after: int, scope: str | None = None) -> None:
        self.retry_after = max(1, int(retry_after))
        self.scope = scope
        super().__init__()


class BillingAuthorityError(AccessError):
    """Any failure talking to the billing authority (network, auth, shape)."""

    code = AccessErrorCode.BILLING_ERROR
    status_code = 502
    message = "Billing is temporarily unavailable. Please try again."


class NotificationDispatchError(AccessError):
    """The notification sender did not accept the message."""

    code = AccessErrorCode.EMAIL_DISPATCH_FAILED
    status_code = 502
    message = "We could not send your email. Please try again."


class IssueFailedError(AccessError):
    """Generic magic-link issuance failure.

    Deliberately says nothing about whether the address is a known customer.
    """

    code = AccessErrorCode.ISSUE_FAILED
    status_code = 500
    message = "Could not send your sign-in link. Please try again."


class StoreUnavailableError(AccessError):
    """The key-value store failed or timed out. Never treated as success."""

    code = AccessErrorCode.STORE_UNAVAILABLE
    status_code = 503
    message = "Service temporarily unavailable. Please try again."


class ConfigurationError(AccessError):
    """Required configuration is missing or invalid.

    The constructor message names the offending variable and is only ever
    logged; responses use the generic ``public_message``.
    """

    code = AccessErrorCode.CONFIG_ERROR
    status_code = 500
    public_message = "Server misconfigured."

    def to_response_body(self) -> dict:
        return {"ok": False, "error": self.public_message, "error_code": self.code.value}
