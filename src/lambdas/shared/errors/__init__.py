"""Shared error types for the access Lambda."""

from src.lambdas.shared.errors.auth_errors import (
    AccessError,
    AccessErrorCode,
    BillingAuthorityError,
    ConfigurationError,
    InvalidEmailError,
    IssueFailedError,
    NotificationDispatchError,
    RateLimitedError,
    StoreUnavailableError,
)
from src.lambdas.shared.errors.session_errors import (
    InvalidSessionError,
    InvalidSignatureError,
    InvalidTokenError,
    LinkAlreadyUsedError,
    MalformedTokenError,
    MissingSessionError,
    TokenExpiredError,
)

__all__ = [
    "AccessError",
    "AccessErrorCode",
    "BillingAuthorityError",
    "ConfigurationError",
    "InvalidEmailError",
    "InvalidSessionError",
    "InvalidSignatureError",
    "InvalidTokenError",
    "IssueFailedError",
    "LinkAlreadyUsedError",
    "MalformedTokenError",
    "MissingSessionError",
    "NotificationDispatchError",
    "RateLimitedError",
    "StoreUnavailableError",
    "TokenExpiredError",
]
