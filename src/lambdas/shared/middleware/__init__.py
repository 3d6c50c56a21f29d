"""Shared middleware for the access Lambda."""

from src.lambdas.shared.middleware.rate_limit import (
    DEFAULT_RATE_LIMITS,
    DynamoRateLimitStore,
    RateLimiter,
    RateLimitResult,
    RateLimitStore,
    email_identity,
    get_client_ip,
    get_rate_limit_headers,
    session_identity,
)

__all__ = [
    "DEFAULT_RATE_LIMITS",
    "DynamoRateLimitStore",
    "RateLimitResult",
    "RateLimitStore",
    "RateLimiter",
    "email_identity",
    "get_client_ip",
    "get_rate_limit_headers",
    "session_identity",
]
