"""Cache utilities for the access Lambda."""

from src.lambdas.shared.cache.customer_cache import (
    CUSTOMER_CACHE_TTL_SECONDS,
    CustomerCache,
    email_hash,
)

__all__ = [
    "CUSTOMER_CACHE_TTL_SECONDS",
    "CustomerCache",
    "email_hash",
]
