"""Per-identity rate limiting for the access endpoints.

For On-Call Engineers:
    Hits are stored in DynamoDB as PK=RATE#<scope>#<identity>,
    SK=<epoch-ms>#<random>, with a TTL of twice the window for cleanup.
    When a limit is exceeded, 429 Too Many Requests is returned with a
    Retry-After header.

    Each request writes its hit first and then counts the window with a
    consistent read. A request that finds more than ``limit`` hits deletes
    its own hit and is denied, so a concurrent burst may be over-denied
    but is never over-admitted.

    The limiter FAILS CLOSED: if the table cannot be read or written the
    request gets 503 (StoreUnavailableError), never a free pass.

Security Notes:
    - Identities are opaque strings built by the caller: ``ip:<addr>``,
      ``email:<sha256 prefix>``, ``sid:<session id>``
    - Raw emails never reach the store
    - Without any proxy IP header, clients are bucketed by a hash of their
      user-agent and accept-language rather than one shared "unknown" bucket
"""

import hashlib
import logging
import math
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from aws_xray_sdk.core import xray_recorder
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from src.lambdas.shared.errors.auth_errors import (
    RateLimitedError,
    StoreUnavailableError,
)
from src.lambdas.shared.logging_utils import get_safe_error_info, sanitize_for_log

logger = logging.getLogger(__name__)

# Named policies per endpoint
DEFAULT_RATE_LIMITS = {
    "auth_issue_ip": {"limit": 10, "window_seconds": 600},  # 10 per 10 minutes
    "auth_issue_email": {"limit": 5, "window_seconds": 600},  # 5 per 10 minutes
    "auth_verify_ip": {"limit": 30, "window_seconds": 300},  # 30 per 5 minutes
    "billing_status_ip": {"limit": 60, "window_seconds": 60},  # 60 per minute
    "checkout_sid": {"limit": 10, "window_seconds": 600},  # 10 per 10 minutes
    "portal_sid": {"limit": 10, "window_seconds": 600},  # 10 per 10 minutes
}

# Proxy headers, in order of trust
_IP_HEADERS = (
    ("x-forwarded-for", True),
    ("x-real-ip", False),
    ("cf-connecting-ip", False),
    ("x-vercel-forwarded-for", True),
)

EMAIL_HASH_LENGTH = 32


class RateLimitResult(BaseModel):
    """Result of rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int | None = None


class RateLimitStore(Protocol):
    """Hit log the limiter counts against."""

    def hits_since(self, key: str, since_ms: int, limit: int) -> list[int]:
        """Up to ``limit`` hit timestamps (ms) at or after ``since_ms``, oldest first."""
        ...

    def record(self, key: str, at_ms: int, ttl_seconds: int) -> str:
        """Write one hit and return its id."""
        ...

    def discard(self, key: str, hit_id: str) -> None: ...


class DynamoRateLimitStore:
    """RateLimitStore backed by the access table."""

    def __init__(self, table: Any):
        self.table = table

    def hits_since(self, key: str, since_ms: int, limit: int) -> list[int]:
        try:
            response = self.table.query(
                KeyConditionExpression=Key("PK").eq(f"RATE#{key}")
                & Key("SK").gte(f"{since_ms:015d}"),
                ConsistentRead=True,
                ScanIndexForward=True,
                Limit=limit,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Error reading rate limit hits", extra=get_safe_error_info(e))
            raise StoreUnavailableError() from e

        return [int(item["SK"].split("#", 1)[0]) for item in response.get("Items", [])]

    def record(self, key: str, at_ms: int, ttl_seconds: int) -> str:
        hit_id = f"{at_ms:015d}#{uuid.uuid4().hex[:8]}"
        try:
            self.table.put_item(
                Item={
                    "PK": f"RATE#{key}",
                    "SK": hit_id,
                    "ttl": at_ms // 1000 + ttl_seconds * 2,
                    "entity_type": "RATE_LIMIT",
                }
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Error recording rate limit request", extra=get_safe_error_info(e)
            )
            raise StoreUnavailableError() from e
        return hit_id

    def discard(self, key: str, hit_id: str) -> None:
        try:
            self.table.delete_item(Key={"PK": f"RATE#{key}", "SK": hit_id})
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Error discarding rate limit request", extra=get_safe_error_info(e)
            )
            raise StoreUnavailableError() from e


class RateLimiter:
    """Uniform allow / retry-after contract over named window policies."""

    def __init__(
        self,
        store: RateLimitStore,
        policies: Mapping[str, Mapping[str, int]] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.policies = dict(policies or DEFAULT_RATE_LIMITS)
        self._clock = clock

    @xray_recorder.capture("rate_limit_allow")
    def allow(self, scope: str, identity: str) -> RateLimitResult:
        """Count this request against ``scope`` for ``identity``.

        The hit is written before the window is counted, so concurrent
        callers always see each other. A denied request removes its own
        hit, so a client that backs off for ``retry_after`` seconds is let
        through again.

        Raises:
            ValueError: Unknown scope
            StoreUnavailableError: Store read or write failed
        """
        policy = self.policies.get(scope)
        if policy is None:
            raise ValueError(f"Unknown rate limit scope: {scope}")
        limit = int(policy["limit"])
        window_ms = int(policy["window_seconds"]) * 1000

        now_ms = int(self._clock() * 1000)
        key = f"{scope}#{identity}"
        hit_id = self.store.record(key, now_ms, int(policy["window_seconds"]))
        hits = self.store.hits_since(key, now_ms - window_ms + 1, limit + 1)

        if len(hits) > limit:
            self.store.discard(key, hit_id)
            retry_after = max(1, math.ceil((hits[0] + window_ms - now_ms) / 1000))
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "scope": scope,
                    "identity_kind": sanitize_for_log(identity.split(":", 1)[0], 16),
                    "limit": limit,
                    "retry_after": retry_after,
                },
            )
            return RateLimitResult(
                allowed=False, limit=limit, remaining=0, retry_after=retry_after
            )

        return RateLimitResult(
            allowed=True, limit=limit, remaining=max(0, limit - len(hits))
        )

    def enforce(self, scope: str, identity: str) -> RateLimitResult:
        """Like ``allow`` but raises RateLimitedError on denial."""
        result = self.allow(scope, identity)
        if not result.allowed:
            raise RateLimitedError(retry_after=result.retry_after or 1, scope=scope)
        return result


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Derive the caller's rate-limit identity from request headers.

    Args:
        headers: Request headers (any case)

    Returns:
        ``ip:<addr>`` or, when no proxy header is present,
        ``unknown:<fingerprint>``
    """
    normalized = {k.lower(): v for k, v in headers.items()}

    for name, multi_hop in _IP_HEADERS:
        value = (normalized.get(name) or "").strip()
        if multi_hop:
            value = value.split(",")[0].strip()
        if value:
            return f"ip:{sanitize_for_log(value, 64)}"

    user_agent = (normalized.get("user-agent") or "")[:300]
    accept_language = (normalized.get("accept-language") or "")[:200]
    fingerprint = hashlib.sha256(
        f"{user_agent}|{accept_language}".encode()
    ).hexdigest()[:16]
    return f"unknown:{fingerprint}"


def email_identity(email: str) -> str:
    """Non-reversible rate-limit identity for an email address."""
    digest = hashlib.sha256(email.strip().lower().encode()).hexdigest()
    return f"email:{digest[:EMAIL_HASH_LENGTH]}"


def session_identity(sid: str) -> str:
    return f"sid:{sid}"


def get_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Get rate limit headers for response.

    Args:
        result: Rate limit check result

    Returns:
        Dict of headers to add to response
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }

    if result.retry_after:
        headers["Retry-After"] = str(result.retry_after)

    return headers
