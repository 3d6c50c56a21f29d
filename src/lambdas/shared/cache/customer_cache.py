"""Email -> billing customer id cache.

Key Design:
- PK: CUSTOMER#<sha256(email)>
- SK: BILLING_CUSTOMER
- ttl: one year after the last write

The billing authority stays the source of truth; a cached id is always
confirmed against it before use. A read or write failure therefore only
costs a remote lookup and is logged, not raised.

For On-Call Engineers:
    Repeated "Customer cache read failed" warnings mean the access table is
    degraded; issuance still works but every request hits Stripe.
"""

import hashlib
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from src.lambdas.shared.dynamodb import is_live, ttl_from_now
from src.lambdas.shared.logging_utils import get_safe_error_info

logger = logging.getLogger(__name__)

CUSTOMER_CACHE_TTL_SECONDS = 365 * 24 * 60 * 60
CUSTOMER_SK = "BILLING_CUSTOMER"


def email_hash(email: str) -> str:
    """Full sha256 hex of the normalized email."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


class CustomerCache:
    def __init__(
        self,
        table: Any,
        ttl_seconds: int = CUSTOMER_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.table = table
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(email: str) -> dict[str, str]:
        return {"PK": f"CUSTOMER#{email_hash(email)}", "SK": CUSTOMER_SK}

    def get(self, email: str) -> str | None:
        """Cached customer id for ``email``, or None on miss or failure."""
        try:
            response = self.table.get_item(Key=self._key(email), ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Customer cache read failed", extra=get_safe_error_info(e))
            return None

        item = response.get("Item")
        if not is_live(item, self._clock()):
            return None
        customer_id = item.get("customer_id")
        return str(customer_id) if customer_id else None

    def put(self, email: str, customer_id: str) -> bool:
        """Write (or refresh) the mapping. Returns False if the write failed."""
        now = self._clock()
        try:
            self.table.put_item(
                Item={
                    **self._key(email),
                    "customer_id": customer_id,
                    "updated_at": datetime.fromtimestamp(now, UTC).isoformat(),
                    "ttl": ttl_from_now(self.ttl_seconds, now),
                    "entity_type": "BILLING_CUSTOMER",
                }
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Customer cache write failed", extra=get_safe_error_info(e))
            return False
        return True
