"""Resolve an email to its billing customer.

Order of resolution:
    1. Cached id, confirmed live (not deleted) with the billing authority
    2. Exact-email search, oldest non-deleted customer wins so every device
       converges on the same id
    3. Create, with an idempotency key scoped to (email, UTC day) so two
       cold-cache issuances racing on the same day converge on one customer

The cache is refreshed whenever the canonical lookup disagrees with it.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from aws_xray_sdk.core import xray_recorder

from src.lambdas.shared.adapters.base import BillingAuthority, BillingCustomer
from src.lambdas.shared.cache.customer_cache import CustomerCache, email_hash

logger = logging.getLogger(__name__)


class CustomerDirectory:
    def __init__(
        self,
        billing: BillingAuthority,
        cache: CustomerCache,
        product_tag: str,
        clock: Callable[[], float] = time.time,
    ):
        self.billing = billing
        self.cache = cache
        self.product_tag = product_tag
        self._clock = clock

    @xray_recorder.capture("resolve_customer")
    def resolve(self, email: str) -> BillingCustomer:
        """Find or create the billing customer for a normalized email.

        Raises:
            BillingAuthorityError: Billing authority unreachable or failed
        """
        email_ref = email_hash(email)[:12]

        cached_id = self.cache.get(email)
        if cached_id:
            customer = self.billing.retrieve_customer(cached_id)
            if customer is not None:
                logger.debug("Customer cache hit", extra={"email_hash": email_ref})
                return customer
            logger.info(
                "Cached customer missing or deleted", extra={"email_hash": email_ref}
            )

        found = self.billing.find_customers_by_email(email)
        if found:
            customer = min(found, key=lambda c: (c.created, c.id))
            if len(found) > 1:
                logger.warning(
                    "Multiple billing customers share an email",
                    extra={"email_hash": email_ref, "count": len(found)},
                )
            if customer.id != cached_id:
                self.cache.put(email, customer.id)
            return customer

        day = datetime.fromtimestamp(self._clock(), UTC).strftime("%Y-%m-%d")
        customer = self.billing.create_customer(
            email=email,
            metadata={"product": self.product_tag, "created_by": "magic_link"},
            idempotency_key=f"customer:{email_hash(email)}:{day}",
        )
        self.cache.put(email, customer.id)
        logger.info("Billing customer created", extra={"email_hash": email_ref})
        return customer
