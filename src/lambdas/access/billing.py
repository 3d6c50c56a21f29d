"""Session-gated billing actions: entitlement status, upgrade checkout, portal."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.lambdas.access.entitlements import EntitlementResolver
from src.lambdas.shared.adapters.base import BillingAuthority
from src.lambdas.shared.auth.sessions import read_session
from src.lambdas.shared.errors.auth_errors import BillingAuthorityError
from src.lambdas.shared.middleware.rate_limit import (
    RateLimiter,
    RateLimitResult,
    session_identity,
)
from src.lambdas.shared.models.entitlement import EntitlementDecision
from src.lambdas.shared.models.session import SESSION_TTL_SECONDS, SessionClaims

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    already_subscribed: bool
    url: str | None = None


class BillingActions:
    def __init__(
        self,
        *,
        secret: str,
        canonical_origin: str,
        price_id: str,
        product_tag: str,
        limiter: RateLimiter,
        resolver: EntitlementResolver,
        billing: BillingAuthority,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.canonical_origin = canonical_origin
        self.price_id = price_id
        self.product_tag = product_tag
        self.limiter = limiter
        self.resolver = resolver
        self.billing = billing
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock

    def _require_session(self, cookie_value: str | None) -> SessionClaims:
        return read_session(
            cookie_value, self.secret, int(self._clock()), self.session_ttl_seconds
        )

    def status(
        self, cookie_value: str | None, client_identity: str
    ) -> tuple[EntitlementDecision, RateLimitResult]:
        """IP rate-limited entitlement lookup."""
        rate = self.limiter.enforce("billing_status_ip", client_identity)
        return self.resolver.resolve(cookie_value), rate

    def create_checkout(self, cookie_value: str | None) -> CheckoutResult:
        """Upgrade checkout for the session's customer.

        Raises:
            MissingSessionError / InvalidSessionError: No usable session
            RateLimitedError: Per-session budget exhausted
            BillingAuthorityError: Entitlement unknown or checkout failed
        """
        session = self._require_session(cookie_value)
        self.limiter.enforce("checkout_sid", session_identity(session.sid))

        decision = self.resolver.resolve_session(session)
        if decision.reason == "subscription_active":
            return CheckoutResult(already_subscribed=True)
        if decision.reason == "stripe_error":
            raise BillingAuthorityError()

        checkout = self.billing.create_checkout_session(
            customer_id=session.customer_id,
            price_id=self.price_id,
            success_url=f"{self.canonical_origin}/?billing=success",
            cancel_url=f"{self.canonical_origin}/?billing=cancel",
            metadata={"product": self.product_tag, "kind": "upgrade_checkout"},
            subscription_metadata={
                "product": self.product_tag,
                "phase": "paid_monthly",
            },
            allow_promotion_codes=False,
        )
        if not checkout.url:
            logger.error("Checkout session has no URL", extra={"sid": session.sid})
            raise BillingAuthorityError()

        logger.info("Upgrade checkout created", extra={"sid": session.sid})
        return CheckoutResult(already_subscribed=False, url=checkout.url)

    def create_portal(self, cookie_value: str | None) -> str:
        """Billing-portal URL for the session's customer."""
        session = self._require_session(cookie_value)
        self.limiter.enforce("portal_sid", session_identity(session.sid))

        portal = self.billing.create_portal_session(
            session.customer_id,
            return_url=f"{self.canonical_origin}/?portal=return",
        )
        logger.info("Billing portal session created", extra={"sid": session.sid})
        return portal.url
