"""Magic-link verification.

Order of checks, each one a hard stop:
    rate limit (IP) -> signature / shape / discriminator -> expiry
    -> nonce redemption -> intent side effect -> session

Expiry is checked before redemption, so an expired token never touches the
ledger and a replayed unexpired token reports LinkAlreadyUsed.

For On-Call Engineers:
    Redemption happens BEFORE the side effect. If Stripe fails after
    "Magic link nonce redeemed", the user lands on ?magic=error&reason=server
    and must request a new link. Trial creation is keyed by the nonce, so a
    retried request can never produce a second trial subscription.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from aws_xray_sdk.core import xray_recorder

from src.lambdas.shared.adapters.base import BillingAuthority
from src.lambdas.shared.auth.magic_link import read_magic_link_token
from src.lambdas.shared.auth.nonce_ledger import NonceLedger
from src.lambdas.shared.auth.sessions import derive_session_id, issue_session_token
from src.lambdas.shared.errors.auth_errors import (
    AccessError,
    BillingAuthorityError,
    ConfigurationError,
)
from src.lambdas.shared.errors.session_errors import (
    InvalidTokenError,
    LinkAlreadyUsedError,
)
from src.lambdas.shared.logging_utils import get_safe_error_info, hash_for_log
from src.lambdas.shared.middleware.rate_limit import RateLimiter
from src.lambdas.shared.models.magic_link_token import MagicLinkClaims
from src.lambdas.shared.models.session import SessionClaims

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class VerifyOutcome:
    """Where to send the browser and which session to attach."""

    redirect_url: str
    session: SessionClaims
    session_token: str
    status_code: int = 303

    @property
    def trial_ends_at(self) -> int | None:
        return self.session.trial_ends_at


def error_redirect_reason(error: Exception) -> str:
    """``?reason=`` value for a failed verification."""
    if isinstance(error, InvalidTokenError | LinkAlreadyUsedError):
        return error.reason
    if isinstance(error, ConfigurationError):
        return "server_config"
    return "server"


class MagicLinkVerifier:
    def __init__(
        self,
        *,
        secret: str,
        canonical_origin: str,
        price_id: str,
        trial_days: int,
        product_tag: str,
        limiter: RateLimiter,
        ledger: NonceLedger,
        billing: BillingAuthority,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.canonical_origin = canonical_origin
        self.price_id = price_id
        self.trial_days = trial_days
        self.product_tag = product_tag
        self.limiter = limiter
        self.ledger = ledger
        self.billing = billing
        self._clock = clock

    def app_url(self, query: str) -> str:
        return f"{self.canonical_origin}/?{query}"

    @xray_recorder.capture("verify_magic_link")
    def verify(self, token: str, client_identity: str) -> VerifyOutcome:
        """Consume ``token`` exactly once and perform its intent.

        Raises:
            RateLimitedError: IP budget exhausted
            InvalidTokenError: Malformed, bad signature, wrong type, expired
            LinkAlreadyUsedError: Nonce already redeemed
            StoreUnavailableError: Nonce ledger or rate-limit store failed
            BillingAuthorityError: Trial or checkout creation failed
        """
        self.limiter.enforce("auth_verify_ip", client_identity)

        now = int(self._clock())
        try:
            claims = read_magic_link_token(token, self.secret, now)
        except InvalidTokenError as e:
            logger.warning("Magic link rejected", extra={"reason": e.reason})
            raise

        if not self.ledger.try_redeem(claims.nonce).fresh:
            raise LinkAlreadyUsedError(nonce_prefix=claims.nonce[:8])

        base = SessionClaims(
            email=claims.email,
            customer_id=claims.customer_id,
            iat=now,
            sid=derive_session_id(claims.nonce),
        )

        if claims.intent == "trial":
            return self._start_trial(claims, base, now)
        if claims.intent == "subscribe":
            return self._start_checkout(claims, base)

        logger.info(
            "Magic link login", extra={"sid": base.sid, "intent": claims.intent}
        )
        return self._outcome(self.app_url("magic=ok&intent=login"), base)

    def _outcome(self, redirect_url: str, session: SessionClaims) -> VerifyOutcome:
        return VerifyOutcome(
            redirect_url=redirect_url,
            session=session,
            session_token=issue_session_token(session, self.secret),
        )

    def _trial_disqualified(self, customer_id: str) -> bool:
        customer = self.billing.retrieve_customer(customer_id)
        if customer is None:
            logger.error(
                "Billing customer missing for trial link",
                extra={"customer_id": customer_id},
            )
            raise BillingAuthorityError()
        if customer.trial_used:
            return True
        return bool(self.billing.list_subscriptions(customer_id))

    def _start_trial(
        self, claims: MagicLinkClaims, base: SessionClaims, now: int
    ) -> VerifyOutcome:
        if self._trial_disqualified(claims.customer_id):
            logger.info(
                "Trial link for customer no longer eligible",
                extra={"sid": base.sid},
            )
            return self._outcome(
                self.app_url("magic=ok&intent=subscribe_required"), base
            )

        subscription = self.billing.create_trial_subscription(
            customer_id=claims.customer_id,
            price_id=self.price_id,
            trial_days=self.trial_days,
            metadata={
                "product": self.product_tag,
                "phase": "trial_no_card",
                "created_by": "magic_link_click",
            },
            idempotency_key=f"trial:{claims.nonce}",
        )

        try:
            self.billing.update_customer_metadata(
                claims.customer_id,
                {"trial_used": "true", "trial_subscription_id": subscription.id},
                idempotency_key=f"trial-used:{claims.nonce}",
            )
        except BillingAuthorityError as e:
            # The trial subscription itself already disqualifies future trials
            logger.error(
                "Failed to mark trial used",
                extra={"sid": base.sid, **get_safe_error_info(e)},
            )

        trial_ends_at = subscription.trial_end or now + self.trial_days * SECONDS_PER_DAY
        session = base.model_copy(
            update={
                "trial_ends_at": trial_ends_at,
                "trial_subscription_id": subscription.id,
            }
        )
        logger.info(
            "Trial started",
            extra={
                "sid": session.sid,
                "trial_ends_at": trial_ends_at,
                "email_hash": hash_for_log(claims.email),
            },
        )
        return self._outcome(self.app_url("magic=ok&intent=trial"), session)

    def _start_checkout(
        self, claims: MagicLinkClaims, base: SessionClaims
    ) -> VerifyOutcome:
        checkout = self.billing.create_checkout_session(
            customer_id=claims.customer_id,
            price_id=self.price_id,
            success_url=self.app_url("subscribe=success"),
            cancel_url=self.app_url("subscribe=cancel"),
            metadata={"product": self.product_tag, "created_by": "magic_link_click"},
        )
        if not checkout.url:
            logger.error("Checkout session has no URL", extra={"sid": base.sid})
            raise BillingAuthorityError()

        logger.info("Checkout session created", extra={"sid": base.sid})
        return self._outcome(checkout.url, base)


def describe_failure(error: Exception) -> dict:
    """Structured log fields for a failed verification."""
    if isinstance(error, AccessError):
        return {"error_code": error.code.value, **get_safe_error_info(error)}
    return get_safe_error_info(error)
