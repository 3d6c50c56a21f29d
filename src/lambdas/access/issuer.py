"""Magic-link issuance.

For On-Call Engineers:
    Log flow for one request: "Magic link requested" -> (customer lookup)
    -> "Magic link issued". ISSUE_FAILED responses always have a preceding
    error log from the billing adapter or the SendGrid service.

Security Notes:
    - IP budget is checked before the email budget
    - The response carries a masked email only; never the token, never the
      resolved intent (which would reveal whether the address is a customer)
"""

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal
from urllib.parse import quote

from aws_xray_sdk.core import xray_recorder

from src.lambdas.access.customers import CustomerDirectory
from src.lambdas.notification.sendgrid_service import EmailService
from src.lambdas.shared.adapters.base import BillingAuthority, BillingCustomer
from src.lambdas.shared.auth.magic_link import mint_magic_link_token
from src.lambdas.shared.errors.auth_errors import (
    BillingAuthorityError,
    InvalidEmailError,
    IssueFailedError,
    NotificationDispatchError,
)
from src.lambdas.shared.logging_utils import (
    email_domain_for_log,
    hash_for_log,
    mask_email,
)
from src.lambdas.shared.middleware.rate_limit import RateLimiter, email_identity
from src.lambdas.shared.models.magic_link_token import (
    MAGIC_LINK_TTL_SECONDS,
    MagicLinkIntent,
)

logger = logging.getLogger(__name__)

EntryPoint = Literal["trial", "subscribe"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254


def normalize_email(raw: str | None) -> str:
    """Lowercase and validate a ``local@domain.tld`` address.

    Raises:
        InvalidEmailError: Empty, too long, or not of that shape
    """
    email = (raw or "").strip().lower()
    if not email or len(email) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.match(email):
        raise InvalidEmailError()
    return email


@dataclass(frozen=True)
class IssueResult:
    masked_email: str
    intent: MagicLinkIntent


class MagicLinkIssuer:
    def __init__(
        self,
        *,
        secret: str,
        canonical_origin: str,
        trial_days: int,
        limiter: RateLimiter,
        customers: CustomerDirectory,
        billing: BillingAuthority,
        email_service: EmailService,
        ttl_seconds: int = MAGIC_LINK_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.canonical_origin = canonical_origin
        self.trial_days = trial_days
        self.limiter = limiter
        self.customers = customers
        self.billing = billing
        self.email_service = email_service
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def discover_intent(
        self, customer: BillingCustomer, entry: EntryPoint
    ) -> MagicLinkIntent:
        """Trial entry downgrades to login once the customer ever subscribed."""
        if entry == "subscribe":
            return "subscribe"
        if customer.trial_used:
            return "login"
        if self.billing.list_subscriptions(customer.id):
            return "login"
        return "trial"

    def verification_url(self, token: str) -> str:
        return f"{self.canonical_origin}/verify?token={quote(token, safe='')}"

    @xray_recorder.capture("issue_magic_link")
    def issue(self, raw_email: str | None, entry: EntryPoint, client_identity: str) -> IssueResult:
        """Validate, rate-limit, resolve the customer and email a magic link.

        Raises:
            InvalidEmailError: Bad email shape
            RateLimitedError: IP or email budget exhausted
            StoreUnavailableError: Rate-limit store unavailable
            IssueFailedError: Billing authority or notification failure
        """
        email = normalize_email(raw_email)

        self.limiter.enforce("auth_issue_ip", client_identity)
        self.limiter.enforce("auth_issue_email", email_identity(email))

        logger.info(
            "Magic link requested",
            extra={
                "entry": entry,
                "email_domain": email_domain_for_log(email),
                "email_hash": hash_for_log(email),
            },
        )

        try:
            customer = self.customers.resolve(email)
            intent = self.discover_intent(customer, entry)
        except BillingAuthorityError as e:
            raise IssueFailedError() from e

        token, claims = mint_magic_link_token(
            email=email,
            customer_id=customer.id,
            intent=intent,
            secret=self.secret,
            now=int(self._clock()),
            ttl_seconds=self.ttl_seconds,
        )

        try:
            self.email_service.send_magic_link(
                to_email=email,
                magic_link=self.verification_url(token),
                intent=intent,
                trial_days=self.trial_days,
                expires_in_minutes=self.ttl_seconds // 60,
            )
        except NotificationDispatchError as e:
            raise IssueFailedError() from e

        logger.info(
            "Magic link issued",
            extra={
                "intent": intent,
                "entry": entry,
                "nonce_prefix": claims.nonce[:8],
                "email_hash": hash_for_log(email),
            },
        )
        return IssueResult(masked_email=mask_email(email) or "", intent=intent)
