"""Base adapter class for the billing authority."""

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

TRIAL_USED_KEY = "trial_used"


class BillingCustomer(BaseModel):
    """Normalized billing customer."""

    id: str
    email: str | None = None
    deleted: bool = False
    created: int = 0
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def trial_used(self) -> bool:
        # Missing or unparseable marker means "not yet used"
        return self.metadata.get(TRIAL_USED_KEY, "").strip().lower() == "true"


class BillingSubscription(BaseModel):
    """Normalized subscription with only the fields entitlement needs."""

    id: str
    status: str = "unknown"
    trial_end: int | None = None
    cancel_at_period_end: bool = False
    current_period_end: int | None = None

    def is_trialing_at(self, now: int) -> bool:
        return (
            self.status == "trialing"
            and self.trial_end is not None
            and self.trial_end > now
        )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class CheckoutSession(BaseModel):
    id: str
    url: str | None = None


class PortalSession(BaseModel):
    id: str
    url: str


class BillingAuthority(ABC):
    """Owner of customer and subscription records.

    Implementations raise BillingAuthorityError for every failure (network,
    auth, unexpected shape); no vendor exception escapes an adapter.
    """

    @abstractmethod
    def retrieve_customer(self, customer_id: str) -> BillingCustomer | None:
        """Fetch a customer; None if it no longer exists or was deleted."""

    @abstractmethod
    def find_customers_by_email(self, email: str) -> list[BillingCustomer]:
        """Exact-match lookup, non-deleted customers only."""

    @abstractmethod
    def create_customer(
        self,
        email: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingCustomer:
        pass

    @abstractmethod
    def update_customer_metadata(
        self,
        customer_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingCustomer:
        pass

    @abstractmethod
    def list_subscriptions(self, customer_id: str) -> list[BillingSubscription]:
        """All subscriptions of a customer, any status."""

    @abstractmethod
    def create_trial_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_days: int,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingSubscription:
        """Trial subscription that cancels at period end."""

    @abstractmethod
    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        subscription_metadata: dict[str, str] | None = None,
        allow_promotion_codes: bool = True,
    ) -> CheckoutSession:
        """Subscription-mode checkout for ``price_id``."""

    @abstractmethod
    def create_portal_session(self, customer_id: str, return_url: str) -> PortalSession:
        pass
