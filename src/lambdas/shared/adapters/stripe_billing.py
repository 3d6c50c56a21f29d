"""Stripe adapter for customers, subscriptions, checkout and portal."""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import stripe
from aws_xray_sdk.core import xray_recorder
from pydantic import ValidationError

from src.lambdas.shared.adapters.base import (
    BillingAuthority,
    BillingCustomer,
    BillingSubscription,
    CheckoutSession,
    PortalSession,
)
from src.lambdas.shared.auth.stripe_utils import (
    list_data,
    narrow_checkout_session,
    narrow_customer,
    narrow_portal_session,
    narrow_subscription,
)
from src.lambdas.shared.errors.auth_errors import BillingAuthorityError
from src.lambdas.shared.logging_utils import get_safe_error_info

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Stripe caps list pages at 100
LIST_PAGE_SIZE = 100


class StripeBillingAdapter(BillingAuthority):
    """Adapter for the Stripe API.

    One StripeClient per adapter, with automatic retries disabled and a
    bounded HTTP timeout. Every Stripe or shape failure surfaces as
    BillingAuthorityError.
    """

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 8,
        client: Any | None = None,
    ):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def client(self) -> Any:
        """Get or create the Stripe client."""
        if self._client is None:
            self._client = stripe.StripeClient(
                self.api_key,
                max_network_retries=0,
                http_client=stripe.RequestsClient(timeout=self.timeout_seconds),
            )
        return self._client

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except stripe.StripeError as e:
            logger.error(
                "Stripe call failed",
                extra={
                    "operation": operation,
                    "stripe_code": getattr(e, "code", None),
                    "http_status": getattr(e, "http_status", None),
                    **get_safe_error_info(e),
                },
            )
            raise BillingAuthorityError() from e
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(
                "Unexpected Stripe response shape",
                extra={"operation": operation, **get_safe_error_info(e)},
            )
            raise BillingAuthorityError() from e

    @xray_recorder.capture("stripe_retrieve_customer")
    def retrieve_customer(self, customer_id: str) -> BillingCustomer | None:
        def fetch() -> BillingCustomer | None:
            try:
                obj = self.client.v1.customers.retrieve(customer_id)
            except stripe.InvalidRequestError as e:
                if getattr(e, "code", None) == "resource_missing":
                    return None
                raise
            customer = narrow_customer(obj)
            return None if customer.deleted else customer

        return self._call("customers.retrieve", fetch)

    @xray_recorder.capture("stripe_find_customers")
    def find_customers_by_email(self, email: str) -> list[BillingCustomer]:
        def fetch() -> list[BillingCustomer]:
            page = self.client.v1.customers.list(
                params={"email": email, "limit": LIST_PAGE_SIZE}
            )
            customers = [narrow_customer(obj) for obj in list_data(page)]
            return [c for c in customers if not c.deleted]

        return self._call("customers.list", fetch)

    @xray_recorder.capture("stripe_create_customer")
    def create_customer(
        self,
        email: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingCustomer:
        return self._call(
            "customers.create",
            lambda: narrow_customer(
                self.client.v1.customers.create(
                    params={"email": email, "metadata": metadata},
                    options={"idempotency_key": idempotency_key},
                )
            ),
        )

    @xray_recorder.capture("stripe_update_customer")
    def update_customer_metadata(
        self,
        customer_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingCustomer:
        return self._call(
            "customers.update",
            lambda: narrow_customer(
                self.client.v1.customers.update(
                    customer_id,
                    params={"metadata": metadata},
                    options={"idempotency_key": idempotency_key},
                )
            ),
        )

    @xray_recorder.capture("stripe_list_subscriptions")
    def list_subscriptions(self, customer_id: str) -> list[BillingSubscription]:
        def fetch() -> list[BillingSubscription]:
            page = self.client.v1.subscriptions.list(
                params={
                    "customer": customer_id,
                    "status": "all",
                    "limit": LIST_PAGE_SIZE,
                }
            )
            return [narrow_subscription(obj) for obj in list_data(page)]

        return self._call("subscriptions.list", fetch)

    @xray_recorder.capture("stripe_create_trial_subscription")
    def create_trial_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_days: int,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> BillingSubscription:
        return self._call(
            "subscriptions.create",
            lambda: narrow_subscription(
                self.client.v1.subscriptions.create(
                    params={
                        "customer": customer_id,
                        "items": [{"price": price_id, "quantity": 1}],
                        "trial_period_days": trial_days,
                        "cancel_at_period_end": True,
                        "metadata": metadata,
                    },
                    options={"idempotency_key": idempotency_key},
                )
            ),
        )

    @xray_recorder.capture("stripe_create_checkout_session")
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
        params = {
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "allow_promotion_codes": allow_promotion_codes,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if subscription_metadata:
            params["subscription_data"] = {"metadata": subscription_metadata}

        return self._call(
            "checkout.sessions.create",
            lambda: narrow_checkout_session(
                self.client.v1.checkout.sessions.create(params=params)
            ),
        )

    @xray_recorder.capture("stripe_create_portal_session")
    def create_portal_session(self, customer_id: str, return_url: str) -> PortalSession:
        return self._call(
            "billing_portal.sessions.create",
            lambda: narrow_portal_session(
                self.client.v1.billing_portal.sessions.create(
                    params={"customer": customer_id, "return_url": return_url}
                )
            ),
        )
