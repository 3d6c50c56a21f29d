"""Billing authority adapters."""

from src.lambdas.shared.adapters.base import (
    BillingAuthority,
    BillingCustomer,
    BillingSubscription,
    CheckoutSession,
    PortalSession,
)
from src.lambdas.shared.adapters.stripe_billing import StripeBillingAdapter

__all__ = [
    "BillingAuthority",
    "BillingCustomer",
    "BillingSubscription",
    "CheckoutSession",
    "PortalSession",
    "StripeBillingAdapter",
]
