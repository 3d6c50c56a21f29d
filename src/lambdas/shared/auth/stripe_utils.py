"""Narrow Stripe objects into the billing models.

Stripe responses never leave the adapter as opaque objects: only the fields
entitlement and intent discovery consume are read, validated and defaulted
here.
"""

import logging
from typing import Any

from src.lambdas.shared.adapters.base import (
    BillingCustomer,
    BillingSubscription,
    CheckoutSession,
    PortalSession,
)

logger = logging.getLogger(__name__)


def to_plain_dict(obj: Any) -> dict[str, Any]:
    """Convert a StripeObject (or a plain dict) into a plain dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _string_metadata(metadata: Any) -> dict[str, str]:
    plain = to_plain_dict(metadata)
    return {str(k): str(v) for k, v in plain.items() if v is not None}


def narrow_customer(obj: Any) -> BillingCustomer:
    data = to_plain_dict(obj)
    return BillingCustomer(
        id=str(data["id"]),
        email=data.get("email"),
        deleted=bool(data.get("deleted", False)),
        created=_int_or_none(data.get("created")) or 0,
        metadata=_string_metadata(data.get("metadata")),
    )


def extract_current_period_end(data: dict[str, Any]) -> int | None:
    """Period end from the subscription, or from its first item.

    Newer API versions only carry ``current_period_end`` on items.
    """
    top_level = _int_or_none(data.get("current_period_end"))
    if top_level is not None:
        return top_level
    items = to_plain_dict(data.get("items")).get("data") or []
    if items:
        return _int_or_none(to_plain_dict(items[0]).get("current_period_end"))
    return None


def narrow_subscription(obj: Any) -> BillingSubscription:
    data = to_plain_dict(obj)
    return BillingSubscription(
        id=str(data["id"]),
        status=str(data.get("status") or "unknown"),
        trial_end=_int_or_none(data.get("trial_end")),
        cancel_at_period_end=bool(data.get("cancel_at_period_end") or False),
        current_period_end=extract_current_period_end(data),
    )


def narrow_checkout_session(obj: Any) -> CheckoutSession:
    data = to_plain_dict(obj)
    return CheckoutSession(id=str(data["id"]), url=data.get("url"))


def narrow_portal_session(obj: Any) -> PortalSession:
    data = to_plain_dict(obj)
    return PortalSession(id=str(data["id"]), url=str(data["url"]))


def list_data(obj: Any) -> list[Any]:
    """Items of a Stripe list object."""
    return list(to_plain_dict(obj).get("data") or [])
