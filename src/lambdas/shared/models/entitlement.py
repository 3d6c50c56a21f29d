"""Entitlement decision model. Computed per request, never stored."""

from typing import Literal

from pydantic import BaseModel

EntitlementReason = Literal[
    "missing_session",
    "invalid_session",
    "trial_active",
    "subscription_active",
    "no_entitlement",
    "stripe_error",
]


class EntitlementDecision(BaseModel):
    """Whether the caller may use the gated feature right now."""

    can_use: bool
    reason: EntitlementReason
    trial_ends_at: int | None = None

    # Detail for the status endpoint; absent when no session was verified
    customer_id: str | None = None
    email: str | None = None
    subscription_id: str | None = None
    cancel_at_period_end: bool | None = None
    current_period_end: int | None = None

    @classmethod
    def deny(cls, reason: EntitlementReason, **detail) -> "EntitlementDecision":
        return cls(can_use=False, reason=reason, **detail)

    def status_reason(self) -> str:
        """Reason as shown to the UI.

        An active subscription that will not renew is reported as
        ``subscription_cancelled`` while it still grants access.
        """
        if self.reason == "subscription_active" and self.cancel_at_period_end:
            return "subscription_cancelled"
        return self.reason
