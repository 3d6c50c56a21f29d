"""Per-request entitlement resolution.

Decision order (first match wins):
    1. no session cookie                        -> missing_session
    2. session fails verification               -> invalid_session
    3. session carries a future trial deadline  -> trial_active (no remote call)
    4. billing authority subscriptions:
         trialing with future trial_end         -> trial_active
         any active                             -> subscription_active
         otherwise                              -> no_entitlement
    5. billing authority failure                -> stripe_error (fail closed)

At most one remote call per request, and only when the fast path is absent
or expired.
"""

import logging
import time
from collections.abc import Callable

from aws_xray_sdk.core import xray_recorder

from src.lambdas.shared.adapters.base import BillingAuthority
from src.lambdas.shared.auth.sessions import read_session
from src.lambdas.shared.errors.auth_errors import BillingAuthorityError
from src.lambdas.shared.errors.session_errors import (
    InvalidSessionError,
    MissingSessionError,
)
from src.lambdas.shared.logging_utils import get_safe_error_info
from src.lambdas.shared.models.entitlement import EntitlementDecision
from src.lambdas.shared.models.session import SESSION_TTL_SECONDS, SessionClaims

logger = logging.getLogger(__name__)


class EntitlementResolver:
    def __init__(
        self,
        *,
        secret: str,
        billing: BillingAuthority,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.billing = billing
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock

    def resolve(self, cookie_value: str | None) -> EntitlementDecision:
        """Decide from the raw session cookie value."""
        now = int(self._clock())
        try:
            session = read_session(
                cookie_value, self.secret, now, self.session_ttl_seconds
            )
        except MissingSessionError:
            return EntitlementDecision.deny("missing_session")
        except InvalidSessionError:
            return EntitlementDecision.deny("invalid_session")
        return self.resolve_session(session)

    @xray_recorder.capture("resolve_entitlement")
    def resolve_session(self, session: SessionClaims) -> EntitlementDecision:
        """Decide for an already-verified session."""
        now = int(self._clock())
        detail = {"customer_id": session.customer_id, "email": session.email}

        if session.has_trial_until(now):
            return EntitlementDecision(
                can_use=True,
                reason="trial_active",
                trial_ends_at=session.trial_ends_at,
                subscription_id=session.trial_subscription_id,
                **detail,
            )

        try:
            subscriptions = self.billing.list_subscriptions(session.customer_id)
        except BillingAuthorityError as e:
            logger.error(
                "Entitlement lookup failed, denying",
                extra={"sid": session.sid, **get_safe_error_info(e)},
            )
            return EntitlementDecision.deny("stripe_error", **detail)

        trialing = [s for s in subscriptions if s.is_trialing_at(now)]
        if trialing:
            chosen = max(trialing, key=lambda s: s.trial_end or 0)
            return EntitlementDecision(
                can_use=True,
                reason="trial_active",
                trial_ends_at=chosen.trial_end,
                subscription_id=chosen.id,
                cancel_at_period_end=chosen.cancel_at_period_end,
                current_period_end=chosen.current_period_end,
                **detail,
            )

        active = [s for s in subscriptions if s.is_active]
        if active:
            # Renewing first, then latest period end
            chosen = min(
                active,
                key=lambda s: (s.cancel_at_period_end, -(s.current_period_end or 0)),
            )
            return EntitlementDecision(
                can_use=True,
                reason="subscription_active",
                subscription_id=chosen.id,
                cancel_at_period_end=chosen.cancel_at_period_end,
                current_period_end=chosen.current_period_end,
                **detail,
            )

        return EntitlementDecision.deny("no_entitlement", **detail)
