"""Shared models for the access Lambda.

- MagicLinkClaims: payload of an emailed sign-in token
- SessionClaims: payload of the signed session cookie
- EntitlementDecision: per-request answer to "may this caller use the feature"
"""

from src.lambdas.shared.models.entitlement import (
    EntitlementDecision,
    EntitlementReason,
)
from src.lambdas.shared.models.magic_link_token import (
    MAGIC_LINK_TTL_SECONDS,
    MAGIC_LINK_TYPE,
    MagicLinkClaims,
    MagicLinkIntent,
)
from src.lambdas.shared.models.session import (
    SESSION_TTL_SECONDS,
    SESSION_TYPE,
    SessionClaims,
)

__all__ = [
    "EntitlementDecision",
    "EntitlementReason",
    "MAGIC_LINK_TTL_SECONDS",
    "MAGIC_LINK_TYPE",
    "MagicLinkClaims",
    "MagicLinkIntent",
    "SESSION_TTL_SECONDS",
    "SESSION_TYPE",
    "SessionClaims",
]
