"""Session cookie claims.

Sessions are stateless: the signed cookie is the whole session. Nothing is
stored server-side, so there is no revocation beyond signature and age.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SESSION_TYPE = "session"
SESSION_VERSION = 1
SESSION_TTL_SECONDS = 7 * 24 * 60 * 60


class SessionClaims(BaseModel):
    """Payload of a session cookie."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    v: Literal[1] = SESSION_VERSION
    typ: Literal["session"] = SESSION_TYPE
    email: str = Field(..., min_length=3)
    customer_id: str = Field(..., min_length=1)
    iat: int
    # Short id derived from the redeemed nonce: rate-limit key + audit correlator
    sid: str = Field(..., min_length=10)
    trial_ends_at: int | None = None
    trial_subscription_id: str | None = None

    def has_trial_until(self, now: int) -> bool:
        return self.trial_ends_at is not None and self.trial_ends_at > now

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)
