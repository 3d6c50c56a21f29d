"""Magic-link token claims.

Not persisted: the claims travel inside the signed token in the emailed URL.
Only the nonce is ever written anywhere (the nonce ledger, at redemption).
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAGIC_LINK_TYPE = "magic_link"
MAGIC_LINK_VERSION = 1
MAGIC_LINK_TTL_SECONDS = 15 * 60
NONCE_BYTES = 16

MagicLinkIntent = Literal["trial", "login", "subscribe"]


class MagicLinkClaims(BaseModel):
    """Payload of a magic-link token."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    v: Literal[1] = MAGIC_LINK_VERSION
    typ: Literal["magic_link"] = MAGIC_LINK_TYPE
    intent: MagicLinkIntent
    email: str = Field(..., min_length=3, max_length=320)
    customer_id: str = Field(..., min_length=1)
    iat: int
    exp: int
    # 16 random bytes base64url-encoded are 22 chars
    nonce: str = Field(..., min_length=22)

    @model_validator(mode="after")
    def _check_shape(self) -> "MagicLinkClaims":
        if "@" not in self.email:
            raise ValueError("email must contain @")
        if self.exp <= self.iat:
            raise ValueError("exp must be after iat")
        return self

    def is_expired(self, now: int) -> bool:
        return self.exp <= now

    def to_payload(self) -> dict:
        return self.model_dump()
