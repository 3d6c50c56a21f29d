"""At-most-once redemption of magic-link nonces.

The ledger is the only replay defense: a token stays cryptographically
valid for its whole lifetime, so single use must be enforced here.

For On-Call Engineers:
    Items: PK=NONCE#<nonce>, SK=MAGIC_LINK_NONCE, ttl = redemption + token TTL.
    If every link reports "already used", check that the table's TTL
    attribute is `ttl` and that clocks are sane. If every link fails with
    503, the table is unreachable (StoreUnavailableError).

Security Notes:
    - Redemption is a single conditional put (attribute_not_exists(PK), or
      an item whose ttl has passed but DynamoDB has not yet deleted).
      DynamoDB serializes conditional writes per key, so among concurrent
      redeemers of one nonce exactly one succeeds.
    - A store failure is never reported as "fresh".
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from aws_xray_sdk.core import xray_recorder
from botocore.exceptions import BotoCoreError, ClientError

from src.lambdas.shared.dynamodb import is_conditional_check_failure, ttl_from_now
from src.lambdas.shared.errors.auth_errors import StoreUnavailableError
from src.lambdas.shared.logging_utils import get_safe_error_info
from src.lambdas.shared.models.magic_link_token import MAGIC_LINK_TTL_SECONDS

logger = logging.getLogger(__name__)

NONCE_SK = "MAGIC_LINK_NONCE"


@dataclass(frozen=True)
class RedeemResult:
    fresh: bool


class NonceLedger:
    """Records redeemed nonces in the key-value table."""

    def __init__(
        self,
        table: Any,
        ttl_seconds: int = MAGIC_LINK_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.table = table
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key_for(nonce: str) -> dict[str, str]:
        return {"PK": f"NONCE#{nonce}", "SK": NONCE_SK}

    @xray_recorder.capture("nonce_try_redeem")
    def try_redeem(self, nonce: str) -> RedeemResult:
        """Atomically mark ``nonce`` as redeemed.

        Returns:
            RedeemResult(fresh=True) for the first caller only

        Raises:
            StoreUnavailableError: Table error or timeout
        """
        now = self._clock()
        try:
            self.table.put_item(
                Item={
                    **self.key_for(nonce),
                    "redeemed_at": datetime.fromtimestamp(now, UTC).isoformat(),
                    "ttl": ttl_from_now(self.ttl_seconds, now),
                    "entity_type": "MAGIC_LINK_NONCE",
                },
                ConditionExpression="attribute_not_exists(PK) OR #ttl < :now",
                ExpressionAttributeNames={"#ttl": "ttl"},
                ExpressionAttributeValues={":now": int(now)},
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.warning(
                    "Magic link nonce already redeemed",
                    extra={"nonce_prefix": nonce[:8]},
                )
                return RedeemResult(fresh=False)
            logger.error("Nonce redemption failed", extra=get_safe_error_info(e))
            raise StoreUnavailableError() from e
        except BotoCoreError as e:
            logger.error("Nonce redemption failed", extra=get_safe_error_info(e))
            raise StoreUnavailableError() from e

        logger.info("Magic link nonce redeemed", extra={"nonce_prefix": nonce[:8]})
        return RedeemResult(fresh=True)
