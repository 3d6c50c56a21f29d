"""
DynamoDB Helper Module
======================

Provides the DynamoDB table used as the access Lambda's key-value store
(nonce ledger, rate-limit hits, email -> billing customer cache).

For On-Call Engineers:
    - Every call has a bounded connect/read timeout (EXTERNAL_TIMEOUT_SECONDS).
    - Retries are DISABLED on purpose: a retried conditional put on a nonce
      whose first attempt actually succeeded would report the link as
      already used. A timeout surfaces as StoreUnavailableError (503).
    - If you see `ProvisionedThroughputExceededException`, the table is
      expected to use on-demand billing; check its billing mode.

For Developers:
    - Single-table design: string PK/SK, numeric `ttl` (DynamoDB TTL enabled).
    - TTL deletion is lazy; readers must compare `ttl` to now themselves.
    - All expressions are parameterized; never interpolate user input.
"""

import logging
import os
import time
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8


def build_client_config(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> Config:
    """Botocore config with bounded timeouts and no automatic retries."""
    return Config(
        retries={
            # Includes the first call: 1 means never retried
            "total_max_attempts": 1,
            "mode": "standard",
        },
        connect_timeout=timeout_seconds,
        read_timeout=timeout_seconds,
    )


def get_dynamodb_resource(
    region_name: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """
    Get a DynamoDB resource with the access Lambda's client configuration.

    Args:
        region_name: AWS region (defaults to AWS_DEFAULT_REGION / AWS_REGION)
        timeout_seconds: connect and read timeout

    Returns:
        boto3 DynamoDB resource
    """
    region = (
        region_name
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
    )
    if not region:
        raise ValueError(
            "AWS_DEFAULT_REGION or AWS_REGION environment variable must be set"
        )

    return boto3.resource(
        "dynamodb",
        region_name=region,
        config=build_client_config(timeout_seconds),
    )


def get_table(
    table_name: str,
    region_name: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """
    Get a DynamoDB table resource.

    On-Call Note:
        If table not found, verify:
        1. ACCESS_TABLE env var is set correctly
        2. Table exists: aws dynamodb describe-table --table-name <name>
    """
    if not table_name:
        raise ValueError("Table name required")

    resource = get_dynamodb_resource(region_name, timeout_seconds)
    return resource.Table(table_name)


def is_conditional_check_failure(error: Exception) -> bool:
    """True if ``error`` is DynamoDB rejecting a ConditionExpression."""
    return (
        isinstance(error, ClientError)
        and error.response.get("Error", {}).get("Code")
        == "ConditionalCheckFailedException"
    )


def ttl_from_now(seconds: int, now: float | None = None) -> int:
    """Epoch-seconds TTL attribute value ``seconds`` from now."""
    return int((now if now is not None else time.time()) + seconds)


def is_live(item: dict[str, Any] | None, now: float) -> bool:
    """True if ``item`` exists and its ``ttl`` (if any) is still in the future."""
    if not item:
        return False
    ttl = item.get("ttl")
    if ttl is None:
        return True
    return int(ttl) > now
