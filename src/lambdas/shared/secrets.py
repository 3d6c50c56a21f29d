"""
Secrets Manager Helper Module
=============================

Resolves the access Lambda's secrets (magic-link signing key, Stripe key,
SendGrid key) from AWS Secrets Manager with a short in-memory cache.

For On-Call Engineers:
    If secrets fail to load, check:
    1. Secret exists: aws secretsmanager describe-secret --secret-id <arn>
    2. Lambda IAM role has secretsmanager:GetSecretValue permission
    3. The *_ARN environment variable points at the right secret

    Cache has 5-minute TTL. A cold start refreshes it automatically.
    Calls are bounded by EXTERNAL_TIMEOUT_SECONDS and never retried.

For Developers:
    - Secrets may be stored as a plain string or as a JSON object; for JSON,
      the field is selected by ``key_field``
    - Never log secret values, only the sanitized secret name
"""

import json
import logging
import os
import time
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.lambdas.shared.dynamodb import DEFAULT_TIMEOUT_SECONDS, build_client_config

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes

# Structure: {secret_id: {"value": <parsed_value>, "expires_at": <timestamp>}}
_secrets_cache: dict[str, dict[str, Any]] = {}


def _sanitize_secret_id_for_log(secret_id: str) -> str:
    """
    Reduce a secret ID to its bare name for logging.

    Example:
        >>> _sanitize_secret_id_for_log("prod/access/stripe")
        'stripe'
        >>> _sanitize_secret_id_for_log("arn:aws:secretsmanager:us-east-1:123:secret:stripe-key-AbC123")
        'stripe-key'
    """
    if secret_id.startswith("arn:"):
        # arn:aws:secretsmanager:region:account:secret:name-randomsuffix
        parts = secret_id.split(":")
        if len(parts) >= 7:
            name_with_suffix = parts[6]
            return (
                name_with_suffix.rsplit("-", 1)[0]
                if "-" in name_with_suffix
                else name_with_suffix
            )

    return secret_id.split("/")[-1]


def get_secrets_client(
    region_name: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    region = (
        region_name
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
    )
    if not region:
        raise ValueError(
            "AWS_DEFAULT_REGION or AWS_REGION environment variable must be set"
        )

    return boto3.client(
        "secretsmanager",
        region_name=region,
        config=build_client_config(timeout_seconds),
    )


def get_secret(
    secret_id: str,
    region_name: str | None = None,
    force_refresh: bool = False,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, Any] | str:
    """
    Retrieve a secret from Secrets Manager with caching.

    Args:
        secret_id: Secret name or ARN
        region_name: AWS region
        force_refresh: If True, bypass cache
        timeout_seconds: connect and read timeout (never retried)

    Returns:
        Parsed JSON object, or the raw string for non-JSON secrets

    Raises:
        SecretNotFoundError: If secret doesn't exist
        SecretAccessDeniedError: If Lambda role lacks permission
        SecretRetrievalError: For other Secrets Manager errors
    """
    secret_name = _sanitize_secret_id_for_log(secret_id)

    if not force_refresh:
        cached = _get_from_cache(secret_id)
        if cached is not None:
            logger.debug(
                "Secret retrieved from cache", extra={"secret_name": secret_name}
            )
            return cached

    client = get_secrets_client(region_name, timeout_seconds)

    try:
        response = client.get_secret_value(SecretId=secret_id)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        log_extra = {"secret_name": secret_name, "error_code": error_code}

        if error_code == "ResourceNotFoundException":
            logger.error("Secret not found", extra=log_extra)
            raise SecretNotFoundError(f"Secret not found: {secret_name}") from e
        if error_code in ("AccessDeniedException", "UnauthorizedAccess"):
            logger.error("Access denied to secret", extra=log_extra)
            raise SecretAccessDeniedError(
                f"Access denied to secret: {secret_name}"
            ) from e

        logger.error("Failed to retrieve secret", extra=log_extra)
        raise SecretRetrievalError(f"Failed to retrieve secret: {secret_name}") from e
    except BotoCoreError as e:
        logger.error("Failed to retrieve secret", extra={"secret_name": secret_name})
        raise SecretRetrievalError(f"Failed to retrieve secret: {secret_name}") from e

    secret_string = response.get("SecretString")
    if not secret_string:
        raise SecretRetrievalError(f"Secret is binary, not string: {secret_name}")

    try:
        secret_value: dict[str, Any] | str = json.loads(secret_string)
    except json.JSONDecodeError:
        secret_value = secret_string
    if not isinstance(secret_value, dict | str):
        secret_value = secret_string

    _set_in_cache(secret_id, secret_value)
    logger.info(
        "Secret retrieved from Secrets Manager", extra={"secret_name": secret_name}
    )
    return secret_value


def get_secret_string(
    secret_id: str,
    key_field: str = "value",
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """
    Retrieve a single string value from a secret.

    Plain-string secrets are returned as-is; JSON secrets return
    ``secret[key_field]``.

    Raises:
        SecretRetrievalError: If key_field is missing or empty
    """
    secret = get_secret(secret_id, timeout_seconds=timeout_seconds)
    if isinstance(secret, str):
        value = secret.strip()
    else:
        value = str(secret.get(key_field) or "").strip()

    if not value:
        raise SecretRetrievalError(
            f"Field '{key_field}' not found in secret: "
            f"{_sanitize_secret_id_for_log(secret_id)}"
        )
    return value


def clear_cache() -> None:
    """Clear the secrets cache. Used by tests and after rotation."""
    global _secrets_cache
    _secrets_cache = {}
    logger.debug("Secrets cache cleared")


def _get_from_cache(secret_id: str) -> dict[str, Any] | str | None:
    entry = _secrets_cache.get(secret_id)
    if entry is None:
        return None
    if time.time() > entry["expires_at"]:
        del _secrets_cache[secret_id]
        return None
    return entry["value"]


def _set_in_cache(secret_id: str, value: dict[str, Any] | str) -> None:
    ttl = int(os.environ.get("SECRETS_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS))
    _secrets_cache[secret_id] = {
        "value": value,
        "expires_at": time.time() + ttl,
    }


class SecretError(Exception):
    """Base exception for secret-related errors."""


class SecretNotFoundError(SecretError):
    """Raised when a secret doesn't exist."""


class SecretAccessDeniedError(SecretError):
    """Raised when access to a secret is denied."""


class SecretRetrievalError(SecretError):
    """Raised for general secret retrieval errors."""
