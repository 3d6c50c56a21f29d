"""
Access Lambda Configuration
===========================

Parses and validates configuration from environment variables.

For On-Call Engineers:
    Required environment variables:
    - ENVIRONMENT: local | staging | production (aliases: dev, test,
      preprod, prod)
    - MAGIC_LINK_SECRET or MAGIC_LINK_SECRET_ARN: token signing secret
    - APP_ORIGINS: comma-separated origins; the first usable one is canonical
    - ACCESS_TABLE: DynamoDB table (nonces, rate limits, customer cache)
    - STRIPE_SECRET_KEY or STRIPE_SECRET_KEY_ARN
    - STRIPE_PRICE_ID_MONTHLY
    - SENDGRID_API_KEY or SENDGRID_SECRET_ARN
    - EMAIL_FROM

    If every request returns 500 "Server misconfigured.", search CloudWatch
    for "Configuration invalid": the log names the offending variable.

Security Notes:
    - Secret values never appear in logs or in the dataclass repr
    - Outside local, http:// origins are rejected so cookies are always Secure
"""

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from src.lambdas.shared.errors.auth_errors import ConfigurationError
from src.lambdas.shared.secrets import SecretError, get_secret_string

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "Explain My Numbers"
DEFAULT_PRODUCT_TAG = "explain_my_numbers"
DEFAULT_SESSION_COOKIE_NAME = "emn_session"
DEFAULT_TRIAL_HINT_COOKIE_NAME = "emn_trial_ends"
DEFAULT_TRIAL_DAYS = 3
DEFAULT_MAGIC_LINK_TTL_SECONDS = 15 * 60
DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_EXTERNAL_TIMEOUT_SECONDS = 8
RECOMMENDED_SECRET_LENGTH = 24


class Environment(str, Enum):
    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, value: str) -> "Environment":
        """Parse an ENVIRONMENT value, accepting deployment aliases.

        Example:
            >>> Environment.parse("prod")
            <Environment.PRODUCTION: 'production'>
        """
        normalized = (value or "").strip().lower()
        aliases = {
            "dev": cls.LOCAL,
            "test": cls.LOCAL,
            "preprod": cls.STAGING,
            "prod": cls.PRODUCTION,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(
                f"ENVIRONMENT must be local, staging or production, got {normalized!r}"
            ) from None


def normalize_origin(raw: str) -> str | None:
    """Normalize one origin to ``scheme://host[:port]``; None if unusable.

    Example:
        >>> normalize_origin("app.example.com/")
        'https://app.example.com'
    """
    candidate = raw.strip()
    if not candidate:
        return None
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    parts = urlsplit(candidate.rstrip("/"))
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def parse_origins(origins: str | Sequence[str]) -> list[str]:
    if isinstance(origins, str):
        origins = origins.split(",")
    normalized = []
    for raw in origins:
        origin = normalize_origin(raw)
        if origin and origin not in normalized:
            normalized.append(origin)
    return normalized


def resolve_canonical_origin(
    origins: str | Sequence[str],
    environment: Environment,
) -> str:
    """
    Pick the canonical origin used for every outbound link.

    Args:
        origins: APP_ORIGINS value or already-split list
        environment: Explicit deployment environment

    Returns:
        The first usable origin, normalized

    Raises:
        ConfigurationError: No usable origin, or http:// outside local

    Example:
        >>> resolve_canonical_origin("example.com/, https://www.example.com", Environment.PRODUCTION)
        'https://example.com'
    """
    usable = parse_origins(origins)
    if not usable:
        raise ConfigurationError("APP_ORIGINS has no usable origin")

    canonical = usable[0]
    if canonical.startswith("http://") and environment is not Environment.LOCAL:
        raise ConfigurationError(
            f"APP_ORIGINS canonical origin must use https in {environment.value}"
        )
    return canonical


@dataclass(frozen=True)
class AccessConfig:
    """
    Configuration for the access Lambda.

    All fields are validated on instantiation.
    """

    environment: Environment
    magic_link_secret: str = field(repr=False)
    app_origins: tuple[str, ...]
    access_table: str
    stripe_secret_key: str = field(repr=False)
    stripe_price_id: str
    sendgrid_api_key: str = field(repr=False)
    email_from: str
    app_name: str = DEFAULT_APP_NAME
    product_tag: str = DEFAULT_PRODUCT_TAG
    session_cookie_name: str = DEFAULT_SESSION_COOKIE_NAME
    trial_hint_cookie_name: str = DEFAULT_TRIAL_HINT_COOKIE_NAME
    trial_days: int = DEFAULT_TRIAL_DAYS
    magic_link_ttl_seconds: int = DEFAULT_MAGIC_LINK_TTL_SECONDS
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    external_timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS
    aws_region: str = "us-east-1"
    canonical_origin: str = field(init=False)

    def __post_init__(self):
        self._validate()
        object.__setattr__(
            self,
            "canonical_origin",
            resolve_canonical_origin(self.app_origins, self.environment),
        )

    def _validate(self):
        """
        Validate all configuration values.

        Raises:
            ConfigurationError: If any validation fails
        """
        required = {
            "MAGIC_LINK_SECRET": self.magic_link_secret,
            "ACCESS_TABLE": self.access_table,
            "STRIPE_SECRET_KEY": self.stripe_secret_key,
            "STRIPE_PRICE_ID_MONTHLY": self.stripe_price_id,
            "SENDGRID_API_KEY": self.sendgrid_api_key,
            "EMAIL_FROM": self.email_from,
            "SESSION_COOKIE_NAME": self.session_cookie_name,
            "TRIAL_HINT_COOKIE_NAME": self.trial_hint_cookie_name,
        }
        for name, value in required.items():
            if not value or not str(value).strip():
                raise ConfigurationError(f"{name} is required")

        if not self.app_origins:
            raise ConfigurationError("APP_ORIGINS is required")

        if len(self.magic_link_secret) < RECOMMENDED_SECRET_LENGTH:
            logger.warning(
                "MAGIC_LINK_SECRET is shorter than recommended",
                extra={"recommended_length": RECOMMENDED_SECRET_LENGTH},
            )

        if self.trial_days < 1:
            raise ConfigurationError("TRIAL_DAYS must be at least 1")
        if self.magic_link_ttl_seconds < 60:
            raise ConfigurationError("MAGIC_LINK_TTL_SECONDS must be at least 60")
        if self.session_ttl_seconds < self.magic_link_ttl_seconds:
            raise ConfigurationError(
                "SESSION_TTL_SECONDS must not be shorter than MAGIC_LINK_TTL_SECONDS"
            )
        if self.external_timeout_seconds <= 0:
            raise ConfigurationError("EXTERNAL_TIMEOUT_SECONDS must be positive")

    @property
    def secure_cookies(self) -> bool:
        return self.environment is not Environment.LOCAL


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer") from None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number") from None


def _secret_env(
    value_var: str, arn_var: str, key_field: str, timeout_seconds: float
) -> str:
    """Secret from a plain env var (local dev) or Secrets Manager via ARN."""
    value = os.environ.get(value_var, "").strip()
    if value:
        return value

    secret_arn = os.environ.get(arn_var, "").strip()
    if not secret_arn:
        raise ConfigurationError(f"{value_var} or {arn_var} is required")
    try:
        return get_secret_string(
            secret_arn, key_field=key_field, timeout_seconds=timeout_seconds
        )
    except SecretError as e:
        raise ConfigurationError(f"{arn_var} could not be resolved") from e


def get_config() -> AccessConfig:
    """
    Load and validate configuration from environment variables.

    Returns:
        AccessConfig with all settings

    Raises:
        ConfigurationError: If required vars missing or invalid

    On-Call Note:
        Called once per container (see dependencies.get_access_config).
    """
    environment = Environment.parse(os.environ.get("ENVIRONMENT", ""))
    external_timeout_seconds = _float_env(
        "EXTERNAL_TIMEOUT_SECONDS", DEFAULT_EXTERNAL_TIMEOUT_SECONDS
    )
    if external_timeout_seconds <= 0:
        raise ConfigurationError("EXTERNAL_TIMEOUT_SECONDS must be positive")

    config = AccessConfig(
        environment=environment,
        magic_link_secret=_secret_env(
            "MAGIC_LINK_SECRET",
            "MAGIC_LINK_SECRET_ARN",
            "secret",
            external_timeout_seconds,
        ),
        app_origins=tuple(parse_origins(os.environ.get("APP_ORIGINS", ""))),
        access_table=os.environ.get("ACCESS_TABLE", "").strip(),
        stripe_secret_key=_secret_env(
            "STRIPE_SECRET_KEY",
            "STRIPE_SECRET_KEY_ARN",
            "api_key",
            external_timeout_seconds,
        ),
        stripe_price_id=os.environ.get("STRIPE_PRICE_ID_MONTHLY", "").strip(),
        sendgrid_api_key=_secret_env(
            "SENDGRID_API_KEY",
            "SENDGRID_SECRET_ARN",
            "api_key",
            external_timeout_seconds,
        ),
        email_from=os.environ.get("EMAIL_FROM", "").strip(),
        app_name=os.environ.get("APP_NAME", "").strip() or DEFAULT_APP_NAME,
        product_tag=os.environ.get("PRODUCT_TAG", "").strip() or DEFAULT_PRODUCT_TAG,
        session_cookie_name=os.environ.get("SESSION_COOKIE_NAME", "").strip()
        or DEFAULT_SESSION_COOKIE_NAME,
        trial_hint_cookie_name=os.environ.get("TRIAL_HINT_COOKIE_NAME", "").strip()
        or DEFAULT_TRIAL_HINT_COOKIE_NAME,
        trial_days=_int_env("TRIAL_DAYS", DEFAULT_TRIAL_DAYS),
        magic_link_ttl_seconds=_int_env(
            "MAGIC_LINK_TTL_SECONDS", DEFAULT_MAGIC_LINK_TTL_SECONDS
        ),
        session_ttl_seconds=_int_env(
            "SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS
        ),
        external_timeout_seconds=external_timeout_seconds,
        aws_region=os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
        or "us-east-1",
    )

    logger.info(
        "Configuration loaded",
        extra={
            "environment": config.environment.value,
            "canonical_origin": config.canonical_origin,
            "access_table": config.access_table,
            "trial_days": config.trial_days,
        },
    )
    return config
