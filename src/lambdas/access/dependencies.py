"""Lazy-init singleton dependency getters for the access Lambda.

Each getter builds its component on first call and caches it for the Lambda
container lifetime. Routes receive them through FastAPI ``Depends`` so tests
can swap any of them with ``app.dependency_overrides``.

Usage:
    from src.lambdas.access.dependencies import get_verifier

    @router.get("/verify")
    async def verify(verifier: MagicLinkVerifier = Depends(get_verifier)): ...
"""

import logging
import threading
from typing import Any

from src.lambdas.access.billing import BillingActions
from src.lambdas.access.config import AccessConfig, get_config
from src.lambdas.access.customers import CustomerDirectory
from src.lambdas.access.entitlements import EntitlementResolver
from src.lambdas.access.issuer import MagicLinkIssuer
from src.lambdas.access.verifier import MagicLinkVerifier
from src.lambdas.notification.sendgrid_service import EmailService
from src.lambdas.shared.adapters.base import BillingAuthority
from src.lambdas.shared.adapters.stripe_billing import StripeBillingAdapter
from src.lambdas.shared.auth.nonce_ledger import NonceLedger
from src.lambdas.shared.cache.customer_cache import CustomerCache
from src.lambdas.shared.dynamodb import get_table
from src.lambdas.shared.middleware.rate_limit import DynamoRateLimitStore, RateLimiter

logger = logging.getLogger(__name__)

_init_lock = threading.RLock()

# Singleton instances
_config: AccessConfig | None = None
_table: Any = None
_billing: BillingAuthority | None = None
_limiter: RateLimiter | None = None
_email_service: EmailService | None = None


def get_access_config() -> AccessConfig:
    """Validated configuration (lazy singleton).

    Raises:
        ConfigurationError: Missing or invalid environment
    """
    global _config
    if _config is None:
        with _init_lock:
            if _config is None:
                _config = get_config()
    return _config


def get_access_table() -> Any:
    global _table
    if _table is None:
        with _init_lock:
            if _table is None:
                config = get_access_config()
                _table = get_table(
                    config.access_table,
                    region_name=config.aws_region,
                    timeout_seconds=config.external_timeout_seconds,
                )
    return _table


def get_billing_authority() -> BillingAuthority:
    global _billing
    if _billing is None:
        with _init_lock:
            if _billing is None:
                config = get_access_config()
                _billing = StripeBillingAdapter(
                    api_key=config.stripe_secret_key,
                    timeout_seconds=config.external_timeout_seconds,
                )
    return _billing


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        with _init_lock:
            if _limiter is None:
                _limiter = RateLimiter(DynamoRateLimitStore(get_access_table()))
    return _limiter


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        with _init_lock:
            if _email_service is None:
                config = get_access_config()
                _email_service = EmailService(
                    api_key=config.sendgrid_api_key,
                    from_email=config.email_from,
                    app_name=config.app_name,
                    timeout_seconds=config.external_timeout_seconds,
                )
    return _email_service


def get_resolver() -> EntitlementResolver:
    config = get_access_config()
    return EntitlementResolver(
        secret=config.magic_link_secret,
        billing=get_billing_authority(),
        session_ttl_seconds=config.session_ttl_seconds,
    )


def get_issuer() -> MagicLinkIssuer:
    config = get_access_config()
    billing = get_billing_authority()
    return MagicLinkIssuer(
        secret=config.magic_link_secret,
        canonical_origin=config.canonical_origin,
        trial_days=config.trial_days,
        limiter=get_rate_limiter(),
        customers=CustomerDirectory(
            billing=billing,
            cache=CustomerCache(get_access_table()),
            product_tag=config.product_tag,
        ),
        billing=billing,
        email_service=get_email_service(),
        ttl_seconds=config.magic_link_ttl_seconds,
    )


def get_verifier() -> MagicLinkVerifier:
    config = get_access_config()
    return MagicLinkVerifier(
        secret=config.magic_link_secret,
        canonical_origin=config.canonical_origin,
        price_id=config.stripe_price_id,
        trial_days=config.trial_days,
        product_tag=config.product_tag,
        limiter=get_rate_limiter(),
        ledger=NonceLedger(
            get_access_table(), ttl_seconds=config.magic_link_ttl_seconds
        ),
        billing=get_billing_authority(),
    )


def get_billing_actions() -> BillingActions:
    config = get_access_config()
    return BillingActions(
        secret=config.magic_link_secret,
        canonical_origin=config.canonical_origin,
        price_id=config.stripe_price_id,
        product_tag=config.product_tag,
        limiter=get_rate_limiter(),
        resolver=get_resolver(),
        billing=get_billing_authority(),
        session_ttl_seconds=config.session_ttl_seconds,
    )


def reset_dependencies() -> None:
    """Drop all cached singletons. Used in tests and after config changes."""
    global _config, _table, _billing, _limiter, _email_service
    with _init_lock:
        _config = None
        _table = None
        _billing = None
        _limiter = None
        _email_service = None
