"""Component fixtures for the access Lambda.

Every component is the production class wired to in-memory collaborators:
FakeBillingAuthority for Stripe, MockEmailService for SendGrid, an
in-memory rate-limit store, a moto table for the nonce ledger and customer
cache, and one shared FakeClock.
"""

import pytest

from src.lambdas.access.billing import BillingActions
from src.lambdas.access.customers import CustomerDirectory
from src.lambdas.access.entitlements import EntitlementResolver
from src.lambdas.access.issuer import MagicLinkIssuer
from src.lambdas.access.verifier import MagicLinkVerifier
from src.lambdas.shared.auth.nonce_ledger import NonceLedger
from src.lambdas.shared.cache.customer_cache import CustomerCache
from src.lambdas.shared.middleware.rate_limit import RateLimiter
from tests.conftest import TEST_ORIGIN, TEST_SECRET

PRICE_ID = "price_monthly_test"
PRODUCT_TAG = "explain_my_numbers"
TRIAL_DAYS = 3
CLIENT_IP = "ip:203.0.113.7"


@pytest.fixture
def limiter(memory_store, clock):
    return RateLimiter(memory_store, clock=clock)


@pytest.fixture
def customer_cache(access_table, clock):
    return CustomerCache(access_table, clock=clock)


@pytest.fixture
def customers(fake_billing, customer_cache, clock):
    return CustomerDirectory(
        billing=fake_billing,
        cache=customer_cache,
        product_tag=PRODUCT_TAG,
        clock=clock,
    )


@pytest.fixture
def issuer(limiter, customers, fake_billing, email_outbox, clock):
    return MagicLinkIssuer(
        secret=TEST_SECRET,
        canonical_origin=TEST_ORIGIN,
        trial_days=TRIAL_DAYS,
        limiter=limiter,
        customers=customers,
        billing=fake_billing,
        email_service=email_outbox,
        clock=clock,
    )


@pytest.fixture
def ledger(access_table, clock):
    return NonceLedger(access_table, clock=clock)


@pytest.fixture
def verifier(limiter, ledger, fake_billing, clock):
    return MagicLinkVerifier(
        secret=TEST_SECRET,
        canonical_origin=TEST_ORIGIN,
        price_id=PRICE_ID,
        trial_days=TRIAL_DAYS,
        product_tag=PRODUCT_TAG,
        limiter=limiter,
        ledger=ledger,
        billing=fake_billing,
        clock=clock,
    )


@pytest.fixture
def resolver(fake_billing, clock):
    return EntitlementResolver(secret=TEST_SECRET, billing=fake_billing, clock=clock)


@pytest.fixture
def billing_actions(limiter, resolver, fake_billing, clock):
    return BillingActions(
        secret=TEST_SECRET,
        canonical_origin=TEST_ORIGIN,
        price_id=PRICE_ID,
        product_tag=PRODUCT_TAG,
        limiter=limiter,
        resolver=resolver,
        billing=fake_billing,
        clock=clock,
    )
