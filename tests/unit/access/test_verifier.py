"""
Unit tests for magic-link verification.

For On-Call Engineers:
    - TestRejections::test_replay: a link must mint at most one session
    - TestTrial: a customer gets at most one trial, even across fresh links

For Developers:
    Tokens are minted directly with mint_magic_link_token here; the
    issue -> verify round trip lives in test_flows.py.
"""

import pytest

from src.lambdas.access.verifier import (
    describe_failure,
    error_redirect_reason,
)
from src.lambdas.shared.auth.magic_link import mint_magic_link_token
from src.lambdas.shared.auth.nonce_ledger import NonceLedger
from src.lambdas.shared.auth.sessions import read_session
from src.lambdas.shared.errors.auth_errors import (
    BillingAuthorityError,
    ConfigurationError,
    RateLimitedError,
    StoreUnavailableError,
)
from src.lambdas.shared.errors.session_errors import (
    InvalidSignatureError,
    LinkAlreadyUsedError,
    MalformedTokenError,
    TokenExpiredError,
)
from tests.conftest import (
    FIXED_NOW,
    TEST_ORIGIN,
    TEST_SECRET,
    assert_error_logged,
    assert_warning_logged,
)
from tests.unit.access.conftest import CLIENT_IP, PRICE_ID, PRODUCT_TAG

EMAIL = "reader@example.com"
DAY = 24 * 60 * 60


def _token(customer_id: str, intent: str, now: int = FIXED_NOW, secret=TEST_SECRET):
    token, _ = mint_magic_link_token(
        email=EMAIL, customer_id=customer_id, intent=intent, secret=secret, now=now
    )
    return token


@pytest.fixture
def customer(fake_billing):
    return fake_billing.add_customer(EMAIL)


class TestTrial:
    def test_starts_trial(self, verifier, fake_billing, customer):
        outcome = verifier.verify(_token(customer.id, "trial"), CLIENT_IP)

        assert outcome.redirect_url == f"{TEST_ORIGIN}/?magic=ok&intent=trial"
        assert outcome.status_code == 303
        assert outcome.trial_ends_at == FIXED_NOW + 3 * DAY
        [subscription] = fake_billing.subscriptions[customer.id]
        assert subscription.status == "trialing"
        assert outcome.session.trial_subscription_id == subscription.id

    def test_marks_trial_used(self, verifier, fake_billing, customer):
        verifier.verify(_token(customer.id, "trial"), CLIENT_IP)

        updated = fake_billing.customers[customer.id]
        assert updated.trial_used
        assert updated.metadata["trial_subscription_id"]

    def test_trial_keyed_by_nonce(self, verifier, fake_billing, customer):
        token, claims = mint_magic_link_token(
            email=EMAIL,
            customer_id=customer.id,
            intent="trial",
            secret=TEST_SECRET,
            now=FIXED_NOW,
        )
        verifier.verify(token, CLIENT_IP)
        assert f"trial:{claims.nonce}" in fake_billing._idempotent
        assert f"trial-used:{claims.nonce}" in fake_billing._idempotent

    def test_session_cookie_carries_trial(self, verifier, customer):
        outcome = verifier.verify(_token(customer.id, "trial"), CLIENT_IP)

        session = read_session(outcome.session_token, TEST_SECRET, FIXED_NOW)
        assert session.email == EMAIL
        assert session.customer_id == customer.id
        assert session.trial_ends_at == outcome.trial_ends_at

    def test_second_trial_link_requires_subscription(self, verifier, fake_billing, customer):
        verifier.verify(_token(customer.id, "trial"), CLIENT_IP)

        outcome = verifier.verify(_token(customer.id, "trial"), CLIENT_IP)
        assert outcome.redirect_url == f"{TEST_ORIGIN}/?magic=ok&intent=subscribe_required"
        assert outcome.trial_ends_at is None
        assert len(fake_billing.subscriptions[customer.id]) == 1

    def test_trial_marker_alone_disqualifies(self, verifier, fake_billing):
        marked = fake_billing.add_customer(EMAIL, metadata={"trial_used": "true"})
        outcome = verifier.verify(_token(marked.id, "trial"), CLIENT_IP)
        assert "intent=subscribe_required" in outcome.redirect_url
        assert fake_billing.calls["create_trial_subscription"] == 0

    def test_marker_failure_not_fatal(self, verifier, fake_billing, customer, caplog):
        fake_billing.fail_on.add("update_customer_metadata")
        outcome = verifier.verify(_token(customer.id, "trial"), CLIENT_IP)

        assert "intent=trial" in outcome.redirect_url
        assert_error_logged(caplog, "Failed to mark trial used")

    def test_trial_without_trial_end_uses_configured_days(self, verifier, fake_billing, customer):
        original = fake_billing.create_trial_subscription

        def without_trial_end(**kwargs):
            return original(**kwargs).model_copy(update={"trial_end": None})

        fake_billing.create_trial_subscription = without_trial_end
        outcome = verifier.verify(_token(customer.id, "trial"), CLIENT_IP)
        assert outcome.trial_ends_at == FIXED_NOW + 3 * DAY

    def test_deleted_customer(self, verifier, fake_billing):
        gone = fake_billing.add_customer(EMAIL, deleted=True)
        with pytest.raises(BillingAuthorityError):
            verifier.verify(_token(gone.id, "trial"), CLIENT_IP)

    def test_stripe_failure_consumes_link(self, verifier, fake_billing, customer):
        fake_billing.fail_on.add("create_trial_subscription")
        token = _token(customer.id, "trial")
        with pytest.raises(BillingAuthorityError):
            verifier.verify(token, CLIENT_IP)

        fake_billing.fail_on.clear()
        with pytest.raises(LinkAlreadyUsedError):
            verifier.verify(token, CLIENT_IP)


class TestSubscribe:
    def test_redirects_to_checkout(self, verifier, fake_billing, customer):
        outcome = verifier.verify(_token(customer.id, "subscribe"), CLIENT_IP)

        assert outcome.redirect_url == fake_billing.checkout_url
        [checkout] = fake_billing.checkout_sessions
        assert checkout["customer_id"] == customer.id
        assert checkout["price_id"] == PRICE_ID
        assert checkout["success_url"] == f"{TEST_ORIGIN}/?subscribe=success"
        assert checkout["cancel_url"] == f"{TEST_ORIGIN}/?subscribe=cancel"
        assert checkout["metadata"]["product"] == PRODUCT_TAG

    def test_session_issued_before_checkout(self, verifier, customer):
        outcome = verifier.verify(_token(customer.id, "subscribe"), CLIENT_IP)
        assert read_session(outcome.session_token, TEST_SECRET, FIXED_NOW).sid

    def test_checkout_without_url(self, verifier, fake_billing, customer):
        fake_billing.checkout_url = None
        with pytest.raises(BillingAuthorityError):
            verifier.verify(_token(customer.id, "subscribe"), CLIENT_IP)


class TestLogin:
    def test_login(self, verifier, fake_billing, customer):
        outcome = verifier.verify(_token(customer.id, "login"), CLIENT_IP)

        assert outcome.redirect_url == f"{TEST_ORIGIN}/?magic=ok&intent=login"
        assert outcome.trial_ends_at is None
        assert fake_billing.total_calls() == 0


class TestRejections:
    def test_replay(self, verifier, customer):
        token = _token(customer.id, "login")
        verifier.verify(token, CLIENT_IP)

        with pytest.raises(LinkAlreadyUsedError) as exc_info:
            verifier.verify(token, CLIENT_IP)
        assert exc_info.value.reason == "link_used"

    def test_bad_signature(self, verifier, customer, caplog):
        token = _token(customer.id, "login", secret="some-other-secret-0123456789ab")
        with pytest.raises(InvalidSignatureError):
            verifier.verify(token, CLIENT_IP)
        assert_warning_logged(caplog, "Magic link rejected")

    def test_garbage(self, verifier):
        with pytest.raises(MalformedTokenError):
            verifier.verify("garbage", CLIENT_IP)

    def test_expired_token_leaves_nonce_unredeemed(self, verifier, access_table, customer):
        token, claims = mint_magic_link_token(
            email=EMAIL,
            customer_id=customer.id,
            intent="login",
            secret=TEST_SECRET,
            now=FIXED_NOW - 15 * 60,
        )
        with pytest.raises(TokenExpiredError):
            verifier.verify(token, CLIENT_IP)
        assert "Item" not in access_table.get_item(Key=NonceLedger.key_for(claims.nonce))

    def test_rate_limited(self, verifier, customer):
        for _ in range(30):
            with pytest.raises(MalformedTokenError):
                verifier.verify("garbage", CLIENT_IP)

        with pytest.raises(RateLimitedError) as exc_info:
            verifier.verify(_token(customer.id, "login"), CLIENT_IP)
        assert exc_info.value.scope == "auth_verify_ip"

    def test_ledger_outage(self, verifier, customer, monkeypatch):
        def unavailable(nonce):
            raise StoreUnavailableError()

        monkeypatch.setattr(verifier.ledger, "try_redeem", unavailable)
        with pytest.raises(StoreUnavailableError):
            verifier.verify(_token(customer.id, "login"), CLIENT_IP)


class TestErrorRedirectReason:
    @pytest.mark.parametrize(
        "error,reason",
        [
            (MalformedTokenError(), "bad_payload"),
            (InvalidSignatureError(), "bad_signature"),
            (TokenExpiredError(), "expired"),
            (LinkAlreadyUsedError(), "link_used"),
            (ConfigurationError("x"), "server_config"),
            (BillingAuthorityError(), "server"),
            (StoreUnavailableError(), "server"),
            (RuntimeError("boom"), "server"),
        ],
    )
    def test_reason(self, error, reason):
        assert error_redirect_reason(error) == reason

    def test_describe_failure_has_code(self):
        assert describe_failure(BillingAuthorityError()) == {
            "error_code": "BILLING_ERROR",
            "error_type": "BillingAuthorityError",
        }

    def test_describe_unknown_failure(self):
        assert describe_failure(RuntimeError("x")) == {"error_type": "RuntimeError"}
