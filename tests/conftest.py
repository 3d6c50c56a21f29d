"""
Pytest Configuration and Shared Fixtures
=========================================

Common fixtures used across all test modules.

Test Environment Separation:
    - Unit tests: mocked AWS (moto) and in-memory fakes for Stripe/SendGrid
    - No test in this tree talks to a real AWS account, Stripe or SendGrid

For On-Call Engineers:
    If tests fail with AWS credential errors:
    1. Ensure moto is properly mocking (check the mock_aws context)
    2. Verify AWS env vars are set in fixtures

    If tests fail with "Unexpected ERROR/WARNING logs":
    1. The test is catching a real issue - investigate the logs
    2. If the log is expected, assert it with assert_error_logged()

For Developers:
    - Import fixtures by name in test files (pytest auto-discovers conftest.py)
    - access_table yields a moto-backed table with the production key schema
    - fake_billing / email_outbox / memory_store / clock are in-memory fakes
      from tests/fixtures/mocks; each test gets fresh instances
"""

import logging
import os

import boto3
import pytest
from moto import mock_aws

from tests.fixtures.mocks.fake_billing import FakeBillingAuthority
from tests.fixtures.mocks.fake_clock import FakeClock
from tests.fixtures.mocks.memory_rate_store import InMemoryRateLimitStore
from tests.fixtures.mocks.mock_sendgrid import MockEmailService

# =============================================================================
# Pytest Marker Registration
# =============================================================================


def pytest_configure(config):
    """Register custom markers to avoid warnings."""
    config.addinivalue_line(
        "markers",
        "concurrency: marks tests that race threads against one resource",
    )


# Set default test environment variables at module load time
# This allows test files to import modules that read env vars at import time
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

# Disable X-Ray SDK in tests to suppress "cannot find the current segment" errors.
# X-Ray requires a Lambda runtime context with an active segment; without one
# the SDK logs ERROR for every captured call.
os.environ.setdefault("AWS_XRAY_SDK_ENABLED", "false")

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ACCESS_TABLE", "test-access")
os.environ.setdefault("MAGIC_LINK_SECRET", "test-magic-link-secret-0123456789")
os.environ.setdefault("APP_ORIGINS", "https://app.example.com")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_PRICE_ID_MONTHLY", "price_monthly_test")
os.environ.setdefault("SENDGRID_API_KEY", "SG.test-key")
os.environ.setdefault("EMAIL_FROM", "noreply@example.com")

TEST_SECRET = "test-magic-link-secret-0123456789"
TEST_ORIGIN = "https://app.example.com"
TEST_TABLE = "test-access"

# 2026-03-01T12:00:00Z
FIXED_NOW = 1772366400


@pytest.fixture(autouse=True)
def reset_env_vars():
    """
    Reset environment variables before each test.

    Ensures tests don't pollute each other's environment.
    """
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def aws_credentials():
    """
    Set up mock AWS credentials for moto.

    Use this fixture when testing AWS SDK calls.
    All tests using this fixture will use moto mocks.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_REGION"] = "us-east-1"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    # Cleanup handled by reset_env_vars


def create_access_table(table_name: str = TEST_TABLE):
    """Create the single access table (string PK/SK) in the active moto mock."""
    client = boto3.client("dynamodb", region_name="us-east-1")
    client.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    return boto3.resource("dynamodb", region_name="us-east-1").Table(table_name)


@pytest.fixture
def access_table(aws_credentials):
    """Moto-backed access table, torn down after the test."""
    with mock_aws():
        yield create_access_table()


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def fake_billing(clock):
    return FakeBillingAuthority(clock=clock)


@pytest.fixture
def email_outbox():
    return MockEmailService()


@pytest.fixture
def memory_store():
    return InMemoryRateLimitStore()


# =============================================================================
# Log Assertion Helpers
# =============================================================================
#
# Production code logs normally (never test-aware); tests explicitly assert
# on expected logs using caplog.


def assert_error_logged(caplog, pattern: str):
    """
    Helper to assert an ERROR log was captured.

    Args:
        caplog: pytest caplog fixture
        pattern: String pattern to search for in log messages

    Raises:
        AssertionError: If no ERROR log matches the pattern

    Example:
        def test_stripe_down(caplog):
            decision = resolver.resolve_session(session)
            assert decision.reason == "stripe_error"
            assert_error_logged(caplog, "Entitlement lookup failed")
    """
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno >= logging.ERROR
    ), f"Expected ERROR log matching '{pattern}' not found"


def assert_warning_logged(caplog, pattern: str):
    """
    Helper to assert a WARNING log was captured.

    Args:
        caplog: pytest caplog fixture
        pattern: String pattern to search for in log messages

    Raises:
        AssertionError: If no WARNING log matches the pattern
    """
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno == logging.WARNING
    ), f"Expected WARNING log matching '{pattern}' not found"
