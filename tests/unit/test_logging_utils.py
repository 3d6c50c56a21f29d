"""
Unit tests for logging_utils module.

Tests cover security-focused logging utilities:
- sanitize_for_log: CRLF injection prevention
- get_safe_error_info: Safe exception logging
- hash_for_log / email_domain_for_log: email-free correlators
- mask_email: confirmation text shown to the user
"""

from src.lambdas.shared.logging_utils import (
    email_domain_for_log,
    get_safe_error_info,
    hash_for_log,
    mask_email,
    sanitize_for_log,
)


class TestSanitizeForLog:
    """Tests for sanitize_for_log function."""

    def test_removes_newlines(self):
        assert sanitize_for_log("line1\nline2") == "line1 line2"

    def test_removes_carriage_returns(self):
        assert sanitize_for_log("line1\r\nFAKE LOG") == "line1  FAKE LOG"

    def test_removes_control_characters(self):
        assert "\x00" not in sanitize_for_log("a\x00b")

    def test_truncates(self):
        result = sanitize_for_log("x" * 300, max_length=10)
        assert result == "x" * 10 + "..."

    def test_non_string(self):
        assert sanitize_for_log(42) == "42"


class TestGetSafeErrorInfo:
    def test_type_only(self):
        info = get_safe_error_info(ValueError("reader@example.com"))
        assert info == {"error_type": "ValueError"}


class TestEmailCorrelators:
    def test_hash_length_and_stability(self):
        assert hash_for_log("a@b.co") == hash_for_log("a@b.co")
        assert len(hash_for_log("a@b.co", length=8)) == 8

    def test_domain_only(self):
        assert email_domain_for_log("reader@example.com") == "example.com"

    def test_domain_missing(self):
        assert email_domain_for_log("reader@") == "unknown"


class TestMaskEmail:
    def test_long_local_part(self):
        assert mask_email("abcdef@domain.com") == "ab***f@d***.com"

    def test_short_local_part(self):
        assert mask_email("ab@domain.com") == "a*@d***.com"

    def test_none(self):
        assert mask_email(None) is None

    def test_no_at_sign(self):
        assert mask_email("nobody") == "***"
