"""
Secure logging utilities to prevent log injection and sensitive data exposure.

This module provides functions to sanitize data before logging, preventing:
- Log injection attacks (CWE-117, CWE-93)
- Email addresses, tokens and secrets leaking into CloudWatch
- Stack trace leakage to external users

Security References:
- OWASP Logging Cheat Sheet: https://cheatsheetseries.owasp.org/cheatsheets/Logging_Cheat_Sheet.html
- CodeQL Log Injection: https://codeql.github.com/codeql-query-help/python/py-log-injection/

For Developers:
    - Never log a raw email: use email_domain_for_log() or hash_for_log()
    - Never log a token, signature or full nonce; log nonce[:8] at most
    - Log exceptions with get_safe_error_info(e), never str(e) from user input
"""

import hashlib
import re
from typing import Any

# Maximum length for logged user input to prevent log flooding
MAX_LOG_INPUT_LENGTH = 200


def sanitize_for_log(value: Any, max_length: int = MAX_LOG_INPUT_LENGTH) -> str:
    """
    Sanitize a value for safe logging by removing CRLF and limiting length.

    Args:
        value: Value to sanitize (will be converted to string)
        max_length: Maximum length of output (default: 200)

    Returns:
        Sanitized string safe for logging

    Example:
        >>> sanitize_for_log("error\\n[FAKE] Admin logged in")
        'error [FAKE] Admin logged in'
    """
    text = str(value)

    # Remove CRLF characters to prevent log injection
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")

    # Remove other control characters
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", " ", text)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def get_safe_error_info(exception: Exception) -> dict[str, str]:
    """
    Extract safe information from an exception for logging.

    Returns only the exception type, NOT the message. Stripe and SendGrid
    error messages can echo request parameters (emails, customer ids).

    Example:
        >>> try:
        ...     raise ValueError("user input here")
        ... except Exception as e:
        ...     get_safe_error_info(e)
        {'error_type': 'ValueError'}
    """
    return {"error_type": type(exception).__name__}


def hash_for_log(value: str, length: int = 12) -> str:
    """Stable, non-reversible correlator for values that must not be logged.

    Example:
        >>> len(hash_for_log("someone@example.com"))
        12
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def email_domain_for_log(email: str) -> str:
    """Return only the sanitized domain part of an email address."""
    _, _, domain = email.rpartition("@")
    return sanitize_for_log(domain or "unknown", max_length=100)


def mask_email(email: str | None) -> str | None:
    """Mask email for frontend confirmation: abcdef@domain.com -> ab***f@d***.com"""
    if not email:
        return None
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    if len(local) <= 2:
        masked_local = f"{local[:1]}*"
    else:
        masked_local = f"{local[:2]}***{local[-1]}"
    masked_domain = re.sub(r"^(.).*(\..+)$", r"\1***\2", domain) if domain else "***"
    return f"{masked_local}@{masked_domain}"
