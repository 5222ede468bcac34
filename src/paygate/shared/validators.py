"""
Input Validation Utilities - Configuration and Payload Validation

This module provides the validation helpers used by the settings layer and by
the gateway adapters: credential shape checks, URL and currency code checks,
and masking of secrets before they are referenced in log lines.

Files that USE this module:
- paygate.config.settings (Settings field validators)
- paygate.app (mask_secret when logging configuration, validate_numeric_input for CLI amounts)

Files that this module USES:
- None (pure utility functions)
"""
import re
from typing import Optional
from urllib.parse import urlparse


def validate_api_key(api_key: str, min_length: int = 8) -> bool:
    """
    Validate API key / client credential format.

    Args:
        api_key: API key to validate
        min_length: Minimum length requirement

    Returns:
        True if valid, False otherwise
    """
    if not api_key:
        return False

    if api_key.isspace() or any(ch.isspace() for ch in api_key):
        return False
    return len(api_key) >= min_length


def validate_url(url: str) -> bool:
    """
    Validate that a string is an absolute http(s) URL.

    Args:
        url: URL to validate

    Returns:
        True if valid, False otherwise
    """
    if not url:
        return False

    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_currency_code(code: str) -> bool:
    """
    Validate a three-letter ISO-4217 style currency code (case-insensitive).

    Args:
        code: Currency code to validate (e.g. 'gbp', 'GBP')

    Returns:
        True if valid, False otherwise
    """
    if not code:
        return False
    return bool(re.match(r"^[A-Za-z]{3}$", code))


def validate_numeric_input(value: str, min_val: Optional[float] = None,
                           max_val: Optional[float] = None) -> bool:
    """
    Validate numeric input string.

    Args:
        value: String value to validate
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        True if valid, False otherwise
    """
    if not value:
        return False

    try:
        num_val = float(value)
        if num_val != num_val:  # NaN
            return False
        if min_val is not None and num_val < min_val:
            return False
        if max_val is not None and num_val > max_val:
            return False
        return True
    except ValueError:
        return False


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """
    Mask a credential so it can be referenced in logs.

    Args:
        secret: Secret to mask
        visible: Number of trailing characters left visible

    Returns:
        Masked representation, e.g. '****abcd', or '<unset>'
    """
    if not secret:
        return "<unset>"
    if len(secret) <= visible:
        return "*" * len(secret)
    return "*" * 4 + secret[-visible:]
