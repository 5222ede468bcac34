# src/paygate/shared/__init__.py
"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation
- Logging configuration and payment event records
- Clock helpers
"""

from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import log_payment_event, setup_logging
from paygate.shared.validators import (
    mask_secret,
    validate_api_key,
    validate_currency_code,
    validate_numeric_input,
    validate_url,
)

__all__ = [
    "Clock",
    "utcnow",
    "log_payment_event",
    "setup_logging",
    "mask_secret",
    "validate_api_key",
    "validate_currency_code",
    "validate_numeric_input",
    "validate_url",
]
