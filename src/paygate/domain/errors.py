"""
Domain Errors - Payment Error Taxonomy

Every provider-specific failure is translated into one of these classes at
the adapter boundary, so callers never need to know a provider's error shape.

- ConfigurationError: missing credentials, fail fast, never retried
- TransientProviderError: network / timeout / non-2xx, eligible for fallback
- ValidationError: malformed provider payload, never cached
- AuthenticityFailure: a webhook failed verification, event must be discarded
- BusinessStateError: terminal non-success state (underpaid, expired)
"""

from typing import Optional


class PaymentError(Exception):
    """Base exception for payment layer errors."""

    retryable = False


class ConfigurationError(PaymentError):
    """Raised when a required credential or setting is missing."""
    pass


class GatewayNotConfigured(ConfigurationError):
    """Raised when a gateway is called without its API credential."""

    def __init__(self, setting: str, message: str = ""):
        self.setting = setting
        super().__init__(message or f"{setting} is not configured")


class TransientProviderError(PaymentError):
    """Raised on network errors, timeouts and non-2xx provider responses."""

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ValidationError(PaymentError):
    """Raised when a provider payload does not have the expected shape."""
    pass


class AuthenticityFailure(PaymentError):
    """Raised (or returned) when a webhook could not be verified."""
    pass


class BusinessStateError(PaymentError):
    """A valid terminal state that needs human follow-up (not a crash)."""

    def __init__(self, message: str, status: str = ""):
        self.status = status
        super().__init__(message)


class RateUnavailable(TransientProviderError):
    """Raised when no fresh or recent-enough exchange rate is available."""
    pass


class ProviderAuthenticationFailed(TransientProviderError):
    """Raised when the OAuth client-credentials exchange fails."""
    pass


class AddressGenerationFailed(PaymentError):
    """Raised when a receiving address could not be obtained."""

    def __init__(self, message: str = "Failed to generate Bitcoin address", retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class OrderCreationFailed(PaymentError):
    """Raised when the card/wallet provider rejects an order."""

    retryable = True


class CaptureFailed(PaymentError):
    """Raised when capturing an approved order fails."""

    retryable = True


class RefundFailed(PaymentError):
    """Raised when a refund request fails."""

    retryable = True


class PaymentRequestFailed(TransientProviderError):
    """Raised when a crypto payment request could not be created."""
    pass


class PaymentStatusUnavailable(TransientProviderError):
    """Raised when a payment or transaction lookup fails."""
    pass
