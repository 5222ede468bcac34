# src/paygate/domain/__init__.py
"""
Domain Layer - Pure Business Objects

This package contains domain models, the payment error taxonomy and the
Result type. No dependencies on infrastructure or external systems.
"""

from paygate.domain.models import (
    BTC_GBP,
    XMR_GBP,
    CachedRateWindow,
    CanonicalPaymentStatus,
    Conversion,
    CurrencyPair,
    ExchangeRate,
    Order,
    OrderCompletionOutcome,
    PaymentIntent,
    Provider,
    RateQuote,
    ReconciledStatus,
    StepError,
    WebhookEvidence,
)
from paygate.domain.errors import (
    AddressGenerationFailed,
    AuthenticityFailure,
    BusinessStateError,
    ConfigurationError,
    GatewayNotConfigured,
    OrderCreationFailed,
    PaymentError,
    RateUnavailable,
    TransientProviderError,
    ValidationError,
)
from paygate.domain.results import Result

__all__ = [
    "BTC_GBP",
    "XMR_GBP",
    "CachedRateWindow",
    "CanonicalPaymentStatus",
    "Conversion",
    "CurrencyPair",
    "ExchangeRate",
    "Order",
    "OrderCompletionOutcome",
    "PaymentIntent",
    "Provider",
    "RateQuote",
    "ReconciledStatus",
    "StepError",
    "WebhookEvidence",
    "AddressGenerationFailed",
    "AuthenticityFailure",
    "BusinessStateError",
    "ConfigurationError",
    "GatewayNotConfigured",
    "OrderCreationFailed",
    "PaymentError",
    "RateUnavailable",
    "TransientProviderError",
    "ValidationError",
    "Result",
]
