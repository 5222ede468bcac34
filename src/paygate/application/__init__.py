# src/paygate/application/__init__.py
"""
Application Layer - Use Cases and Services

This package contains the services that sit between the gateway adapters and
the rest of the store: rate caching and conversion, status reconciliation,
order completion and carrier tracking. The facade (orchestrator) and the
health checker depend on the adapters and are imported from their modules.
"""

from paygate.application.rate_cache import RateCache
from paygate.application.conversion import CurrencyConverter, convert, is_sufficient
from paygate.application.reconciler import (
    PaymentStatusReconciler,
    reconcile_bitcoin,
    reconcile_monero,
    reconcile_paypal,
)
from paygate.application.completion import OrderCompletionCoordinator
from paygate.application.tracking import CarrierTrackingCache, normalize_carrier, tracking_url

__all__ = [
    "RateCache",
    "CurrencyConverter",
    "convert",
    "is_sufficient",
    "PaymentStatusReconciler",
    "reconcile_bitcoin",
    "reconcile_monero",
    "reconcile_paypal",
    "OrderCompletionCoordinator",
    "CarrierTrackingCache",
    "normalize_carrier",
    "tracking_url",
]
