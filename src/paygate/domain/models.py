"""
Domain Models - Pure Business Objects

This module contains domain models representing core payment concepts:
- Exchange rates and the per-pair cache window
- Payment intents tagged by provider, and the canonical status lifecycle
- Provider response structs, decoded once at the adapter boundary
- Webhook evidence and order completion outcomes

Files that USE this module:
- paygate.application.* (all services use domain models)
- paygate.adapters.* (adapters create and use domain models)
- tests.* (tests use domain models for test data)

Files that this module USES:
- paygate.domain.errors (ValidationError for invariant violations)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import json  # Decode webhook bodies
from dataclasses import dataclass, field  # Decorators for creating data classes
from datetime import datetime  # Date/time utilities for timestamps
from decimal import Decimal, InvalidOperation  # Exact money arithmetic
from enum import Enum  # Closed vocabularies
from typing import Any, Mapping, Optional  # Type hints

from paygate.domain.errors import ValidationError

ZERO = Decimal(0)


def coerce_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert a provider value to Decimal without ever raising.

    Floats go through str() so 0.1 stays 0.1. None, booleans, unparsable
    strings and non-finite values all fall back to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(str(value).replace(",", "").strip() or "0")
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def coerce_int(value: Any, default: int = 0) -> int:
    """Convert a provider count (confirmations, tx_count, ...) to int, never raising."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(coerce_decimal(value, Decimal(default)))
    except (ValueError, OverflowError):
        return default


class Provider(str, Enum):
    """Payment providers driven by this layer."""
    PAYPAL = "paypal"
    BITCOIN = "bitcoin"
    MONERO = "monero"


class CanonicalPaymentStatus(str, Enum):
    """
    Provider-independent payment lifecycle.

    pending -> partially_confirmed -> confirmed   (terminal success)
    pending -> underpaid | failed                 (terminal non-success)
    """
    PENDING = "pending"
    PARTIALLY_CONFIRMED = "partially_confirmed"
    CONFIRMED = "confirmed"
    UNDERPAID = "underpaid"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            CanonicalPaymentStatus.CONFIRMED,
            CanonicalPaymentStatus.UNDERPAID,
            CanonicalPaymentStatus.FAILED,
        )

    @property
    def is_success(self) -> bool:
        return self is CanonicalPaymentStatus.CONFIRMED

    def can_transition(self, target: CanonicalPaymentStatus) -> bool:
        """Nothing leaves a terminal state; non-terminal states may move anywhere."""
        if self.is_terminal:
            return False
        if self is CanonicalPaymentStatus.PARTIALLY_CONFIRMED and target is CanonicalPaymentStatus.PENDING:
            return False
        return True


@dataclass(frozen=True)
class CurrencyPair:
    """
    A crypto/fiat pair as the price oracle names it.

    Attributes:
        coin: Oracle coin id (e.g. 'bitcoin')
        fiat: Oracle fiat code, lower-case (e.g. 'gbp')
        symbol: Ticker of the crypto asset (e.g. 'BTC')
        precision: Native decimal places of the crypto asset
    """
    coin: str
    fiat: str
    symbol: str
    precision: int

    @property
    def key(self) -> str:
        return f"{self.coin}/{self.fiat}"

    def with_fiat(self, fiat: str) -> CurrencyPair:
        return CurrencyPair(self.coin, fiat.lower(), self.symbol, self.precision)


BTC_GBP = CurrencyPair(coin="bitcoin", fiat="gbp", symbol="BTC", precision=8)
XMR_GBP = CurrencyPair(coin="monero", fiat="gbp", symbol="XMR", precision=12)


@dataclass(frozen=True)
class ExchangeRate:
    """
    A validated oracle observation: ``rate`` fiat units buy one coin.

    Raises:
        ValidationError: if rate is zero, negative, NaN or infinite
    """
    rate: Decimal
    observed_at: datetime
    valid_until: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.rate, Decimal) or not self.rate.is_finite() or self.rate <= 0:
            raise ValidationError(f"Exchange rate must be positive and finite, got {self.rate!r}")


@dataclass
class CachedRateWindow:
    """Mutable per-pair slot; ``current`` is replaced wholesale on refresh."""
    current: Optional[ExchangeRate] = None


@dataclass(frozen=True)
class RateQuote:
    """Result of a rate lookup."""
    rate: Decimal
    as_of: datetime
    valid_until: datetime
    from_cache: bool
    expired: bool = False


@dataclass(frozen=True)
class Conversion:
    """A fiat amount converted at a quoted rate."""
    fiat_amount: Decimal
    crypto_amount: Decimal
    rate: Decimal
    rate_timestamp: datetime
    valid_until: datetime
    pair: CurrencyPair
    rate_expired: bool = False


@dataclass(frozen=True)
class PaymentIntent:
    """
    One attempt to collect payment for one order, tagged by provider.

    Attributes:
        provider: Which gateway owns this intent
        provider_reference: PayPal order id, Bitcoin address or GloBee payment id
        order_id: Our order id
        amount_requested: Amount the customer must pay, in ``currency``
        amount_received: Amount seen so far, in ``currency``
        currency: 'GBP' for PayPal, 'BTC' / 'XMR' for crypto intents
        confirmations: Block confirmations seen so far (crypto only)
    """
    provider: Provider
    provider_reference: str
    order_id: str
    amount_requested: Decimal
    currency: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    amount_received: Decimal = ZERO
    confirmations: int = 0
    address: Optional[str] = None
    payment_url: Optional[str] = None
    rate_used: Optional[Decimal] = None
    rate_timestamp: Optional[datetime] = None
    status: CanonicalPaymentStatus = CanonicalPaymentStatus.PENDING


@dataclass(frozen=True)
class ReconciledStatus:
    """Canonical view of one provider webhook or poll result."""
    provider: Provider
    status: CanonicalPaymentStatus
    raw_status: str
    provider_reference: Optional[str] = None
    order_id: Optional[str] = None
    confirmations: int = 0
    required_confirmations: int = 0
    amount_received: Decimal = ZERO
    amount_expected: Optional[Decimal] = None
    transaction_hash: Optional[str] = None
    is_fully_confirmed: bool = False
    requires_action: bool = False


@dataclass(frozen=True)
class WebhookEvidence:
    """
    Raw inbound webhook, consumed once by a verifier and then discarded.

    Header lookups are case-insensitive.
    """
    raw_body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    claimed_signature: Optional[str] = None

    @classmethod
    def from_request(
        cls,
        raw_body: bytes | str,
        headers: Mapping[str, str],
        signature_header: Optional[str] = None,
    ) -> WebhookEvidence:
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        normalized = {str(k).lower(): v for k, v in headers.items()}
        claimed = normalized.get(signature_header.lower()) if signature_header else None
        return cls(raw_body=raw_body, headers=normalized, claimed_signature=claimed)

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def json(self) -> dict[str, Any]:
        """
        Decode the body as a JSON object.

        Raises:
            ValidationError: if the body is not a JSON object
        """
        try:
            data = json.loads(self.raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ValidationError(f"Webhook body is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Webhook body is not a JSON object")
        return data


# --- Provider response structs -------------------------------------------


@dataclass(frozen=True)
class PayPalToken:
    """Cached OAuth access token."""
    access_token: str
    expires_at: datetime

    def is_valid(self, now: datetime, margin_seconds: int = 0) -> bool:
        return (self.expires_at - now).total_seconds() > margin_seconds


@dataclass(frozen=True)
class BitcoinPayment:
    """Everything the checkout needs to show a Bitcoin payment."""
    address: str
    btc_amount: Decimal
    fiat_amount: Decimal
    rate_used: Decimal
    rate_timestamp: datetime
    expires_at: datetime


@dataclass(frozen=True)
class BitcoinAddressInfo:
    """Balance of a receiving address, in satoshis."""
    address: str
    confirmed_balance: int = 0
    unconfirmed_balance: int = 0
    tx_count: int = 0

    @classmethod
    def from_api(cls, address: str, data: Any) -> BitcoinAddressInfo:
        entry: Mapping[str, Any] = {}
        if isinstance(data, dict):
            rows = data.get("response") or []
            if isinstance(rows, list) and rows and isinstance(rows[0], dict):
                entry = rows[0]
        return cls(
            address=address,
            confirmed_balance=coerce_int(entry.get("confirmed")),
            unconfirmed_balance=coerce_int(entry.get("unconfirmed")),
            tx_count=coerce_int(entry.get("tx_count")),
        )


@dataclass(frozen=True)
class BitcoinTransaction:
    """Transaction detail as reported by the address provider."""
    txid: str
    confirmations: int = 0
    block_height: Optional[int] = None
    timestamp: Optional[int] = None
    fee: Optional[int] = None
    size: Optional[int] = None
    outputs: tuple = ()

    @classmethod
    def from_api(cls, txid: str, data: Mapping[str, Any]) -> BitcoinTransaction:
        outputs = data.get("vout") or data.get("out") or []
        return cls(
            txid=txid,
            confirmations=coerce_int(data.get("confirmations")),
            block_height=data.get("block_height"),
            timestamp=data.get("time"),
            fee=data.get("fee"),
            size=data.get("size"),
            outputs=tuple(outputs) if isinstance(outputs, list) else (),
        )


@dataclass(frozen=True)
class MoneroPaymentRequest:
    """Payment request created at the Monero gateway."""
    payment_id: str
    address: str
    amount: Decimal
    currency: str
    status: str = "unpaid"
    expiration_time: Optional[str] = None
    payment_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> MoneroPaymentRequest:
        if not data.get("payment_address"):
            raise ValidationError("Monero payment request response missing 'payment_address'")
        return cls(
            payment_id=str(data.get("id", "")),
            address=str(data["payment_address"]),
            amount=coerce_decimal(data.get("total")),
            currency=str(data.get("currency") or "XMR"),
            status=str(data.get("status") or "unpaid"),
            expiration_time=data.get("expiration_time"),
            payment_url=data.get("payment_url"),
        )


@dataclass(frozen=True)
class MoneroPaymentStatus:
    """Payment request status; absent counters default to zero."""
    payment_id: str
    status: str
    confirmations: int = 0
    paid_amount: Decimal = ZERO
    transaction_hash: Optional[str] = None
    payment_address: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> MoneroPaymentStatus:
        return cls(
            payment_id=str(data.get("id", "")),
            status=str(data.get("status") or ""),
            confirmations=coerce_int(data.get("confirmations")),
            paid_amount=coerce_decimal(data.get("paid_amount")),
            transaction_hash=data.get("transaction_hash"),
            payment_address=data.get("payment_address"),
            created_at=data.get("created_at"),
            expires_at=data.get("expires_at"),
        )

    def as_payload(self) -> dict[str, Any]:
        """Webhook-shaped dict so polled statuses reconcile like webhooks."""
        return {
            "id": self.payment_id,
            "status": self.status,
            "confirmations": self.confirmations,
            "paid_amount": self.paid_amount,
            "transaction_hash": self.transaction_hash,
        }


# --- Order completion ------------------------------------------------------


@dataclass(frozen=True)
class Order:
    """The slice of an order this layer needs; owned by the order aggregate."""
    order_id: str
    user_id: str
    total_amount: Decimal
    payment_method: Provider
    currency: str = "GBP"
    customer_email: Optional[str] = None
    payment_intent: Optional[PaymentIntent] = None


@dataclass(frozen=True)
class StepError:
    """A completion step that raised, recorded instead of propagated."""
    step: str
    error_type: str
    message: str


@dataclass
class OrderCompletionOutcome:
    """
    What happened after a confirmed payment.

    Attributes:
        order_id: Order that was completed
        referral_result: Whatever the referral engine returned (None if no referral)
        errors: One StepError per failed step
        completed_steps: Names of the steps that finished without raising
    """
    order_id: str
    referral_result: Any = None
    errors: list[StepError] = field(default_factory=list)
    completed_steps: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


# --- Carrier tracking ------------------------------------------------------


@dataclass(frozen=True)
class TrackingEvent:
    status: str
    description: str
    location: str
    timestamp: datetime


@dataclass(frozen=True)
class TrackingInfo:
    """Shipment tracking snapshot for one carrier / tracking number."""
    tracking_number: str
    carrier: str
    current_status: str
    tracking_url: str
    last_updated: datetime
    history: tuple[TrackingEvent, ...] = ()
    estimated_delivery: Optional[datetime] = None
