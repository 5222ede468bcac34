"""
Currency Conversion - Fiat→Crypto amounts at quoted rates

All arithmetic is Decimal. Rounding to the asset's native precision happens
exactly once, in convert(); callers composing a multi-step price breakdown
must pass unrounded intermediates.

Files that USE this module:
- paygate.adapters.gateways.bitcoin (create_payment)
- paygate.adapters.gateways.monero (create_payment_for_fiat)
- paygate.application.reconciler (satoshis_to_btc)
- paygate.app (quote command)

Files that this module USES:
- paygate.application.rate_cache (RateCache)
- paygate.domain.models (Conversion, CurrencyPair, BTC_GBP, XMR_GBP)
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from paygate.application.rate_cache import RateCache
from paygate.domain.errors import ValidationError
from paygate.domain.models import BTC_GBP, XMR_GBP, Conversion, CurrencyPair

log = logging.getLogger(__name__)

SATOSHIS_PER_BTC = Decimal(100_000_000)


def to_decimal(value: Any) -> Decimal:
    """
    Convert an amount to Decimal, rejecting anything that is not a finite number.

    Raises:
        ValidationError: for None, booleans, NaN, Infinity or unparsable input
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Not a numeric amount: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Not a numeric amount: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"Amount must be finite, got {value!r}")
    return result


def quantum(precision: int) -> Decimal:
    """Smallest unit for ``precision`` decimal places, e.g. 8 -> 0.00000001."""
    return Decimal(1).scaleb(-precision)


def convert(fiat_amount: Any, rate: Any, precision: int) -> Decimal:
    """
    Convert a fiat amount to crypto at ``rate`` fiat per coin.

    Args:
        fiat_amount: Non-negative fiat amount
        rate: Fiat price of one coin (must be > 0)
        precision: Decimal places of the target asset (8 for BTC, 12 for XMR)

    Returns:
        fiat_amount / rate, rounded half-up to ``precision`` places

    Raises:
        ValidationError: if the amount is negative or the rate is not positive
    """
    amount = to_decimal(fiat_amount)
    price = to_decimal(rate)
    if amount < 0:
        raise ValidationError(f"Amount must not be negative, got {amount}")
    if price <= 0:
        raise ValidationError(f"Exchange rate must be positive, got {price}")
    return (amount / price).quantize(quantum(precision), rounding=ROUND_HALF_UP)


def satoshis_to_btc(satoshis: Any) -> Decimal:
    """Convert an integer satoshi amount to BTC (exact)."""
    return (to_decimal(satoshis) / SATOSHIS_PER_BTC).quantize(quantum(8))


def btc_to_satoshis(btc: Any) -> int:
    """Convert BTC to satoshis, rounding half-up to the nearest satoshi."""
    return int((to_decimal(btc) * SATOSHIS_PER_BTC).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_crypto_amount(amount: Any, precision: int) -> str:
    """
    Format a crypto amount for display: fixed precision, trailing zeros stripped.

    >>> format_crypto_amount(Decimal("0.5"), 12)
    '0.5'
    """
    text = f"{to_decimal(amount).quantize(quantum(precision), rounding=ROUND_HALF_UP):f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class CurrencyConverter:
    """Converts fiat amounts using the shared RateCache."""

    def __init__(self, rate_cache: RateCache, fiat: Optional[str] = None):
        self.rate_cache = rate_cache
        self.fiat = fiat.lower() if fiat else None

    def _pair(self, pair: CurrencyPair) -> CurrencyPair:
        if self.fiat and pair.fiat != self.fiat:
            return pair.with_fiat(self.fiat)
        return pair

    def convert(self, fiat_amount: Any, pair: CurrencyPair) -> Conversion:
        """
        Quote and convert in one step.

        Raises:
            RateUnavailable: if no usable rate exists
            ValidationError: for invalid amounts
        """
        pair = self._pair(pair)
        amount = to_decimal(fiat_amount)
        quote = self.rate_cache.get_rate(pair)
        crypto_amount = convert(amount, quote.rate, pair.precision)
        log.debug(
            "Converted %s %s -> %s %s at %s (cached=%s, expired=%s)",
            amount, pair.fiat.upper(), crypto_amount, pair.symbol, quote.rate,
            quote.from_cache, quote.expired,
        )
        return Conversion(
            fiat_amount=amount,
            crypto_amount=crypto_amount,
            rate=quote.rate,
            rate_timestamp=quote.as_of,
            valid_until=quote.valid_until,
            pair=pair,
            rate_expired=quote.expired,
        )

    def gbp_to_btc(self, amount: Any) -> Conversion:
        return self.convert(amount, BTC_GBP)

    def gbp_to_xmr(self, amount: Any) -> Conversion:
        return self.convert(amount, XMR_GBP)


def is_sufficient(received: Any, expected: Any, tolerance_percent: Any = 1) -> bool:
    """
    Whether ``received`` covers ``expected`` within a downward tolerance.

    received >= expected * (1 - tolerance_percent / 100). The tolerance
    absorbs network-fee deduction quirks without accepting a meaningfully
    underpaid transaction.
    """
    factor = Decimal(1) - to_decimal(tolerance_percent) / Decimal(100)
    return to_decimal(received) >= to_decimal(expected) * factor
