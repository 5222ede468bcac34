"""
Exchange Rate Cache - Per-pair TTL cache with a bounded stale fallback

One RateCache instance is built by the composition root and shared by both
crypto gateways. Each currency pair has its own validity window; a failed
refresh falls back to the last good rate only while that rate is younger
than the staleness ceiling.

Files that USE this module:
- paygate.app (constructs the shared instance)
- paygate.application.conversion (CurrencyConverter reads quotes)
- paygate.application.health (peek for cache age)
- tests.test_rate_cache (unit tests)

Files that this module USES:
- paygate.adapters.oracle.base (PriceOracle interface)
- paygate.domain.models (ExchangeRate, CachedRateWindow, RateQuote, CurrencyPair)
- paygate.domain.errors (PaymentError, RateUnavailable)
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Mapping, Optional

from paygate.adapters.oracle.base import PriceOracle
from paygate.domain.errors import PaymentError, RateUnavailable
from paygate.domain.models import BTC_GBP, XMR_GBP, CachedRateWindow, CurrencyPair, ExchangeRate, RateQuote
from paygate.shared.clock import Clock, utcnow

log = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=15)
DEFAULT_STALENESS_CEILING = timedelta(hours=1)

# Keyed on the oracle coin id so the windows hold for any fiat
DEFAULT_TTL_BY_COIN = {
    BTC_GBP.coin: timedelta(minutes=15),
    XMR_GBP.coin: timedelta(minutes=5),
}


class RateCache:
    """
    Crypto→fiat rate cache.

    Reads never block on a lock and refreshes replace the window's entry
    wholesale; two concurrent refreshes both store a freshly validated rate,
    so last-writer-wins is harmless.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        ttl_by_pair: Optional[Mapping[CurrencyPair, timedelta]] = None,
        staleness_ceiling: timedelta = DEFAULT_STALENESS_CEILING,
        default_ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utcnow,
    ):
        """
        Args:
            oracle: Price source used on cache miss or expiry
            ttl_by_pair: Validity window per pair, overriding DEFAULT_TTL_BY_COIN
            staleness_ceiling: Oldest rate that may still be served when the oracle fails
            default_ttl: Window for coins with neither an override nor a default
            clock: Callable returning the current UTC datetime
        """
        if staleness_ceiling <= timedelta(0):
            raise ValueError("staleness_ceiling must be positive")
        self.oracle = oracle
        self.ttl_by_pair: Dict[CurrencyPair, timedelta] = dict(ttl_by_pair or {})
        self.staleness_ceiling = staleness_ceiling
        self.default_ttl = default_ttl
        self._clock = clock
        self._windows: Dict[CurrencyPair, CachedRateWindow] = {}

    def ttl_for(self, pair: CurrencyPair) -> timedelta:
        if pair in self.ttl_by_pair:
            return self.ttl_by_pair[pair]
        return DEFAULT_TTL_BY_COIN.get(pair.coin, self.default_ttl)

    def _window(self, pair: CurrencyPair) -> CachedRateWindow:
        window = self._windows.get(pair)
        if window is None:
            window = CachedRateWindow()
            self._windows[pair] = window
        return window

    def peek(self, pair: CurrencyPair) -> Optional[ExchangeRate]:
        """Return the cached rate without refreshing (None if empty)."""
        window = self._windows.get(pair)
        return window.current if window else None

    def clear(self, pair: Optional[CurrencyPair] = None) -> None:
        """Drop one pair's cached rate, or all of them."""
        if pair is None:
            self._windows.clear()
        else:
            self._windows.pop(pair, None)

    def get_rate(self, pair: CurrencyPair) -> RateQuote:
        """
        Get the fiat price of one coin for ``pair``.

        Returns:
            RateQuote with from_cache=True on the fast path, False after a
            refresh, and expired=True when serving a stale fallback.

        Raises:
            RateUnavailable: if the oracle fails and no recent-enough rate exists
        """
        now = self._clock()
        window = self._window(pair)
        current = window.current

        if current is not None and now < current.valid_until:
            log.debug("Using cached %s rate: %s", pair.key, current.rate)
            return RateQuote(
                rate=current.rate,
                as_of=current.observed_at,
                valid_until=current.valid_until,
                from_cache=True,
            )

        try:
            price = self.oracle.fetch_price(pair.coin, pair.fiat)
            fresh = ExchangeRate(rate=price, observed_at=now, valid_until=now + self.ttl_for(pair))
        except PaymentError as e:
            return self._fallback(pair, window, now, e)

        window.current = fresh
        log.info(
            "%s rate updated: 1 %s = %s %s (ttl=%sm)",
            pair.key, pair.symbol, fresh.rate, pair.fiat.upper(),
            int(self.ttl_for(pair).total_seconds() // 60),
        )
        return RateQuote(
            rate=fresh.rate,
            as_of=fresh.observed_at,
            valid_until=fresh.valid_until,
            from_cache=False,
        )

    def _fallback(self, pair: CurrencyPair, window: CachedRateWindow, now, error: PaymentError) -> RateQuote:
        previous = window.current
        if previous is not None and now - previous.observed_at < self.staleness_ceiling:
            log.warning(
                "Oracle failed for %s (%s); using expired cached rate from %s",
                pair.key, error, previous.observed_at.isoformat(),
            )
            return RateQuote(
                rate=previous.rate,
                as_of=previous.observed_at,
                valid_until=previous.valid_until,
                from_cache=True,
                expired=True,
            )

        log.error("No usable %s rate: oracle failed (%s) and no recent cached rate", pair.key, error)
        raise RateUnavailable(f"{pair.symbol} exchange rate service temporarily unavailable") from error
