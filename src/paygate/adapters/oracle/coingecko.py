"""
CoinGecko Price Oracle for Crypto→Fiat Exchange Rates

This module implements the CoinGecko `/simple/price` client used by the
exchange-rate cache. It performs no caching of its own: every call is a
network call, and the payload is validated before a price is returned.

Files that USE this module:
- paygate.app (builds the oracle for the shared RateCache)
- tests.test_oracle (unit tests)

Files that this module USES:
- paygate.adapters.oracle.base (PriceOracle interface)
- paygate.config (settings for API URL and timeout)
- paygate.domain.errors (TransientProviderError, ValidationError)
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import requests

from paygate.adapters.oracle.base import PriceOracle
from paygate.config import settings
from paygate.domain.errors import TransientProviderError, ValidationError

log = logging.getLogger(__name__)

USER_AGENT = "RDJCustoms-Store/1.0"


class CoinGeckoOracle(PriceOracle):
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize CoinGecko oracle.

        Args:
            base_url: Optional API base URL (defaults to settings.coingecko_api_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.oracle_timeout_seconds)
        """
        self.base_url = (base_url or settings.coingecko_api_url).rstrip("/")
        self.timeout = timeout or settings.oracle_timeout_seconds

    def fetch_price(self, coin: str, fiat: str) -> Decimal:
        """
        Fetch the fiat price of one coin.

        Expects ``{coin: {fiat: number}}``.

        Returns:
            Price as a positive, finite Decimal

        Raises:
            TransientProviderError: on timeout, connection error or non-2xx status
            ValidationError: if the payload is malformed or the price is not usable
        """
        url = f"{self.base_url}/simple/price"
        params = {"ids": coin, "vs_currencies": fiat, "precision": 8}
        try:
            log.info("Fetching fresh %s/%s rate from CoinGecko", coin, fiat)
            resp = requests.get(
                url,
                params=params,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
            if resp.status_code >= 400:
                log.warning("CoinGecko API returned HTTP %d", resp.status_code)
                raise TransientProviderError(
                    f"CoinGecko API error: HTTP {resp.status_code}", status_code=resp.status_code
                )
        except requests.exceptions.Timeout as e:
            log.warning("CoinGecko API timeout after %d seconds", self.timeout)
            raise TransientProviderError(f"CoinGecko API timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            log.warning("CoinGecko API request failed: %s", e)
            raise TransientProviderError(f"CoinGecko API request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            log.error("CoinGecko API returned invalid JSON: %s", e)
            raise ValidationError(f"CoinGecko API returned invalid JSON: {e}") from e

        return self._parse_price(data, coin, fiat)

    @staticmethod
    def _parse_price(data, coin: str, fiat: str) -> Decimal:
        if not isinstance(data, dict) or not isinstance(data.get(coin), dict):
            log.error("CoinGecko unexpected response structure for %s: %r", coin, data)
            raise ValidationError(f"CoinGecko response missing '{coin}' field")

        raw = data[coin].get(fiat)
        # bool is an int subclass; JSON true is not a price
        if raw is None or isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            log.error("CoinGecko response missing numeric '%s.%s': %r", coin, fiat, raw)
            raise ValidationError(f"CoinGecko response missing '{coin}.{fiat}' field")

        try:
            price = Decimal(str(raw))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"CoinGecko returned non-numeric price: {raw!r}") from e

        if not price.is_finite() or price <= 0:
            log.error("CoinGecko returned unusable %s/%s price: %s", coin, fiat, raw)
            raise ValidationError(f"CoinGecko returned invalid exchange rate: {raw!r}")

        return price
