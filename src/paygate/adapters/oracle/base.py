"""
Base Oracle Interface for Crypto Price Sources

Files that USE this module:
- paygate.adapters.oracle.coingecko (CoinGeckoOracle implements PriceOracle)
- paygate.application.rate_cache (RateCache depends on PriceOracle)

Files that this module USES:
- None (pure interface definition)
"""
from abc import ABC, abstractmethod
from decimal import Decimal


class PriceOracle(ABC):
    @abstractmethod
    def fetch_price(self, coin: str, fiat: str) -> Decimal:
        """Return the fiat price of one ``coin`` as a positive, finite Decimal."""
        raise NotImplementedError
