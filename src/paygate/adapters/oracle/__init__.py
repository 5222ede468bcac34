# src/paygate/adapters/oracle/__init__.py
"""
Price Oracle Adapters

Clients for public crypto price sources. All implement PriceOracle.
"""

from paygate.adapters.oracle.base import PriceOracle
from paygate.adapters.oracle.coingecko import CoinGeckoOracle

__all__ = ["PriceOracle", "CoinGeckoOracle"]
