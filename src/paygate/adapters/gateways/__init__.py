# src/paygate/adapters/gateways/__init__.py
"""
Gateway Adapters

One adapter per provider. Each owns its provider's authentication, request
construction and response parsing, and translates provider failures into
paygate.domain.errors before they leave the adapter.
"""

from paygate.adapters.gateways.bitcoin import BitcoinGateway
from paygate.adapters.gateways.monero import MoneroGateway
from paygate.adapters.gateways.paypal import PayPalGateway, format_money

__all__ = ["BitcoinGateway", "MoneroGateway", "PayPalGateway", "format_money"]
