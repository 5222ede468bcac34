# src/paygate/__init__.py
"""
PayGate - Payment Gateway Orchestration & Reconciliation

Drives PayPal, Bitcoin (Blockonomics) and Monero (GloBee) checkouts to a
single canonical payment lifecycle: exchange-rate caching for the crypto
gateways, webhook authenticity checks, status reconciliation and the
post-confirmation side effects of a paid order.
"""

__version__ = "1.0.0"
__author__ = "RDJCustoms"
