"""
Adapters - Outbound clients for price oracles, payment gateways and webhook verification.
"""
