"""
Webhook Verifiers

Authenticity checks for inbound provider callbacks. Every verifier answers
True or False and never raises.
"""

from paygate.adapters.webhooks.base import WebhookVerifier
from paygate.adapters.webhooks.hmac_verifier import HmacWebhookVerifier, compute_signature
from paygate.adapters.webhooks.paypal_verifier import PayPalWebhookVerifier

__all__ = [
    "WebhookVerifier",
    "HmacWebhookVerifier",
    "PayPalWebhookVerifier",
    "compute_signature",
]
