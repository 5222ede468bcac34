"""
PayPal Webhook Verifier - Provider-delegated signature verification

PayPal signs webhooks asymmetrically and offers an endpoint that checks its
own signature. We forward the five transmission headers, our webhook id and
the event body, authenticated with the gateway's OAuth token.

Files that USE this module:
- paygate.app (builds the verifier around the shared PayPalGateway)
- paygate.application.orchestrator (verify before reconciling)
- tests.test_webhooks

Files that this module USES:
- paygate.adapters.gateways.paypal (PayPalGateway.post_authenticated)
- paygate.adapters.webhooks.base (WebhookVerifier)
- paygate.domain.models (WebhookEvidence)
"""
import logging
from typing import Optional

from paygate.adapters.gateways.paypal import PayPalGateway
from paygate.adapters.webhooks.base import WebhookVerifier
from paygate.domain.errors import PaymentError
from paygate.domain.models import WebhookEvidence

log = logging.getLogger(__name__)

VERIFY_PATH = "/v1/notifications/verify-webhook-signature"

# payload field -> transmission header
TRANSMISSION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalWebhookVerifier(WebhookVerifier):
    def __init__(self, gateway: PayPalGateway, webhook_id: Optional[str]):
        self.gateway = gateway
        self.webhook_id = webhook_id or ""

    def verify_evidence(self, evidence: WebhookEvidence) -> bool:
        """
        Ask PayPal whether the webhook is genuine.

        Returns:
            True only when PayPal answers verification_status == "SUCCESS";
            False for missing headers, missing webhook id, token or transport
            failures and any other answer
        """
        if not self.webhook_id:
            log.error("PayPal webhook id not configured; rejecting webhook")
            return False

        payload = {}
        for field_name, header in TRANSMISSION_HEADERS.items():
            value = evidence.header(header)
            if not value:
                log.warning("PayPal webhook missing header %s", header)
                return False
            payload[field_name] = value

        try:
            payload["webhook_id"] = self.webhook_id
            payload["webhook_event"] = evidence.json()
            result = self.gateway.post_authenticated(VERIFY_PATH, payload)
        except PaymentError as e:
            log.error("PayPal webhook verification failed: %s", e)
            return False

        status = result.get("verification_status")
        if status != "SUCCESS":
            log.warning(
                "PayPal webhook verification rejected (transmission_id=%s, status=%s)",
                payload["transmission_id"], status,
            )
            return False
        return True
