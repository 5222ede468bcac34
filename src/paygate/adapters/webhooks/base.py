"""
Base Webhook Verifier Interface

Files that USE this module:
- paygate.adapters.webhooks.hmac_verifier (HmacWebhookVerifier)
- paygate.adapters.webhooks.paypal_verifier (PayPalWebhookVerifier)
- paygate.application.orchestrator (verifier per provider)

Files that this module USES:
- paygate.domain.models (WebhookEvidence)
"""
from abc import ABC, abstractmethod

from paygate.domain.models import WebhookEvidence


class WebhookVerifier(ABC):
    @abstractmethod
    def verify_evidence(self, evidence: WebhookEvidence) -> bool:
        """
        Whether the webhook genuinely came from the provider.

        Implementations never raise: any failure means False.
        """
        raise NotImplementedError
