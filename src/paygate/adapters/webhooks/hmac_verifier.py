"""
HMAC Webhook Verifier - Shared-secret signatures (GloBee IPN, Blockonomics callbacks)

The provider signs the raw request body with HMAC-SHA256 and sends the hex
digest in a header, optionally prefixed with ``sha256=``. Verification is
constant-time and fails closed.

Files that USE this module:
- paygate.app (one verifier per shared secret)
- paygate.application.orchestrator (verify before reconciling)
- tests.test_webhooks

Files that this module USES:
- paygate.adapters.webhooks.base (WebhookVerifier)
- paygate.domain.models (WebhookEvidence)
"""
import hashlib
import hmac
import logging
from typing import Optional, Union

from paygate.adapters.webhooks.base import WebhookVerifier
from paygate.domain.models import WebhookEvidence

log = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of ``raw_body`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


class HmacWebhookVerifier(WebhookVerifier):
    def __init__(self, secret: Optional[str], provider: str = "webhook"):
        """
        Args:
            secret: Shared signing secret; a verifier without one rejects everything
            provider: Name used in log records
        """
        self.secret = secret or ""
        self.provider = provider

    def verify(self, raw_body: Union[bytes, str], signature: Optional[str]) -> bool:
        """
        Check ``signature`` against the HMAC of the exact raw body.

        Returns:
            True only for a matching signature; False for a missing secret,
            missing or malformed signature, length mismatch or any error
        """
        try:
            if not self.secret:
                log.error("%s webhook secret not configured; rejecting", self.provider)
                return False
            if not signature:
                log.warning("%s webhook received without signature", self.provider)
                return False

            if isinstance(raw_body, str):
                raw_body = raw_body.encode("utf-8")
            claimed = signature.strip()
            if claimed.startswith(SIGNATURE_PREFIX):
                claimed = claimed[len(SIGNATURE_PREFIX):]

            expected = compute_signature(self.secret, raw_body)
            # Length is public; only equal-length values reach compare_digest
            if len(claimed) != len(expected):
                log.warning("%s webhook signature has wrong length", self.provider)
                return False

            if not hmac.compare_digest(claimed.lower().encode("ascii"), expected.encode("ascii")):
                log.warning("%s webhook signature mismatch", self.provider)
                return False
            return True
        except Exception as e:
            log.error("%s webhook signature verification failed: %s", self.provider, e, exc_info=True)
            return False

    def verify_evidence(self, evidence: WebhookEvidence) -> bool:
        return self.verify(evidence.raw_body, evidence.claimed_signature)
