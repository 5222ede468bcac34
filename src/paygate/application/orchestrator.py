"""
Payment Orchestrator - The facade the rest of the store talks to

Routes, controllers and jobs call this class instead of the gateways. It
dispatches on the order's payment method, verifies webhooks before anything
reads them, and hands back Result values: adapter exceptions stop here, so
callers see fail-closed outcomes (unverified webhook, unconfigured gateway,
unavailable rate) in the return value.

Files that USE this module:
- paygate.app (builds the orchestrator from shared services)
- tests.test_orchestrator

Files that this module USES:
- paygate.adapters.gateways (PayPalGateway, BitcoinGateway, MoneroGateway)
- paygate.adapters.webhooks.base (WebhookVerifier)
- paygate.application.reconciler (PaymentStatusReconciler)
- paygate.application.completion (OrderCompletionCoordinator)
- paygate.domain.results (Result)
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from paygate.adapters.gateways.bitcoin import BitcoinGateway
from paygate.adapters.gateways.monero import MoneroGateway
from paygate.adapters.gateways.paypal import PayPalGateway
from paygate.adapters.webhooks.base import WebhookVerifier
from paygate.application.completion import OrderCompletionCoordinator
from paygate.application.conversion import to_decimal
from paygate.application.reconciler import PaymentStatusReconciler
from paygate.domain.errors import (
    AuthenticityFailure,
    BusinessStateError,
    PaymentError,
    ValidationError,
)
from paygate.domain.models import (
    Order,
    OrderCompletionOutcome,
    PaymentIntent,
    Provider,
    ReconciledStatus,
    WebhookEvidence,
)
from paygate.domain.results import Result
from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import log_payment_event

log = logging.getLogger(__name__)

SIGNATURE_HEADERS = {
    Provider.MONERO: "X-GloBee-Signature",
    Provider.BITCOIN: "X-Blockonomics-Signature",
}


def evidence_from_request(
    provider: Union[Provider, str],
    raw_body: Union[bytes, str],
    headers: Mapping[str, str],
) -> WebhookEvidence:
    """Package an inbound webhook with the signature header its provider uses."""
    return WebhookEvidence.from_request(raw_body, headers, SIGNATURE_HEADERS.get(Provider(provider)))


class PaymentOrchestrator:
    def __init__(
        self,
        paypal: PayPalGateway,
        bitcoin: BitcoinGateway,
        monero: MoneroGateway,
        reconciler: PaymentStatusReconciler,
        coordinator: OrderCompletionCoordinator,
        verifiers: Mapping[Provider, WebhookVerifier],
        clock: Clock = utcnow,
    ):
        self.paypal = paypal
        self.bitcoin = bitcoin
        self.monero = monero
        self.reconciler = reconciler
        self.coordinator = coordinator
        self.verifiers: Dict[Provider, WebhookVerifier] = dict(verifiers)
        self._clock = clock

    # --- Payment creation --------------------------------------------------

    def create_payment_for_order(self, order: Order) -> Result[PaymentIntent]:
        """
        Open a payment with the provider the customer chose.

        Returns:
            Result holding a pending PaymentIntent, or the PaymentError that
            stopped it (configuration, rate, provider or validation)
        """
        try:
            method = Provider(order.payment_method)
        except ValueError:
            return Result.fail(ValidationError(f"Unsupported payment method: {order.payment_method!r}"))

        try:
            if method is Provider.PAYPAL:
                intent = self._create_paypal(order)
            elif method is Provider.BITCOIN:
                intent = self._create_bitcoin(order)
            else:
                intent = self._create_monero(order)
        except PaymentError as e:
            log.error(
                "Payment creation failed: order=%s provider=%s error=%s retryable=%s",
                order.order_id, method.value, e, e.retryable,
            )
            return Result.fail(e)

        log_payment_event(
            "payment_intent_created",
            order_id=order.order_id,
            provider=method.value,
            reference=intent.provider_reference,
            amount=intent.amount_requested,
            currency=intent.currency,
        )
        return Result.ok(intent)

    def _create_paypal(self, order: Order) -> PaymentIntent:
        data = self.paypal.create_order(order.total_amount, order.currency, reference_id=order.order_id)
        paypal_order_id = data.get("id")
        if not paypal_order_id:
            raise ValidationError("PayPal order response missing 'id'")
        return PaymentIntent(
            provider=Provider.PAYPAL,
            provider_reference=str(paypal_order_id),
            order_id=order.order_id,
            amount_requested=to_decimal(order.total_amount),
            currency=order.currency.upper(),
            created_at=self._clock(),
            payment_url=PayPalGateway.extract_approval_url(data),
        )

    def _create_bitcoin(self, order: Order) -> PaymentIntent:
        payment = self.bitcoin.create_payment(order.total_amount)
        return PaymentIntent(
            provider=Provider.BITCOIN,
            provider_reference=payment.address,
            order_id=order.order_id,
            amount_requested=payment.btc_amount,
            currency=self.bitcoin.pair.symbol,
            created_at=self._clock(),
            expires_at=payment.expires_at,
            address=payment.address,
            rate_used=payment.rate_used,
            rate_timestamp=payment.rate_timestamp,
        )

    def _create_monero(self, order: Order) -> PaymentIntent:
        request, conversion = self.monero.create_payment_for_fiat(
            order.order_id, order.total_amount, order.customer_email
        )
        created_at = self._clock()
        return PaymentIntent(
            provider=Provider.MONERO,
            provider_reference=request.payment_id,
            order_id=order.order_id,
            amount_requested=request.amount or conversion.crypto_amount,
            currency=self.monero.pair.symbol,
            created_at=created_at,
            expires_at=self.monero.expiration_time(created_at),
            address=request.address,
            payment_url=request.payment_url,
            rate_used=conversion.rate,
            rate_timestamp=conversion.rate_timestamp,
        )

    # --- Webhooks ------------------------------------------------------------

    def reconcile_incoming_event(
        self,
        provider: Union[Provider, str],
        evidence: WebhookEvidence,
        intent: Optional[PaymentIntent] = None,
    ) -> Result[ReconciledStatus]:
        """
        Verify a webhook, then map it onto the canonical lifecycle.

        An unverified event is never decoded or reconciled; the result is a
        failed Result carrying AuthenticityFailure.
        """
        provider = Provider(provider)
        verifier = self.verifiers.get(provider)
        if verifier is None or not verifier.verify_evidence(evidence):
            log_payment_event("webhook_rejected", level=logging.WARNING, provider=provider.value)
            return Result.fail(AuthenticityFailure(f"{provider.value} webhook failed verification"))

        try:
            payload = evidence.json()
        except ValidationError as e:
            log.warning("Verified %s webhook has an unreadable body: %s", provider.value, e)
            return Result.fail(e)

        reconciled = self.reconciler.reconcile(provider, payload, intent)
        log_payment_event(
            "webhook_reconciled",
            provider=provider.value,
            reference=reconciled.provider_reference,
            order_id=reconciled.order_id or (intent.order_id if intent else None),
            status=reconciled.status.value,
            raw_status=reconciled.raw_status,
            confirmations=reconciled.confirmations,
            requires_action=reconciled.requires_action or None,
        )
        return Result.ok(reconciled)

    # --- Post-confirmation ---------------------------------------------------

    def on_payment_confirmed(self, order: Order) -> OrderCompletionOutcome:
        """Run completion steps for a confirmed order. Never raises."""
        intent = order.payment_intent
        if intent is not None and not intent.status.is_success:
            log.warning(
                "Completing order %s whose payment intent is %s",
                order.order_id, intent.status.value,
            )
        outcome = self.coordinator.complete(order)
        log_payment_event(
            "order_completed",
            order_id=order.order_id,
            steps=len(outcome.completed_steps),
            failed_steps=len(outcome.errors) or None,
        )
        return outcome

    # --- PayPal money movement -----------------------------------------------

    def capture(self, intent: PaymentIntent) -> Result[Dict[str, Any]]:
        """
        Capture an approved PayPal order.

        The idempotency key is derived from the PayPal order id, so a retried
        capture of the same order cannot charge twice.
        """
        if Provider(intent.provider) is not Provider.PAYPAL:
            return Result.fail(ValidationError(f"Cannot capture a {intent.provider.value} payment"))

        try:
            data = self.paypal.capture_order(
                intent.provider_reference,
                idempotency_key=f"capture-{intent.provider_reference}",
            )
        except PaymentError as e:
            log.error("Capture failed for PayPal order %s: %s", intent.provider_reference, e)
            return Result.fail(e)

        status = str(data.get("status") or "")
        if status != "COMPLETED":
            log.warning("PayPal order %s captured with status %s", intent.provider_reference, status or "<none>")
            return Result.fail(BusinessStateError(
                f"PayPal capture for {intent.provider_reference} returned status {status or 'unknown'}",
                status=status,
            ))
        return Result.ok(data)

    def refund(
        self,
        capture_id: str,
        amount: Any = None,
        currency: str = "GBP",
        request_id: Optional[str] = None,
    ) -> Result[Dict[str, Any]]:
        """
        Refund a PayPal capture, fully (no amount) or partially.

        ``request_id`` is the caller's own refund transaction id and is sent as
        the idempotency key, so retrying that request never refunds twice.
        Without one, a full refund uses ``refund-<capture_id>`` and a partial
        refund goes out with no key: two equal partial refunds are two refunds.
        """
        if not capture_id:
            return Result.fail(ValidationError("Refund needs a capture id"))
        if request_id:
            key: Optional[str] = request_id
        elif amount is None:
            key = f"refund-{capture_id}"
        else:
            key = None
        try:
            data = self.paypal.refund_payment(capture_id, amount, currency, idempotency_key=key)
        except PaymentError as e:
            log.error("Refund failed for PayPal capture %s: %s", capture_id, e)
            return Result.fail(e)
        return Result.ok(data)

