"""
Payment Status Reconciler - Provider payloads → CanonicalPaymentStatus

Each provider reports progress in its own vocabulary. The functions here map
a webhook body (or a polled status rendered as one) onto the canonical
lifecycle. They are pure and total: every input yields a ReconciledStatus,
missing or malformed counters read as zero, and anything unrecognised is
reported as non-success with requires_action set.

Files that USE this module:
- paygate.application.orchestrator (reconcile_incoming_event)
- paygate.app (constructs the reconciler with per-asset thresholds)
- tests.test_reconciler

Files that this module USES:
- paygate.application.conversion (satoshis_to_btc, is_sufficient)
- paygate.domain.models (CanonicalPaymentStatus, ReconciledStatus, PaymentIntent)
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from paygate.application.conversion import is_sufficient, satoshis_to_btc
from paygate.domain.models import (
    ZERO,
    CanonicalPaymentStatus,
    PaymentIntent,
    Provider,
    ReconciledStatus,
    coerce_decimal,
    coerce_int,
)
from paygate.shared.clock import Clock, utcnow

log = logging.getLogger(__name__)

MONERO_REQUIRED_CONFIRMATIONS = 10
BITCOIN_REQUIRED_CONFIRMATIONS = 2

MONERO_PENDING_STATUSES = frozenset({"new", "pending", "unpaid"})
MONERO_FAILED_STATUSES = frozenset({"cancelled", "expired"})

PAYPAL_EVENT_STATUS = {
    "PAYMENT.CAPTURE.COMPLETED": CanonicalPaymentStatus.CONFIRMED,
    "PAYMENT.CAPTURE.DENIED": CanonicalPaymentStatus.FAILED,
    "PAYMENT.CAPTURE.REFUNDED": CanonicalPaymentStatus.FAILED,
    "CHECKOUT.ORDER.VOIDED": CanonicalPaymentStatus.FAILED,
    "CHECKOUT.ORDER.APPROVED": CanonicalPaymentStatus.PENDING,
    "PAYMENT.CAPTURE.PENDING": CanonicalPaymentStatus.PENDING,
}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts / lists, returning None at the first missing step."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, Mapping):
            return None
        current = current[step] if isinstance(step, int) else current.get(step)
    return current


def reconcile_monero(
    payload: Mapping[str, Any],
    required_confirmations: int = MONERO_REQUIRED_CONFIRMATIONS,
) -> ReconciledStatus:
    """
    Map a GloBee IPN / status body onto the canonical lifecycle.

    paid + enough confirmations -> confirmed; paid + fewer -> partially_confirmed;
    underpaid -> underpaid; cancelled / expired -> failed; new / pending /
    unpaid -> pending; anything else -> pending with requires_action.
    """
    if not isinstance(payload, Mapping):
        payload = {}
    raw_status = _text(payload.get("status")) or ""
    status_key = raw_status.lower()
    confirmations = coerce_int(payload.get("confirmations"))
    fully_confirmed = confirmations >= required_confirmations

    requires_action = False
    if status_key == "paid":
        status = CanonicalPaymentStatus.CONFIRMED if fully_confirmed else CanonicalPaymentStatus.PARTIALLY_CONFIRMED
    elif status_key == "underpaid":
        status = CanonicalPaymentStatus.UNDERPAID
        requires_action = True
    elif status_key in MONERO_FAILED_STATUSES:
        status = CanonicalPaymentStatus.FAILED
        requires_action = True
    elif status_key in MONERO_PENDING_STATUSES:
        status = CanonicalPaymentStatus.PENDING
    else:
        log.warning("Unrecognised Monero payment status %r; flagging for review", raw_status)
        status = CanonicalPaymentStatus.PENDING
        requires_action = True

    total = payload.get("total_amount", payload.get("total"))
    return ReconciledStatus(
        provider=Provider.MONERO,
        status=status,
        raw_status=raw_status,
        provider_reference=_text(payload.get("id")),
        order_id=_text(payload.get("order_id")),
        confirmations=confirmations,
        required_confirmations=required_confirmations,
        amount_received=coerce_decimal(payload.get("paid_amount")),
        amount_expected=coerce_decimal(total) if total is not None else None,
        transaction_hash=_text(payload.get("transaction_hash")),
        is_fully_confirmed=fully_confirmed and status is CanonicalPaymentStatus.CONFIRMED,
        requires_action=requires_action,
    )


def reconcile_bitcoin(
    payload: Mapping[str, Any],
    intent: Optional[PaymentIntent],
    now: datetime,
    required_confirmations: int = BITCOIN_REQUIRED_CONFIRMATIONS,
    tolerance_percent: Any = 1,
) -> ReconciledStatus:
    """
    Map a Blockonomics callback (addr, value in satoshis, txid, confirmations).

    Checks run in order: expired -> failed; nothing received -> pending;
    short of the expected amount -> underpaid; enough confirmations ->
    confirmed; otherwise partially_confirmed. Without an intent there is no
    expected amount or expiry to judge against, so the result is pending
    with requires_action.
    """
    if not isinstance(payload, Mapping):
        payload = {}
    address = _text(payload.get("addr"))
    txid = _text(payload.get("txid"))
    confirmations = coerce_int(payload.get("confirmations"))
    received = satoshis_to_btc(coerce_int(payload.get("value")))

    def result(status: CanonicalPaymentStatus, raw: str, requires_action: bool = False) -> ReconciledStatus:
        return ReconciledStatus(
            provider=Provider.BITCOIN,
            status=status,
            raw_status=raw,
            provider_reference=address,
            order_id=intent.order_id if intent else None,
            confirmations=confirmations,
            required_confirmations=required_confirmations,
            amount_received=received,
            amount_expected=intent.amount_requested if intent else None,
            transaction_hash=txid,
            is_fully_confirmed=status is CanonicalPaymentStatus.CONFIRMED,
            requires_action=requires_action,
        )

    if intent is None:
        log.warning("Bitcoin callback for %s has no matching payment intent", address)
        return result(CanonicalPaymentStatus.PENDING, "unmatched", requires_action=True)

    if intent.expires_at is not None and now > intent.expires_at:
        return result(CanonicalPaymentStatus.FAILED, "expired", requires_action=True)
    if received <= ZERO:
        return result(CanonicalPaymentStatus.PENDING, "awaiting_payment")
    if not is_sufficient(received, intent.amount_requested, tolerance_percent):
        return result(CanonicalPaymentStatus.UNDERPAID, "underpaid", requires_action=True)
    if confirmations >= required_confirmations:
        return result(CanonicalPaymentStatus.CONFIRMED, "confirmed")
    return result(CanonicalPaymentStatus.PARTIALLY_CONFIRMED, "awaiting_confirmation")


def reconcile_paypal(event: Mapping[str, Any]) -> ReconciledStatus:
    """
    Map a PayPal webhook event by its event_type.

    The PayPal order id comes from resource.supplementary_data.related_ids.order_id
    (capture events) or resource.id (order events).
    """
    if not isinstance(event, Mapping):
        event = {}
    event_type = _text(event.get("event_type")) or ""
    resource = event.get("resource") if isinstance(event.get("resource"), Mapping) else {}

    status = PAYPAL_EVENT_STATUS.get(event_type)
    if status is None:
        log.warning("Unhandled PayPal webhook event %r; flagging for review", event_type)
        status = CanonicalPaymentStatus.PENDING
        requires_action = True
    else:
        requires_action = status is CanonicalPaymentStatus.FAILED

    reference = _text(_dig(resource, "supplementary_data", "related_ids", "order_id")) or _text(resource.get("id"))
    order_id = _text(resource.get("custom_id")) or _text(_dig(resource, "purchase_units", 0, "reference_id"))
    amount = _dig(resource, "amount", "value")
    if amount is None:
        amount = _dig(resource, "purchase_units", 0, "amount", "value")

    return ReconciledStatus(
        provider=Provider.PAYPAL,
        status=status,
        raw_status=event_type,
        provider_reference=reference,
        order_id=order_id,
        amount_received=coerce_decimal(amount) if status is CanonicalPaymentStatus.CONFIRMED else ZERO,
        transaction_hash=_text(resource.get("id")),
        is_fully_confirmed=status is CanonicalPaymentStatus.CONFIRMED,
        requires_action=requires_action,
    )


class PaymentStatusReconciler:
    """Dispatches provider payloads to the matching reconcile_* function."""

    def __init__(
        self,
        monero_required_confirmations: int = MONERO_REQUIRED_CONFIRMATIONS,
        bitcoin_required_confirmations: int = BITCOIN_REQUIRED_CONFIRMATIONS,
        bitcoin_tolerance_percent: Any = 1,
        clock: Clock = utcnow,
    ):
        self.monero_required_confirmations = monero_required_confirmations
        self.bitcoin_required_confirmations = bitcoin_required_confirmations
        self.bitcoin_tolerance_percent = bitcoin_tolerance_percent
        self._clock = clock

    def reconcile(
        self,
        provider: Provider,
        payload: Mapping[str, Any],
        intent: Optional[PaymentIntent] = None,
    ) -> ReconciledStatus:
        provider = Provider(provider)
        if provider is Provider.MONERO:
            reconciled = reconcile_monero(payload, self.monero_required_confirmations)
        elif provider is Provider.BITCOIN:
            reconciled = reconcile_bitcoin(
                payload,
                intent,
                self._clock(),
                self.bitcoin_required_confirmations,
                self.bitcoin_tolerance_percent,
            )
        else:
            reconciled = reconcile_paypal(payload)

        log.info(
            "Reconciled %s payment %s: %s -> %s (confirmations=%d, requires_action=%s)",
            provider.value, reconciled.provider_reference, reconciled.raw_status or "<none>",
            reconciled.status.value, reconciled.confirmations, reconciled.requires_action,
        )
        return reconciled

    @staticmethod
    def apply_transition(intent: PaymentIntent, reconciled: ReconciledStatus) -> PaymentIntent:
        """
        Return ``intent`` advanced to the reconciled status.

        A terminal intent is returned unchanged, as is one the reconciled
        status may not move it to (partially_confirmed back to pending).
        """
        if not intent.status.can_transition(reconciled.status):
            log.warning(
                "Ignoring %s -> %s for %s payment %s",
                intent.status.value, reconciled.status.value, intent.provider.value, intent.provider_reference,
            )
            return intent
        return dataclasses.replace(
            intent,
            status=reconciled.status,
            confirmations=max(intent.confirmations, reconciled.confirmations),
            amount_received=reconciled.amount_received or intent.amount_received,
        )
