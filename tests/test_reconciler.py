# tests/test_reconciler.py
"""
Payment Status Reconciler Tests - Provider payloads to the canonical lifecycle

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- paygate.application.reconciler (reconcile_* functions, PaymentStatusReconciler)
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from paygate.application.reconciler import (
    PaymentStatusReconciler,
    reconcile_bitcoin,
    reconcile_monero,
    reconcile_paypal,
)
from paygate.domain.models import CanonicalPaymentStatus as Status
from paygate.domain.models import PaymentIntent, Provider

START = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _bitcoin_intent(amount="0.01333320", expires_in=timedelta(hours=24), status=Status.PENDING):
    return PaymentIntent(
        provider=Provider.BITCOIN,
        provider_reference="bc1qaddress",
        order_id="order-42",
        amount_requested=Decimal(amount),
        currency="BTC",
        created_at=START,
        expires_at=START + expires_in if expires_in is not None else None,
        address="bc1qaddress",
        status=status,
    )


class TestMonero:
    def test_paid_with_enough_confirmations(self):
        result = reconcile_monero({"id": "pr_123", "status": "paid", "confirmations": 12})

        assert result.status is Status.CONFIRMED
        assert result.is_fully_confirmed is True
        assert result.requires_action is False
        assert result.provider_reference == "pr_123"

    def test_paid_below_threshold(self):
        result = reconcile_monero({"id": "pr_123", "status": "paid", "confirmations": 5})

        assert result.status is Status.PARTIALLY_CONFIRMED
        assert result.is_fully_confirmed is False
        assert result.confirmations == 5
        assert result.required_confirmations == 10

    def test_paid_with_zero_confirmations(self):
        assert reconcile_monero({"status": "paid"}).status is Status.PARTIALLY_CONFIRMED

    def test_threshold_is_inclusive(self):
        assert reconcile_monero({"status": "paid", "confirmations": 10}).status is Status.CONFIRMED
        assert reconcile_monero({"status": "paid", "confirmations": 3}, required_confirmations=3).status is Status.CONFIRMED

    @pytest.mark.parametrize("raw, expected, action", [
        ("underpaid", Status.UNDERPAID, True),
        ("cancelled", Status.FAILED, True),
        ("expired", Status.FAILED, True),
        ("new", Status.PENDING, False),
        ("pending", Status.PENDING, False),
        ("unpaid", Status.PENDING, False),
        ("PAID_OUT_SOMEHOW", Status.PENDING, True),
        ("", Status.PENDING, True),
    ])
    def test_status_map(self, raw, expected, action):
        result = reconcile_monero({"status": raw, "confirmations": 20})
        assert result.status is expected
        assert result.requires_action is action

    def test_status_is_case_insensitive(self):
        assert reconcile_monero({"status": "PAID", "confirmations": 10}).status is Status.CONFIRMED

    def test_amounts_and_hash(self):
        result = reconcile_monero({
            "id": "pr_123",
            "order_id": "order-42",
            "status": "paid",
            "confirmations": "11",
            "paid_amount": "2.222222222222",
            "total_amount": "2.222222222222",
            "transaction_hash": "c0ffee",
        })

        assert result.order_id == "order-42"
        assert result.confirmations == 11
        assert result.amount_received == Decimal("2.222222222222")
        assert result.amount_expected == Decimal("2.222222222222")
        assert result.transaction_hash == "c0ffee"

    @pytest.mark.parametrize("payload", [
        {},
        {"status": None, "confirmations": None, "paid_amount": None},
        {"status": "paid", "confirmations": "many", "paid_amount": "lots"},
        {"status": 7, "confirmations": [], "paid_amount": {}},
        None,
    ])
    def test_malformed_payloads_never_raise(self, payload):
        result = reconcile_monero(payload)
        assert result.status in Status
        assert result.confirmations >= 0
        assert result.amount_received >= 0


class TestBitcoin:
    def test_confirmed(self):
        payload = {"addr": "bc1qaddress", "txid": "a1b2", "value": 1333320, "confirmations": 2}

        result = reconcile_bitcoin(payload, _bitcoin_intent(), START)

        assert result.status is Status.CONFIRMED
        assert result.amount_received == Decimal("0.01333320")
        assert result.amount_expected == Decimal("0.01333320")
        assert result.order_id == "order-42"
        assert result.transaction_hash == "a1b2"

    def test_awaiting_confirmation(self):
        payload = {"addr": "bc1qaddress", "value": 1333320, "confirmations": 1}

        result = reconcile_bitcoin(payload, _bitcoin_intent(), START)

        assert result.status is Status.PARTIALLY_CONFIRMED
        assert result.raw_status == "awaiting_confirmation"

    def test_nothing_received(self):
        result = reconcile_bitcoin({"addr": "bc1qaddress", "value": 0}, _bitcoin_intent(), START)
        assert result.status is Status.PENDING
        assert result.requires_action is False

    def test_within_tolerance_counts_as_paid(self):
        # 1% under the expected 0.01 BTC
        payload = {"addr": "bc1qaddress", "value": 990000, "confirmations": 3}
        assert reconcile_bitcoin(payload, _bitcoin_intent("0.01"), START).status is Status.CONFIRMED

    def test_underpaid(self):
        payload = {"addr": "bc1qaddress", "value": 989999, "confirmations": 6}

        result = reconcile_bitcoin(payload, _bitcoin_intent("0.01"), START)

        assert result.status is Status.UNDERPAID
        assert result.requires_action is True

    def test_expiry_is_checked_first(self):
        payload = {"addr": "bc1qaddress", "value": 1333320, "confirmations": 6}

        result = reconcile_bitcoin(payload, _bitcoin_intent(), START + timedelta(hours=25))

        assert result.status is Status.FAILED
        assert result.raw_status == "expired"

    def test_intent_without_expiry(self):
        payload = {"addr": "bc1qaddress", "value": 1333320, "confirmations": 2}
        result = reconcile_bitcoin(payload, _bitcoin_intent(expires_in=None), START + timedelta(days=30))
        assert result.status is Status.CONFIRMED

    def test_unmatched_address(self):
        result = reconcile_bitcoin({"addr": "bc1qunknown", "value": 1333320, "confirmations": 6}, None, START)

        assert result.status is Status.PENDING
        assert result.requires_action is True
        assert result.raw_status == "unmatched"
        assert result.provider_reference == "bc1qunknown"

    def test_malformed_counters(self):
        payload = {"addr": "bc1qaddress", "value": "abc", "confirmations": None}
        result = reconcile_bitcoin(payload, _bitcoin_intent(), START)
        assert result.status is Status.PENDING
        assert result.confirmations == 0


class TestPayPal:
    def _capture_event(self, event_type="PAYMENT.CAPTURE.COMPLETED"):
        return {
            "id": "WH-2WR32451HC0233532-67976317FL4543714",
            "event_type": event_type,
            "resource": {
                "id": "3C679366HH908993F",
                "amount": {"currency_code": "GBP", "value": "49.99"},
                "custom_id": "order-42",
                "supplementary_data": {"related_ids": {"order_id": "5O190127TN364715T"}},
            },
        }

    def test_capture_completed(self):
        result = reconcile_paypal(self._capture_event())

        assert result.status is Status.CONFIRMED
        assert result.provider_reference == "5O190127TN364715T"
        assert result.order_id == "order-42"
        assert result.amount_received == Decimal("49.99")
        assert result.transaction_hash == "3C679366HH908993F"
        assert result.is_fully_confirmed is True

    @pytest.mark.parametrize("event_type", [
        "PAYMENT.CAPTURE.DENIED",
        "PAYMENT.CAPTURE.REFUNDED",
        "CHECKOUT.ORDER.VOIDED",
    ])
    def test_failure_events_require_action(self, event_type):
        result = reconcile_paypal(self._capture_event(event_type))

        assert result.status is Status.FAILED
        assert result.requires_action is True
        assert result.amount_received == Decimal(0)

    def test_pending_capture(self):
        result = reconcile_paypal(self._capture_event("PAYMENT.CAPTURE.PENDING"))
        assert result.status is Status.PENDING
        assert result.requires_action is False

    def test_order_approved_uses_resource_id(self):
        event = {
            "event_type": "CHECKOUT.ORDER.APPROVED",
            "resource": {
                "id": "5O190127TN364715T",
                "purchase_units": [{"reference_id": "order-42", "amount": {"value": "49.99"}}],
            },
        }

        result = reconcile_paypal(event)

        assert result.status is Status.PENDING
        assert result.provider_reference == "5O190127TN364715T"
        assert result.order_id == "order-42"

    def test_unknown_event(self):
        result = reconcile_paypal({"event_type": "BILLING.SUBSCRIPTION.CREATED", "resource": {}})

        assert result.status is Status.PENDING
        assert result.requires_action is True

    def test_empty_event(self):
        result = reconcile_paypal({})
        assert result.status is Status.PENDING
        assert result.provider_reference is None


class TestPaymentStatusReconciler:
    def test_dispatch_by_provider_name(self, clock):
        reconciler = PaymentStatusReconciler(clock=clock)

        assert reconciler.reconcile("monero", {"status": "paid", "confirmations": 12}).status is Status.CONFIRMED
        assert reconciler.reconcile(Provider.PAYPAL, {"event_type": "PAYMENT.CAPTURE.COMPLETED"}).provider is Provider.PAYPAL

    def test_bitcoin_uses_clock_for_expiry(self, clock):
        reconciler = PaymentStatusReconciler(clock=clock)
        payload = {"addr": "bc1qaddress", "value": 1333320, "confirmations": 6}

        assert reconciler.reconcile(Provider.BITCOIN, payload, _bitcoin_intent()).status is Status.CONFIRMED
        clock.advance(hours=25)
        assert reconciler.reconcile(Provider.BITCOIN, payload, _bitcoin_intent()).status is Status.FAILED

    def test_thresholds_are_configurable(self, clock):
        reconciler = PaymentStatusReconciler(monero_required_confirmations=15, clock=clock)
        assert reconciler.reconcile(Provider.MONERO, {"status": "paid", "confirmations": 12}).status is Status.PARTIALLY_CONFIRMED

    def test_unknown_provider(self, clock):
        with pytest.raises(ValueError):
            PaymentStatusReconciler(clock=clock).reconcile("litecoin", {})


class TestApplyTransition:
    def test_advances_pending_intent(self):
        intent = _bitcoin_intent()
        reconciled = reconcile_bitcoin(
            {"addr": "bc1qaddress", "value": 1333320, "confirmations": 1}, intent, START
        )

        updated = PaymentStatusReconciler.apply_transition(intent, reconciled)

        assert updated.status is Status.PARTIALLY_CONFIRMED
        assert updated.confirmations == 1
        assert updated.amount_received == Decimal("0.01333320")
        assert intent.status is Status.PENDING

    def test_terminal_intent_is_unchanged(self):
        intent = _bitcoin_intent(status=Status.CONFIRMED)
        reconciled = reconcile_bitcoin({"addr": "bc1qaddress", "value": 0}, intent, START)

        assert PaymentStatusReconciler.apply_transition(intent, reconciled) is intent

    def test_no_regression_to_pending(self):
        intent = _bitcoin_intent(status=Status.PARTIALLY_CONFIRMED)
        reconciled = reconcile_bitcoin({"addr": "bc1qaddress", "value": 0}, intent, START)

        assert PaymentStatusReconciler.apply_transition(intent, reconciled) is intent

    def test_confirmations_never_decrease(self):
        intent = PaymentIntent(
            provider=Provider.MONERO,
            provider_reference="pr_123",
            order_id="order-42",
            amount_requested=Decimal("2.2"),
            currency="XMR",
            created_at=START,
            confirmations=8,
            status=Status.PARTIALLY_CONFIRMED,
        )
        reconciled = reconcile_monero({"id": "pr_123", "status": "paid", "confirmations": 6})

        assert PaymentStatusReconciler.apply_transition(intent, reconciled).confirmations == 8
