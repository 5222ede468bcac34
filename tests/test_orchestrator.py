# tests/test_orchestrator.py
"""
Payment Orchestrator Tests - Facade dispatch, webhook gatekeeping, captures and refunds

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- paygate.application.orchestrator (PaymentOrchestrator, evidence_from_request)
- paygate.domain.results (Result)
- unittest.mock (Mock gateways and collaborators)
"""
import json
import logging
from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from paygate.adapters.webhooks import HmacWebhookVerifier, compute_signature
from paygate.application.completion import OrderCompletionCoordinator
from paygate.application.orchestrator import PaymentOrchestrator, evidence_from_request
from paygate.application.reconciler import PaymentStatusReconciler
from paygate.domain.errors import (
    AddressGenerationFailed,
    AuthenticityFailure,
    BusinessStateError,
    CaptureFailed,
    GatewayNotConfigured,
    RateUnavailable,
    ValidationError,
)
from paygate.domain.models import (
    BTC_GBP,
    XMR_GBP,
    BitcoinPayment,
    CanonicalPaymentStatus,
    Conversion,
    MoneroPaymentRequest,
    Order,
    PaymentIntent,
    Provider,
)
from paygate.domain.results import Result

GLOBEE_SECRET = "globee-webhook-secret"
BLOCKONOMICS_SECRET = "blockonomics-callback-secret"


def _order(method=Provider.PAYPAL, total="49.99", intent=None):
    return Order(
        order_id="order-42",
        user_id="user-7",
        total_amount=Decimal(total),
        payment_method=method,
        customer_email="buyer@example.com",
        payment_intent=intent,
    )


@pytest.fixture
def paypal():
    return Mock()


@pytest.fixture
def bitcoin():
    gateway = Mock()
    gateway.pair = BTC_GBP
    return gateway


@pytest.fixture
def monero():
    gateway = Mock()
    gateway.pair = XMR_GBP
    return gateway


@pytest.fixture
def paypal_verifier():
    verifier = Mock()
    verifier.verify_evidence.return_value = True
    return verifier


@pytest.fixture
def coordinator():
    return Mock(spec=OrderCompletionCoordinator)


@pytest.fixture
def orchestrator(paypal, bitcoin, monero, paypal_verifier, coordinator, clock):
    return PaymentOrchestrator(
        paypal,
        bitcoin,
        monero,
        PaymentStatusReconciler(clock=clock),
        coordinator,
        verifiers={
            Provider.PAYPAL: paypal_verifier,
            Provider.MONERO: HmacWebhookVerifier(GLOBEE_SECRET, provider="GloBee"),
            Provider.BITCOIN: HmacWebhookVerifier(BLOCKONOMICS_SECRET, provider="Blockonomics"),
        },
        clock=clock,
    )


class TestResult:
    def test_ok_and_fail(self):
        assert Result.ok(5).is_ok is True
        assert Result.ok(5).unwrap() == 5
        failed = Result.fail(RateUnavailable("no rate"))
        assert failed.is_ok is False
        assert failed.unwrap_or(0) == 0
        with pytest.raises(RateUnavailable):
            failed.unwrap()

    def test_map(self):
        assert Result.ok(2).map(lambda v: v * 3).unwrap() == 6
        error = ValidationError("bad")
        assert Result.fail(error).map(lambda v: v * 3).error is error


class TestCreatePayment:
    def test_paypal(self, orchestrator, paypal, clock):
        paypal.create_order.return_value = {
            "id": "5O190127TN364715T",
            "status": "CREATED",
            "links": [{"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O19"}],
        }

        result = orchestrator.create_payment_for_order(_order())

        assert result.is_ok
        intent = result.value
        assert intent.provider is Provider.PAYPAL
        assert intent.provider_reference == "5O190127TN364715T"
        assert intent.amount_requested == Decimal("49.99")
        assert intent.currency == "GBP"
        assert intent.payment_url.startswith("https://www.sandbox.paypal.com")
        assert intent.status is CanonicalPaymentStatus.PENDING
        paypal.create_order.assert_called_once_with(Decimal("49.99"), "GBP", reference_id="order-42")

    def test_paypal_response_without_id(self, orchestrator, paypal):
        paypal.create_order.return_value = {"status": "CREATED"}

        result = orchestrator.create_payment_for_order(_order())

        assert isinstance(result.error, ValidationError)

    def test_bitcoin(self, orchestrator, bitcoin, clock):
        bitcoin.create_payment.return_value = BitcoinPayment(
            address="bc1qaddress",
            btc_amount=Decimal("0.01333320"),
            fiat_amount=Decimal("333.33"),
            rate_used=Decimal("25000"),
            rate_timestamp=clock(),
            expires_at=clock() + timedelta(hours=24),
        )

        intent = orchestrator.create_payment_for_order(_order(Provider.BITCOIN, "333.33")).unwrap()

        assert intent.provider_reference == "bc1qaddress"
        assert intent.address == "bc1qaddress"
        assert intent.amount_requested == Decimal("0.01333320")
        assert intent.currency == "BTC"
        assert intent.rate_used == Decimal("25000")
        assert intent.expires_at == clock() + timedelta(hours=24)

    def test_monero(self, orchestrator, monero, clock):
        conversion = Conversion(
            fiat_amount=Decimal("333.33"),
            crypto_amount=Decimal("2.222200000000"),
            rate=Decimal("150"),
            rate_timestamp=clock(),
            valid_until=clock() + timedelta(minutes=15),
            pair=XMR_GBP,
        )
        request = MoneroPaymentRequest(
            payment_id="pr_123",
            address="44AFFq5k",
            amount=Decimal("2.2222"),
            currency="XMR",
            payment_url="https://globee.com/payment/pr_123",
        )
        monero.create_payment_for_fiat.return_value = (request, conversion)
        monero.expiration_time.return_value = clock() + timedelta(hours=24)

        intent = orchestrator.create_payment_for_order(_order(Provider.MONERO, "333.33")).unwrap()

        monero.create_payment_for_fiat.assert_called_once_with("order-42", Decimal("333.33"), "buyer@example.com")
        assert intent.provider_reference == "pr_123"
        assert intent.amount_requested == Decimal("2.2222")
        assert intent.currency == "XMR"
        assert intent.rate_used == Decimal("150")
        assert intent.expires_at == clock() + timedelta(hours=24)

    @pytest.mark.parametrize("error", [
        GatewayNotConfigured("GLOBEE_API_KEY"),
        RateUnavailable("Exchange rate unavailable"),
    ])
    def test_monero_failures_become_results(self, orchestrator, monero, error):
        monero.create_payment_for_fiat.side_effect = error

        result = orchestrator.create_payment_for_order(_order(Provider.MONERO))

        assert result.is_ok is False
        assert result.error is error

    def test_unconfigured_bitcoin_is_not_retryable(self, orchestrator, bitcoin):
        bitcoin.create_payment.side_effect = AddressGenerationFailed("no key", retryable=False)

        result = orchestrator.create_payment_for_order(_order(Provider.BITCOIN))

        assert isinstance(result.error, AddressGenerationFailed)
        assert result.error.retryable is False

    def test_unsupported_method(self, orchestrator, paypal, bitcoin, monero):
        result = orchestrator.create_payment_for_order(_order("cash"))

        assert isinstance(result.error, ValidationError)
        paypal.create_order.assert_not_called()
        bitcoin.create_payment.assert_not_called()
        monero.create_payment_for_fiat.assert_not_called()


class TestReconcileIncomingEvent:
    def test_signed_monero_webhook(self, orchestrator):
        body = json.dumps({"id": "pr_123", "status": "paid", "confirmations": 12}).encode()
        evidence = evidence_from_request(
            "monero", body, {"X-GloBee-Signature": compute_signature(GLOBEE_SECRET, body)}
        )

        result = orchestrator.reconcile_incoming_event(Provider.MONERO, evidence)

        assert result.is_ok
        assert result.value.status is CanonicalPaymentStatus.CONFIRMED

    def test_forged_monero_webhook_is_not_reconciled(self, orchestrator, caplog):
        body = json.dumps({"id": "pr_123", "status": "paid", "confirmations": 12}).encode()
        evidence = evidence_from_request("monero", body, {"X-GloBee-Signature": "0" * 64})

        with caplog.at_level(logging.WARNING):
            result = orchestrator.reconcile_incoming_event("monero", evidence)

        assert isinstance(result.error, AuthenticityFailure)
        assert result.value is None
        assert "webhook_rejected" in caplog.text

    def test_signed_bitcoin_callback(self, orchestrator, clock):
        intent = PaymentIntent(
            provider=Provider.BITCOIN,
            provider_reference="bc1qaddress",
            order_id="order-42",
            amount_requested=Decimal("0.01333320"),
            currency="BTC",
            created_at=clock(),
            expires_at=clock() + timedelta(hours=24),
        )
        body = json.dumps({"addr": "bc1qaddress", "value": 1333320, "txid": "a1b2", "confirmations": 1}).encode()
        evidence = evidence_from_request(
            Provider.BITCOIN, body, {"X-Blockonomics-Signature": compute_signature(BLOCKONOMICS_SECRET, body)}
        )

        result = orchestrator.reconcile_incoming_event(Provider.BITCOIN, evidence, intent)

        assert result.is_ok
        assert result.value.order_id == "order-42"
        assert result.value.status is CanonicalPaymentStatus.PARTIALLY_CONFIRMED
        assert result.value.amount_received == Decimal("0.01333320")

    def test_unsigned_bitcoin_callback(self, orchestrator):
        evidence = evidence_from_request(Provider.BITCOIN, b'{"addr": "bc1qaddress"}', {})

        result = orchestrator.reconcile_incoming_event(Provider.BITCOIN, evidence)

        assert isinstance(result.error, AuthenticityFailure)

    def test_paypal_webhook_delegates_to_verifier(self, orchestrator, paypal_verifier):
        body = json.dumps({
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {"id": "3C679366HH908993F", "amount": {"value": "49.99"}, "custom_id": "order-42"},
        })
        evidence = evidence_from_request(Provider.PAYPAL, body, {"PAYPAL-TRANSMISSION-ID": "69cd13f0"})

        result = orchestrator.reconcile_incoming_event(Provider.PAYPAL, evidence)

        paypal_verifier.verify_evidence.assert_called_once_with(evidence)
        assert result.value.status is CanonicalPaymentStatus.CONFIRMED
        assert result.value.amount_received == Decimal("49.99")

    def test_rejected_paypal_webhook(self, orchestrator, paypal_verifier):
        paypal_verifier.verify_evidence.return_value = False
        evidence = evidence_from_request(Provider.PAYPAL, b'{"event_type": "PAYMENT.CAPTURE.COMPLETED"}', {})

        result = orchestrator.reconcile_incoming_event(Provider.PAYPAL, evidence)

        assert isinstance(result.error, AuthenticityFailure)

    def test_verified_but_unreadable_body(self, orchestrator, paypal_verifier):
        evidence = evidence_from_request(Provider.PAYPAL, b"[1, 2, 3]", {})

        result = orchestrator.reconcile_incoming_event(Provider.PAYPAL, evidence)

        assert isinstance(result.error, ValidationError)

    def test_provider_without_verifier(self, paypal, bitcoin, monero, coordinator, clock):
        orchestrator = PaymentOrchestrator(
            paypal, bitcoin, monero, PaymentStatusReconciler(clock=clock), coordinator, verifiers={}, clock=clock
        )
        evidence = evidence_from_request(Provider.MONERO, b'{"status": "paid"}', {})

        assert isinstance(orchestrator.reconcile_incoming_event(Provider.MONERO, evidence).error, AuthenticityFailure)


class TestOnPaymentConfirmed:
    def test_runs_completion(self, orchestrator, coordinator):
        order = _order()
        coordinator.complete.return_value = Mock(completed_steps=["referral_qualification"], errors=[])

        outcome = orchestrator.on_payment_confirmed(order)

        coordinator.complete.assert_called_once_with(order)
        assert outcome.completed_steps == ["referral_qualification"]

    def test_step_failure_does_not_raise(self, paypal, bitcoin, monero, clock):
        engine = Mock()
        engine.process_referral_qualification.side_effect = RuntimeError("boom")
        orchestrator = PaymentOrchestrator(
            paypal, bitcoin, monero, PaymentStatusReconciler(clock=clock),
            OrderCompletionCoordinator(engine), verifiers={}, clock=clock,
        )

        outcome = orchestrator.on_payment_confirmed(_order())

        assert outcome.succeeded is False
        assert outcome.errors[0].error_type == "RuntimeError"


class TestCaptureAndRefund:
    def _intent(self, clock, provider=Provider.PAYPAL):
        return PaymentIntent(
            provider=provider,
            provider_reference="5O190127TN364715T",
            order_id="order-42",
            amount_requested=Decimal("49.99"),
            currency="GBP",
            created_at=clock(),
        )

    def test_capture_uses_order_derived_idempotency_key(self, orchestrator, paypal, clock):
        paypal.capture_order.return_value = {"id": "5O190127TN364715T", "status": "COMPLETED"}

        first = orchestrator.capture(self._intent(clock))
        orchestrator.capture(self._intent(clock))

        assert first.is_ok
        keys = [c.kwargs["idempotency_key"] for c in paypal.capture_order.call_args_list]
        assert keys == ["capture-5O190127TN364715T", "capture-5O190127TN364715T"]

    def test_capture_not_completed(self, orchestrator, paypal, clock):
        paypal.capture_order.return_value = {"id": "5O190127TN364715T", "status": "PENDING"}

        result = orchestrator.capture(self._intent(clock))

        assert isinstance(result.error, BusinessStateError)
        assert result.error.status == "PENDING"

    def test_capture_failure(self, orchestrator, paypal, clock):
        paypal.capture_order.side_effect = CaptureFailed("Failed to capture PayPal order: HTTP 422")

        result = orchestrator.capture(self._intent(clock))

        assert isinstance(result.error, CaptureFailed)
        assert result.error.retryable is True

    def test_capture_rejects_crypto_intent(self, orchestrator, paypal, clock):
        result = orchestrator.capture(self._intent(clock, Provider.BITCOIN))

        assert isinstance(result.error, ValidationError)
        paypal.capture_order.assert_not_called()

    def test_full_refund(self, orchestrator, paypal):
        paypal.refund_payment.return_value = {"id": "1JU08902781691411", "status": "COMPLETED"}

        result = orchestrator.refund("3C679366HH908993F")

        assert result.unwrap()["status"] == "COMPLETED"
        paypal.refund_payment.assert_called_once_with(
            "3C679366HH908993F", None, "GBP", idempotency_key="refund-3C679366HH908993F"
        )

    def test_equal_partial_refunds_use_their_own_request_ids(self, orchestrator, paypal):
        paypal.refund_payment.return_value = {"id": "1JU08902781691411", "status": "COMPLETED"}

        orchestrator.refund("3C679366HH908993F", Decimal("5"), request_id="rma-1001")
        orchestrator.refund("3C679366HH908993F", Decimal("5"), request_id="rma-1002")

        keys = [c.kwargs["idempotency_key"] for c in paypal.refund_payment.call_args_list]
        assert keys == ["rma-1001", "rma-1002"]
        assert paypal.refund_payment.call_args.args == ("3C679366HH908993F", Decimal("5"), "GBP")

    def test_partial_refund_without_request_id_sends_no_key(self, orchestrator, paypal):
        paypal.refund_payment.return_value = {"id": "1JU08902781691411", "status": "COMPLETED"}

        orchestrator.refund("3C679366HH908993F", Decimal("5"))
        orchestrator.refund("3C679366HH908993F", Decimal("5"))

        assert paypal.refund_payment.call_count == 2
        assert all(c.kwargs["idempotency_key"] is None for c in paypal.refund_payment.call_args_list)

    def test_full_refund_with_request_id(self, orchestrator, paypal):
        paypal.refund_payment.return_value = {"id": "1JU08902781691411", "status": "COMPLETED"}

        orchestrator.refund("3C679366HH908993F", request_id="rma-2001")

        assert paypal.refund_payment.call_args.kwargs["idempotency_key"] == "rma-2001"

    def test_refund_needs_capture_id(self, orchestrator, paypal):
        assert isinstance(orchestrator.refund("").error, ValidationError)
        paypal.refund_payment.assert_not_called()
