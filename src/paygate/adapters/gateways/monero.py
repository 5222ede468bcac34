"""
Monero Gateway Adapter - GloBee payment requests and status polling

GloBee owns the Monero address and watches the chain; we create a payment
request carrying deterministic callback URLs and later read its status,
either from the IPN webhook or by polling get_payment_status().

Files that USE this module:
- paygate.app (builds the MoneroGateway)
- paygate.application.orchestrator (create_payment_for_fiat)
- tests.test_monero_gateway (unit tests)

Files that this module USES:
- paygate.application.conversion (CurrencyConverter for GBP→XMR)
- paygate.config (API key, URLs, timeouts, policy constants)
- paygate.domain.models (MoneroPaymentRequest, MoneroPaymentStatus)
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import requests

from paygate.application.conversion import CurrencyConverter, format_crypto_amount
from paygate.config import settings
from paygate.domain.errors import GatewayNotConfigured, PaymentRequestFailed, PaymentStatusUnavailable
from paygate.domain.models import (
    XMR_GBP,
    Conversion,
    CurrencyPair,
    MoneroPaymentRequest,
    MoneroPaymentStatus,
)
from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import log_payment_event

log = logging.getLogger(__name__)

# GloBee's "high" speed waits for the full confirmation bar
CONFIRMATION_SPEED = "high"


def _provider_message(resp: Optional[requests.Response]) -> Optional[str]:
    if resp is None:
        return None
    try:
        body = resp.json()
    except ValueError:
        return resp.reason or None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason or None


class MoneroGateway:
    """GloBee client plus the Monero confirmation and expiry policy."""

    def __init__(
        self,
        converter: CurrencyConverter,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        frontend_url: Optional[str] = None,
        backend_url: Optional[str] = None,
        timeout: Optional[int] = None,
        status_timeout: Optional[int] = None,
        required_confirmations: Optional[int] = None,
        payment_window_hours: Optional[int] = None,
        pair: CurrencyPair = XMR_GBP,
        clock: Clock = utcnow,
    ):
        """
        Initialize Monero gateway.

        Args:
            converter: Converter backed by the shared RateCache
            api_key: GloBee API key (defaults to settings.globee_api_key)
            base_url: GloBee API base URL (defaults to settings.globee_api_url)
            frontend_url: Storefront base URL for success/cancel/redirect links
            backend_url: API base URL for the IPN callback
            timeout: Timeout for payment request creation (seconds)
            status_timeout: Timeout for status lookups (seconds)
            required_confirmations: Confirmations before a payment is final (10)
            payment_window_hours: Hours a payment request stays payable (24)
            pair: Currency pair used for conversion
            clock: Callable returning the current UTC datetime
        """
        self.converter = converter
        self.api_key = api_key if api_key is not None else settings.globee_api_key
        self.base_url = (base_url or settings.globee_api_url).rstrip("/")
        self.frontend_url = (frontend_url if frontend_url is not None else settings.frontend_url).rstrip("/")
        self.backend_url = (backend_url if backend_url is not None else settings.backend_url).rstrip("/")
        self.timeout = timeout or settings.globee_timeout_seconds
        self.status_timeout = status_timeout or settings.globee_status_timeout_seconds
        self._required_confirmations = required_confirmations or settings.monero_required_confirmations
        self._payment_window_hours = payment_window_hours or settings.monero_payment_window_hours
        self.pair = pair
        self._clock = clock

    def _require_key(self) -> None:
        if not self.api_key:
            log.error("GloBee API key not configured")
            raise GatewayNotConfigured("GLOBEE_API_KEY", "GloBee API key not configured")

    def callback_urls(self, order_id: str) -> Dict[str, str]:
        """Success, cancel, IPN and redirect URLs for one order; same input, same output."""
        return {
            "success_url": f"{self.frontend_url}/order-confirmation/{order_id}",
            "cancel_url": f"{self.frontend_url}/checkout",
            "ipn_url": f"{self.backend_url}/api/payments/monero/webhook",
            "redirect_url": f"{self.frontend_url}/payment/monero/{order_id}",
        }

    # --- Payment requests --------------------------------------------------

    def create_payment_request(
        self,
        order_id: str,
        amount: Any,
        currency: str = "XMR",
        customer_email: Optional[str] = None,
    ) -> MoneroPaymentRequest:
        """
        Create a GloBee payment request.

        Raises:
            GatewayNotConfigured: if no API key is configured (no I/O)
            PaymentRequestFailed: on transport failure or a provider error
            ValidationError: if the response has no payment address
        """
        self._require_key()

        body: Dict[str, Any] = {
            "total": format_crypto_amount(amount, self.pair.precision),
            "currency": currency,
            "order_id": order_id,
            "customer_email": customer_email,
            "confirmation_speed": CONFIRMATION_SPEED,
        }
        body.update(self.callback_urls(order_id))

        try:
            resp = requests.post(
                f"{self.base_url}/payment-request",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.exceptions.Timeout as e:
            log.error("GloBee payment request timed out after %d seconds (order %s)", self.timeout, order_id)
            raise PaymentRequestFailed("Failed to create Monero payment request: timeout") from e
        except requests.exceptions.HTTPError as e:
            message = _provider_message(e.response)
            status = e.response.status_code if e.response is not None else None
            log.error("GloBee payment request rejected for order %s: HTTP %s %s", order_id, status, message)
            raise PaymentRequestFailed(f"GloBee API error: {message or 'request rejected'}", status_code=status) from e
        except requests.exceptions.RequestException as e:
            log.error("GloBee payment request failed for order %s: %s", order_id, e)
            raise PaymentRequestFailed(f"Failed to create Monero payment request: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            log.error("GloBee payment request returned invalid JSON: %s", e)
            raise PaymentRequestFailed("Failed to create Monero payment request: invalid JSON") from e

        request = MoneroPaymentRequest.from_api(data if isinstance(data, dict) else {})
        log_payment_event(
            "monero_payment_request_created",
            order_id=order_id,
            payment_id=request.payment_id,
            amount=request.amount,
        )
        return request

    def create_payment_for_fiat(
        self,
        order_id: str,
        fiat_amount: Any,
        customer_email: Optional[str] = None,
    ) -> Tuple[MoneroPaymentRequest, Conversion]:
        """
        Convert a fiat total to XMR and open a payment request for it.

        Returns:
            (MoneroPaymentRequest, Conversion)

        Raises:
            GatewayNotConfigured, RateUnavailable, PaymentRequestFailed, ValidationError
        """
        self._require_key()
        conversion = self.converter.convert(fiat_amount, self.pair)
        request = self.create_payment_request(
            order_id,
            conversion.crypto_amount,
            currency=self.pair.symbol,
            customer_email=customer_email,
        )
        return request, conversion

    def get_payment_status(self, payment_id: str) -> MoneroPaymentStatus:
        """
        Read the current status of a payment request.

        Raises:
            GatewayNotConfigured: if no API key is configured
            PaymentStatusUnavailable: on any provider failure
        """
        self._require_key()
        try:
            resp = requests.get(
                f"{self.base_url}/payment-request/{payment_id}",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.status_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.RequestException as e:
            log.error("GloBee status lookup failed for %s: %s", payment_id, e)
            raise PaymentStatusUnavailable(f"Unable to fetch payment status: {e}") from e
        except ValueError as e:
            log.error("GloBee status returned invalid JSON: %s", e)
            raise PaymentStatusUnavailable("Unable to fetch payment status: invalid JSON") from e

        if not isinstance(data, dict):
            raise PaymentStatusUnavailable("Unable to fetch payment status: unexpected response")
        return MoneroPaymentStatus.from_api(data)

    # --- Confirmation and expiry policy ------------------------------------

    def required_confirmations(self) -> int:
        return self._required_confirmations

    def payment_window_hours(self) -> int:
        return self._payment_window_hours

    def expiration_time(self, created_at: Optional[datetime] = None) -> datetime:
        start = created_at or self._clock()
        return start + timedelta(hours=self._payment_window_hours)

    def is_expired(self, created_at: datetime) -> bool:
        return self._clock() > self.expiration_time(created_at)
