"""
PayPal Gateway Adapter - OAuth client credentials, Orders v2, refunds

This module implements the card/wallet gateway. Every API call runs with a
cached OAuth access token which is refreshed transparently once it is within
the safety margin of its expiry. Money always travels as a fixed-point
string with exactly two decimals.

Files that USE this module:
- paygate.app (builds the shared PayPalGateway)
- paygate.adapters.webhooks.paypal_verifier (reuses the OAuth token)
- paygate.application.orchestrator (create / capture / refund)
- tests.test_paypal_gateway (unit tests)

Files that this module USES:
- paygate.config (credentials, base URL, timeout)
- paygate.domain.errors (taxonomy errors raised at this boundary)
- paygate.domain.models (PayPalToken)
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import requests

from paygate.application.conversion import to_decimal
from paygate.config import settings
from paygate.domain.errors import (
    CaptureFailed,
    ConfigurationError,
    GatewayNotConfigured,
    OrderCreationFailed,
    PaymentError,
    ProviderAuthenticationFailed,
    RefundFailed,
    TransientProviderError,
)
from paygate.domain.models import PayPalToken
from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import log_payment_event

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


def format_money(amount: Any) -> str:
    """
    Serialize a fiat amount as a two-decimal string (never via float formatting).

    >>> format_money(Decimal("10.005"))
    '10.01'
    """
    return f"{to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP):f}"


def _provider_error_summary(resp: requests.Response) -> str:
    """Short description of a PayPal error body (name / message / debug_id only)."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if not isinstance(body, dict):
        return f"HTTP {resp.status_code}"
    parts = [f"HTTP {resp.status_code}"]
    for key in ("name", "message", "debug_id"):
        if body.get(key):
            parts.append(f"{key}={body[key]}")
    return " ".join(parts)


class PayPalGateway:
    """
    PayPal REST client.

    Token state: absent -> valid -> expired -> valid. The token is a plain
    instance attribute; two concurrent refreshes both store a valid token.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        brand_name: Optional[str] = None,
        token_safety_margin: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize PayPal gateway.

        Args:
            client_id: OAuth client id (defaults to settings.paypal_client_id)
            client_secret: OAuth client secret (defaults to settings.paypal_client_secret)
            base_url: REST base URL (defaults to settings.paypal_base_url)
            timeout: HTTP timeout in seconds (defaults to settings.paypal_timeout_seconds)
            brand_name: Brand shown on the PayPal approval page
            token_safety_margin: Seconds before expiry at which the token is refreshed
            clock: Callable returning the current UTC datetime
        """
        self.client_id = client_id if client_id is not None else settings.paypal_client_id
        self.client_secret = client_secret if client_secret is not None else settings.paypal_client_secret
        self.base_url = (base_url or settings.paypal_base_url).rstrip("/")
        self.timeout = timeout or settings.paypal_timeout_seconds
        self.brand_name = brand_name or settings.paypal_brand_name
        self.token_safety_margin = (
            token_safety_margin if token_safety_margin is not None
            else settings.paypal_token_safety_margin_seconds
        )
        self._clock = clock
        self._token: Optional[PayPalToken] = None

    # --- OAuth -------------------------------------------------------------

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def invalidate_token(self) -> None:
        self._token = None

    def get_access_token(self) -> str:
        """
        Return a valid access token, exchanging client credentials if needed.

        Raises:
            GatewayNotConfigured: if client id or secret is missing
            ProviderAuthenticationFailed: if the token exchange fails
        """
        now = self._clock()
        if self._token is not None and self._token.is_valid(now, self.token_safety_margin):
            return self._token.access_token

        if not self.configured:
            raise GatewayNotConfigured("PAYPAL_CLIENT_ID", "PayPal client credentials not configured")

        try:
            resp = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            log.error("PayPal token request timed out after %d seconds", self.timeout)
            raise ProviderAuthenticationFailed("Failed to authenticate with PayPal: timeout") from e
        except requests.exceptions.RequestException as e:
            log.error("PayPal token request failed: %s", type(e).__name__)
            raise ProviderAuthenticationFailed("Failed to authenticate with PayPal") from e

        if not resp.ok:
            log.error("PayPal token request rejected: HTTP %d", resp.status_code)
            raise ProviderAuthenticationFailed(
                f"Failed to authenticate with PayPal: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            access_token = str(data["access_token"])
            expires_in = int(data.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            log.error("PayPal token response malformed")
            raise ProviderAuthenticationFailed("Failed to authenticate with PayPal: malformed token response") from e

        self._token = PayPalToken(access_token=access_token, expires_at=now + timedelta(seconds=expires_in))
        log.info("PayPal access token obtained (expires in %ss)", expires_in)
        return access_token

    # --- Shared request path ----------------------------------------------

    def _call(
        self,
        method: str,
        path: str,
        failure: type,
        failure_message: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Perform an authenticated API call and translate every provider failure into ``failure``.

        Missing credentials propagate as ConfigurationError, unwrapped.

        The wrapped cause carries the provider's error summary; tokens and
        credentials never appear in the message.
        """
        try:
            token = self.get_access_token()
        except ConfigurationError:
            raise
        except PaymentError as e:
            raise failure(f"{failure_message}: {e}") from e

        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        if idempotency_key:
            headers["PayPal-Request-Id"] = idempotency_key

        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            log.error("PayPal %s %s timed out after %d seconds", method, path, self.timeout)
            raise failure(f"{failure_message}: timeout") from TransientProviderError(str(e))
        except requests.exceptions.RequestException as e:
            log.error("PayPal %s %s failed: %s", method, path, type(e).__name__)
            raise failure(f"{failure_message}: network error") from TransientProviderError(str(e))

        if resp.status_code == 401:
            # Token revoked or expired early
            self.invalidate_token()

        if not resp.ok:
            summary = _provider_error_summary(resp)
            log.error("PayPal %s %s rejected: %s", method, path, summary)
            raise failure(f"{failure_message}: {summary}") from TransientProviderError(
                summary, status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    # --- Orders ------------------------------------------------------------

    def create_order(self, amount: Any, currency: str = "GBP", reference_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a CAPTURE-intent order.

        Args:
            amount: Order total in ``currency``
            currency: ISO currency code
            reference_id: Our order id, echoed back by PayPal on the purchase unit

        Returns:
            PayPal order body (id, status, links)

        Raises:
            OrderCreationFailed: on any provider or transport failure
        """
        purchase_unit: Dict[str, Any] = {
            "amount": {"currency_code": currency.upper(), "value": format_money(amount)},
        }
        if reference_id:
            purchase_unit["reference_id"] = reference_id

        body = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "NO_PREFERENCE",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "PAY_NOW",
            },
        }
        data = self._call("POST", "/v2/checkout/orders", OrderCreationFailed, "Failed to create PayPal order", body)
        log_payment_event("paypal_order_created", paypal_order_id=data.get("id"), order_id=reference_id)
        return data

    def capture_order(self, paypal_order_id: str, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """
        Capture an approved order.

        Raises:
            CaptureFailed: on any provider or transport failure
        """
        data = self._call(
            "POST",
            f"/v2/checkout/orders/{paypal_order_id}/capture",
            CaptureFailed,
            "Failed to capture PayPal order",
            {},
            idempotency_key=idempotency_key,
        )
        log_payment_event("paypal_order_captured", paypal_order_id=paypal_order_id, status=data.get("status"))
        return data

    def refund_payment(
        self,
        capture_id: str,
        amount: Any = None,
        currency: str = "GBP",
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Refund a capture: full refund without ``amount``, partial with it.

        Raises:
            RefundFailed: on any provider or transport failure
        """
        body: Dict[str, Any] = {}
        if amount is not None:
            body = {"amount": {"currency_code": currency.upper(), "value": format_money(amount)}}

        data = self._call(
            "POST",
            f"/v2/payments/captures/{capture_id}/refund",
            RefundFailed,
            "Failed to process PayPal refund",
            body,
            idempotency_key=idempotency_key,
        )
        log_payment_event(
            "paypal_refund_processed",
            capture_id=capture_id,
            refund_id=data.get("id"),
            partial=amount is not None,
        )
        return data

    def get_order_details(self, paypal_order_id: str) -> Dict[str, Any]:
        """
        Raises:
            TransientProviderError: on any provider or transport failure
        """
        return self._call(
            "GET",
            f"/v2/checkout/orders/{paypal_order_id}",
            TransientProviderError,
            "Failed to get PayPal order details",
        )

    def post_authenticated(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Authenticated POST used by the webhook verifier."""
        return self._call("POST", path, TransientProviderError, "PayPal request failed", payload)

    # --- Response helpers ----------------------------------------------------

    @staticmethod
    def extract_approval_url(order: Dict[str, Any]) -> Optional[str]:
        for link in order.get("links") or []:
            if isinstance(link, dict) and link.get("rel") in ("approve", "payer-action"):
                return link.get("href")
        return None

    @staticmethod
    def extract_capture_id(capture: Dict[str, Any]) -> Optional[str]:
        try:
            return capture["purchase_units"][0]["payments"]["captures"][0]["id"]
        except (KeyError, IndexError, TypeError):
            return None
