"""
Bitcoin Gateway Adapter - Blockonomics addresses, balances, transactions

Address generation and lookups are direct provider calls with no caching:
balances and confirmation counts must always be fresh. Only the exchange
rate is cached, by the shared RateCache behind the CurrencyConverter.

Files that USE this module:
- paygate.app (builds the BitcoinGateway)
- paygate.application.orchestrator (create_payment)
- tests.test_bitcoin_gateway (unit tests)

Files that this module USES:
- paygate.application.conversion (CurrencyConverter)
- paygate.config (API key, URL, timeout, policy constants)
- paygate.domain.models (BitcoinPayment, BitcoinAddressInfo, BitcoinTransaction)
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import requests

from paygate.application.conversion import CurrencyConverter, is_sufficient
from paygate.config import settings
from paygate.domain.errors import AddressGenerationFailed, GatewayNotConfigured, PaymentStatusUnavailable
from paygate.domain.models import (
    BTC_GBP,
    BitcoinAddressInfo,
    BitcoinPayment,
    BitcoinTransaction,
    CurrencyPair,
)
from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import log_payment_event

log = logging.getLogger(__name__)


class BitcoinGateway:
    """Blockonomics client plus the Bitcoin confirmation policy."""

    def __init__(
        self,
        converter: CurrencyConverter,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        payment_window: Optional[timedelta] = None,
        required_confirmations: Optional[int] = None,
        tolerance_percent: Optional[float] = None,
        pair: CurrencyPair = BTC_GBP,
        clock: Clock = utcnow,
    ):
        """
        Initialize Bitcoin gateway.

        Args:
            converter: Converter backed by the shared RateCache
            api_key: Blockonomics API key (defaults to settings.blockonomics_api_key)
            base_url: API base URL (defaults to settings.blockonomics_api_url)
            timeout: HTTP timeout in seconds (defaults to settings.blockonomics_timeout_seconds)
            payment_window: How long a generated payment stays payable
            required_confirmations: Confirmations needed to treat a payment as final
            tolerance_percent: Allowed shortfall, absorbing fee-deduction quirks
            pair: Currency pair used for conversion
            clock: Callable returning the current UTC datetime
        """
        self.converter = converter
        self.api_key = api_key if api_key is not None else settings.blockonomics_api_key
        self.base_url = (base_url or settings.blockonomics_api_url).rstrip("/")
        self.timeout = timeout or settings.blockonomics_timeout_seconds
        self.payment_window = payment_window or timedelta(hours=settings.bitcoin_payment_window_hours)
        self._required_confirmations = required_confirmations or settings.bitcoin_required_confirmations
        self.tolerance_percent = (
            tolerance_percent if tolerance_percent is not None else settings.bitcoin_tolerance_percent
        )
        self.pair = pair
        self._clock = clock

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _require_key(self, context: str) -> None:
        if not self.api_key:
            log.error("Blockonomics API key not configured (%s)", context)
            raise GatewayNotConfigured("BLOCKONOMICS_API_KEY", "Blockonomics API key not configured")

    # --- Addresses and payments --------------------------------------------

    def generate_address(self) -> str:
        """
        Request a fresh receiving address.

        Raises:
            AddressGenerationFailed: no API key configured (non-retryable, no I/O),
                or the provider call failed / returned no address
        """
        if not self.api_key:
            log.error("Blockonomics API key not configured")
            raise AddressGenerationFailed("Blockonomics API key not configured", retryable=False)

        try:
            resp = requests.post(f"{self.base_url}/new_address", headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.Timeout as e:
            log.error("Blockonomics new_address timeout after %d seconds", self.timeout)
            raise AddressGenerationFailed() from e
        except requests.exceptions.RequestException as e:
            log.error("Blockonomics new_address failed: %s", e)
            raise AddressGenerationFailed() from e
        except ValueError as e:
            log.error("Blockonomics new_address returned invalid JSON: %s", e)
            raise AddressGenerationFailed() from e

        address = data.get("address") if isinstance(data, dict) else None
        if not address:
            log.error("Blockonomics new_address response missing 'address'")
            raise AddressGenerationFailed("Invalid response from Blockonomics API")

        log_payment_event("bitcoin_address_generated", address=address)
        return str(address)

    def create_payment(self, fiat_amount: Any) -> BitcoinPayment:
        """
        Compose a payment: fresh address + converted amount + expiry.

        Either sub-call's error propagates unchanged; no partial payment is
        ever returned.

        Raises:
            AddressGenerationFailed, RateUnavailable, ValidationError
        """
        address = self.generate_address()
        conversion = self.converter.convert(fiat_amount, self.pair)
        payment = BitcoinPayment(
            address=address,
            btc_amount=conversion.crypto_amount,
            fiat_amount=conversion.fiat_amount,
            rate_used=conversion.rate,
            rate_timestamp=conversion.rate_timestamp,
            expires_at=self._clock() + self.payment_window,
        )
        log_payment_event(
            "bitcoin_payment_created",
            address=address,
            btc_amount=payment.btc_amount,
            rate=payment.rate_used,
            rate_expired=conversion.rate_expired or None,
        )
        return payment

    # --- Lookups (never cached) --------------------------------------------

    def get_address_info(self, address: str) -> BitcoinAddressInfo:
        """
        Fetch confirmed / unconfirmed balance (satoshis) for an address.

        Raises:
            GatewayNotConfigured: if no API key is configured
            PaymentStatusUnavailable: on any provider failure
        """
        self._require_key("balance")
        try:
            resp = requests.post(
                f"{self.base_url}/balance",
                json={"addr": address},
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.RequestException as e:
            log.error("Blockonomics balance lookup failed for %s: %s", address, e)
            raise PaymentStatusUnavailable("Failed to fetch Bitcoin address information") from e
        except ValueError as e:
            log.error("Blockonomics balance returned invalid JSON: %s", e)
            raise PaymentStatusUnavailable("Failed to fetch Bitcoin address information") from e

        return BitcoinAddressInfo.from_api(address, data)

    def get_transaction_details(self, txid: str) -> BitcoinTransaction:
        """
        Fetch confirmations and outputs for a transaction.

        Raises:
            GatewayNotConfigured: if no API key is configured
            PaymentStatusUnavailable: on any provider failure
        """
        self._require_key("tx_detail")
        try:
            resp = requests.get(
                f"{self.base_url}/tx_detail/{txid}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.RequestException as e:
            log.error("Blockonomics tx_detail failed for %s: %s", txid, e)
            raise PaymentStatusUnavailable("Failed to fetch transaction details") from e
        except ValueError as e:
            log.error("Blockonomics tx_detail returned invalid JSON: %s", e)
            raise PaymentStatusUnavailable("Failed to fetch transaction details") from e

        if not isinstance(data, dict):
            raise PaymentStatusUnavailable("Failed to fetch transaction details")
        return BitcoinTransaction.from_api(txid, data)

    # --- Confirmation policy -----------------------------------------------

    def required_confirmations(self) -> int:
        return self._required_confirmations

    def is_confirmed(self, confirmations: int) -> bool:
        return (confirmations or 0) >= self._required_confirmations

    def is_expired(self, expires_at: datetime) -> bool:
        return self._clock() > expires_at

    def is_sufficient(self, received: Any, expected: Any, tolerance_percent: Optional[float] = None) -> bool:
        """received >= expected * (1 - tolerance/100)."""
        tolerance = self.tolerance_percent if tolerance_percent is None else tolerance_percent
        return is_sufficient(received, expected, tolerance)

