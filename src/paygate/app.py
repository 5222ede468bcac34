# src/paygate/app.py
"""
Application Entry Point - Composition root and operator CLI

build_services() wires the whole payment layer once: a single RateCache is
created here and shared by reference with both crypto gateways, and the
PayPal gateway is shared with its webhook verifier so they reuse one OAuth
token. The web layer calls build_services() at startup and keeps the
returned PaymentServices for the process lifetime.

Files that USE this module:
- python -m paygate (module entry point)
- the `paygate` console script
- tests.test_app

Files that this module USES:
- paygate.config (Settings)
- paygate.shared.logging_conf (setup_logging)
- paygate.adapters.* (oracle, gateways, webhook verifiers)
- paygate.application.* (cache, converter, reconciler, coordinator, orchestrator, health)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from paygate.adapters.gateways.bitcoin import BitcoinGateway
from paygate.adapters.gateways.monero import MoneroGateway
from paygate.adapters.gateways.paypal import PayPalGateway
from paygate.adapters.oracle.coingecko import CoinGeckoOracle
from paygate.adapters.webhooks.base import WebhookVerifier
from paygate.adapters.webhooks.hmac_verifier import HmacWebhookVerifier
from paygate.adapters.webhooks.paypal_verifier import PayPalWebhookVerifier
from paygate.application.completion import OrderCompletionCoordinator, OrderRepository, ReferralEngine
from paygate.application.conversion import CurrencyConverter, format_crypto_amount
from paygate.application.health import HealthChecker
from paygate.application.orchestrator import PaymentOrchestrator
from paygate.application.rate_cache import RateCache
from paygate.application.reconciler import PaymentStatusReconciler
from paygate.application.tracking import CarrierTrackingCache, TrackingFetcher
from paygate.config.settings import Settings
from paygate.domain.errors import PaymentError
from paygate.domain.models import BTC_GBP, XMR_GBP, Provider
from paygate.shared.clock import Clock, utcnow
from paygate.shared.logging_conf import setup_logging
from paygate.shared.validators import mask_secret, validate_numeric_input

logger = logging.getLogger(__name__)


@dataclass
class PaymentServices:
    """Everything build_services() wires; shared instances, built once."""
    settings: Settings
    rate_cache: RateCache
    converter: CurrencyConverter
    paypal: PayPalGateway
    bitcoin: BitcoinGateway
    monero: MoneroGateway
    verifiers: Dict[Provider, WebhookVerifier]
    reconciler: PaymentStatusReconciler
    coordinator: OrderCompletionCoordinator
    orchestrator: PaymentOrchestrator
    health: HealthChecker
    tracking: Optional[CarrierTrackingCache] = None


def build_services(
    settings: Optional[Settings] = None,
    referral_engine: Optional[ReferralEngine] = None,
    order_repository: Optional[OrderRepository] = None,
    tracking_fetcher: Optional[TrackingFetcher] = None,
    clock: Clock = utcnow,
) -> PaymentServices:
    """
    Construct the payment layer from configuration.

    Args:
        settings: Configuration (defaults to the global settings instance)
        referral_engine: Collaborator for the referral completion step
        order_repository: Collaborator used for first-order checks
        tracking_fetcher: Carrier lookup; the tracking cache is only built with one
        clock: Callable returning the current UTC datetime
    """
    if settings is None:
        from paygate.config import settings

    fiat = settings.fiat_currency
    btc_pair = BTC_GBP.with_fiat(fiat)
    xmr_pair = XMR_GBP.with_fiat(fiat)

    oracle = CoinGeckoOracle(base_url=settings.coingecko_api_url, timeout=settings.oracle_timeout_seconds)
    rate_cache = RateCache(
        oracle,
        ttl_by_pair={
            btc_pair: timedelta(minutes=settings.btc_rate_ttl_minutes),
            xmr_pair: timedelta(minutes=settings.xmr_rate_ttl_minutes),
        },
        staleness_ceiling=timedelta(minutes=settings.rate_staleness_ceiling_minutes),
        clock=clock,
    )
    converter = CurrencyConverter(rate_cache, fiat=fiat)

    paypal = PayPalGateway(
        client_id=settings.paypal_client_id,
        client_secret=settings.paypal_client_secret,
        base_url=settings.paypal_base_url,
        timeout=settings.paypal_timeout_seconds,
        brand_name=settings.paypal_brand_name,
        token_safety_margin=settings.paypal_token_safety_margin_seconds,
        clock=clock,
    )
    bitcoin = BitcoinGateway(
        converter,
        api_key=settings.blockonomics_api_key,
        base_url=settings.blockonomics_api_url,
        timeout=settings.blockonomics_timeout_seconds,
        payment_window=timedelta(hours=settings.bitcoin_payment_window_hours),
        required_confirmations=settings.bitcoin_required_confirmations,
        tolerance_percent=settings.bitcoin_tolerance_percent,
        pair=btc_pair,
        clock=clock,
    )
    monero = MoneroGateway(
        converter,
        api_key=settings.globee_api_key,
        base_url=settings.globee_api_url,
        frontend_url=settings.frontend_url,
        backend_url=settings.backend_url,
        timeout=settings.globee_timeout_seconds,
        status_timeout=settings.globee_status_timeout_seconds,
        required_confirmations=settings.monero_required_confirmations,
        payment_window_hours=settings.monero_payment_window_hours,
        pair=xmr_pair,
        clock=clock,
    )

    verifiers: Dict[Provider, WebhookVerifier] = {
        Provider.PAYPAL: PayPalWebhookVerifier(paypal, settings.paypal_webhook_id),
        Provider.MONERO: HmacWebhookVerifier(settings.globee_secret, provider="GloBee"),
        Provider.BITCOIN: HmacWebhookVerifier(settings.blockonomics_callback_secret, provider="Blockonomics"),
    }
    reconciler = PaymentStatusReconciler(
        monero_required_confirmations=monero.required_confirmations(),
        bitcoin_required_confirmations=bitcoin.required_confirmations(),
        bitcoin_tolerance_percent=settings.bitcoin_tolerance_percent,
        clock=clock,
    )
    coordinator = OrderCompletionCoordinator(referral_engine, order_repository)
    orchestrator = PaymentOrchestrator(paypal, bitcoin, monero, reconciler, coordinator, verifiers, clock=clock)

    tracking = None
    if tracking_fetcher is not None:
        tracking = CarrierTrackingCache(
            tracking_fetcher, ttl=timedelta(minutes=settings.tracking_cache_minutes), clock=clock
        )

    logger.info(
        "Payment services ready: paypal=%s (%s) bitcoin=%s (%s) monero=%s (%s) fiat=%s",
        settings.paypal_configured, mask_secret(settings.paypal_client_id),
        settings.bitcoin_configured, mask_secret(settings.blockonomics_api_key),
        settings.monero_configured, mask_secret(settings.globee_api_key),
        fiat,
    )
    return PaymentServices(
        settings=settings,
        rate_cache=rate_cache,
        converter=converter,
        paypal=paypal,
        bitcoin=bitcoin,
        monero=monero,
        verifiers=verifiers,
        reconciler=reconciler,
        coordinator=coordinator,
        orchestrator=orchestrator,
        health=HealthChecker(settings, rate_cache, pairs=(btc_pair, xmr_pair), clock=clock),
        tracking=tracking,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="paygate", description="Payment gateway operator commands")
    sub = parser.add_subparsers(dest="command", required=True)

    quote = sub.add_parser("quote", help="Convert a fiat amount to crypto at the current rate")
    quote.add_argument("asset", choices=["bitcoin", "monero"])
    quote.add_argument("amount", help="Fiat amount, e.g. 49.99")

    sub.add_parser("health", help="Show gateway configuration and rate cache health")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run an operator command.

    Returns:
        0 on success, 1 when a PaymentError stops the command
    """
    args = _build_parser().parse_args(argv)

    from paygate.config import settings

    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
        log_to_stdout=settings.log_stdout,
    )
    services = build_services(settings)

    if args.command == "health":
        print(json.dumps(services.health.get_overall_health(), indent=2))
        return 0

    if not validate_numeric_input(args.amount, min_val=0):
        print(f"error: not a valid amount: {args.amount!r}", file=sys.stderr)
        return 2

    pair = services.bitcoin.pair if args.asset == "bitcoin" else services.monero.pair
    try:
        conversion = services.converter.convert(args.amount, pair)
    except PaymentError as e:
        logger.error("Quote failed: %s", e)
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(
        f"{conversion.fiat_amount} {pair.fiat.upper()} = "
        f"{format_crypto_amount(conversion.crypto_amount, pair.precision)} {pair.symbol} "
        f"(1 {pair.symbol} = {conversion.rate} {pair.fiat.upper()}"
        f"{', stale rate' if conversion.rate_expired else ''})"
    )
    return 0
