# src/paygate/application/health.py
"""
Health Checker - Gateway configuration and exchange-rate freshness

Reports which gateways can take payments with the current configuration and
how old the cached exchange rates are. It never calls a provider: a health
probe must not spend rate-limited oracle quota or create payment requests.

Files that USE this module:
- paygate.app (`paygate health` command)
- tests.test_health

Files that this module USES:
- paygate.application.rate_cache (RateCache.peek)
- paygate.config (Settings for configured-gateway flags)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from paygate.application.rate_cache import RateCache
from paygate.config.settings import Settings
from paygate.domain.models import BTC_GBP, XMR_GBP, CurrencyPair
from paygate.shared.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Represents the health status of a component."""
    is_healthy: bool
    message: str
    details: Optional[Dict[str, Any]] = None


class HealthChecker:
    """Configuration and cache checks for the payment layer."""

    def __init__(
        self,
        settings: Settings,
        rate_cache: RateCache,
        pairs: Iterable[CurrencyPair] = (BTC_GBP, XMR_GBP),
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.rate_cache = rate_cache
        self.pairs = tuple(pairs)
        self._clock = clock

    def check_paypal(self) -> HealthStatus:
        if not self.settings.paypal_configured:
            return HealthStatus(False, "PayPal client credentials not configured", {"configured": False})
        webhook = bool(self.settings.paypal_webhook_id)
        return HealthStatus(
            is_healthy=webhook,
            message=f"PayPal configured ({self.settings.paypal_mode})"
            + ("" if webhook else ", webhook id missing: webhooks will be rejected"),
            details={"configured": True, "mode": self.settings.paypal_mode, "webhook_id": webhook},
        )

    def check_bitcoin(self) -> HealthStatus:
        if not self.settings.bitcoin_configured:
            return HealthStatus(False, "Blockonomics API key not configured", {"configured": False})
        callbacks = bool(self.settings.blockonomics_callback_secret)
        return HealthStatus(
            is_healthy=callbacks,
            message="Blockonomics configured"
            + ("" if callbacks else ", callback secret missing: callbacks will be rejected"),
            details={"configured": True, "callback_secret": callbacks},
        )

    def check_monero(self) -> HealthStatus:
        if not self.settings.monero_configured:
            return HealthStatus(False, "GloBee API key not configured", {"configured": False})
        secret = bool(self.settings.globee_secret)
        return HealthStatus(
            is_healthy=secret,
            message="GloBee configured" + ("" if secret else ", webhook secret missing: IPNs will be rejected"),
            details={"configured": True, "webhook_secret": secret},
        )

    def check_rate(self, pair: CurrencyPair) -> HealthStatus:
        """
        A pair is healthy while its cached rate is inside the staleness ceiling.

        An empty cache is healthy: the first checkout will fill it.
        """
        cached = self.rate_cache.peek(pair)
        if cached is None:
            return HealthStatus(True, f"No cached {pair.symbol} rate yet", {"cached": False})

        now = self._clock()
        age = now - cached.observed_at
        fresh = now < cached.valid_until
        usable = age < self.rate_cache.staleness_ceiling
        return HealthStatus(
            is_healthy=usable,
            message=f"{pair.symbol} rate {cached.rate} {pair.fiat.upper()}, "
                    f"{int(age / timedelta(seconds=1))}s old ({'fresh' if fresh else 'expired'})",
            details={
                "cached": True,
                "rate": str(cached.rate),
                "observed_at": cached.observed_at.isoformat(),
                "age_seconds": int(age.total_seconds()),
                "fresh": fresh,
            },
        )

    def get_overall_health(self) -> Dict[str, Any]:
        """Overall healthy only if every check passes."""
        checks = {
            "paypal": self.check_paypal(),
            "bitcoin": self.check_bitcoin(),
            "monero": self.check_monero(),
        }
        for pair in self.pairs:
            checks[f"rate:{pair.key}"] = self.check_rate(pair)

        failed = [name for name, check in checks.items() if not check.is_healthy]
        if failed:
            logger.warning("Health degraded: %s", ", ".join(failed))

        return {
            "overall_healthy": not failed,
            "status": "healthy" if not failed else "degraded",
            "failed_components": failed,
            "timestamp": self._clock().isoformat(),
            "checks": {
                name: {"healthy": check.is_healthy, "message": check.message, "details": check.details}
                for name, check in checks.items()
            },
        }
