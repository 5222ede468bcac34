# tests/test_health.py
"""
Health Checker Tests - Gateway configuration and rate freshness reports

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- paygate.application.health (HealthChecker)
- paygate.application.rate_cache (RateCache)
"""
from decimal import Decimal
from unittest.mock import Mock

import pytest

from paygate.adapters.oracle.base import PriceOracle
from paygate.application.health import HealthChecker
from paygate.application.rate_cache import RateCache
from paygate.config.settings import Settings
from paygate.domain.models import BTC_GBP, XMR_GBP


@pytest.fixture
def oracle():
    oracle = Mock(spec=PriceOracle)
    oracle.fetch_price.return_value = Decimal("45000.50")
    return oracle


@pytest.fixture
def rate_cache(oracle, clock):
    return RateCache(oracle, clock=clock)


class TestGatewayChecks:
    def test_fully_configured(self, settings, rate_cache, clock):
        checker = HealthChecker(settings, rate_cache, clock=clock)

        assert checker.check_paypal().is_healthy is True
        assert checker.check_bitcoin().is_healthy is True
        assert checker.check_monero().is_healthy is True

    def test_unconfigured(self, rate_cache, clock):
        checker = HealthChecker(Settings(_env_file=None), rate_cache, clock=clock)

        paypal = checker.check_paypal()
        assert paypal.is_healthy is False
        assert paypal.details == {"configured": False}
        assert checker.check_bitcoin().is_healthy is False
        assert checker.check_monero().is_healthy is False

    def test_configured_without_webhook_secrets(self, rate_cache, clock):
        settings = Settings(
            _env_file=None,
            paypal_client_id="test-client-id",
            paypal_client_secret="test-client-secret",
            blockonomics_api_key="test-blockonomics-key",
            globee_api_key="test-globee-key",
        )
        checker = HealthChecker(settings, rate_cache, clock=clock)

        paypal = checker.check_paypal()
        assert paypal.is_healthy is False
        assert "webhook id missing" in paypal.message
        assert "callback secret missing" in checker.check_bitcoin().message
        assert "webhook secret missing" in checker.check_monero().message


class TestRateChecks:
    def test_empty_cache_is_healthy(self, settings, rate_cache, clock):
        status = HealthChecker(settings, rate_cache, clock=clock).check_rate(BTC_GBP)

        assert status.is_healthy is True
        assert status.details == {"cached": False}

    def test_expired_rate_within_ceiling(self, settings, rate_cache, clock):
        rate_cache.get_rate(BTC_GBP)
        clock.advance(minutes=20)

        status = HealthChecker(settings, rate_cache, clock=clock).check_rate(BTC_GBP)

        assert status.is_healthy is True
        assert status.details["fresh"] is False
        assert status.details["age_seconds"] == 1200
        assert status.details["rate"] == "45000.50"

    def test_rate_beyond_ceiling(self, settings, rate_cache, clock):
        rate_cache.get_rate(BTC_GBP)
        clock.advance(minutes=61)

        assert HealthChecker(settings, rate_cache, clock=clock).check_rate(BTC_GBP).is_healthy is False


class TestOverallHealth:
    def test_healthy(self, settings, rate_cache, clock):
        report = HealthChecker(settings, rate_cache, clock=clock).get_overall_health()

        assert report["overall_healthy"] is True
        assert report["status"] == "healthy"
        assert report["failed_components"] == []
        assert set(report["checks"]) == {"paypal", "bitcoin", "monero", "rate:bitcoin/gbp", "rate:monero/gbp"}
        assert report["timestamp"] == clock().isoformat()

    def test_degraded(self, rate_cache, clock):
        report = HealthChecker(
            Settings(_env_file=None), rate_cache, pairs=(XMR_GBP,), clock=clock
        ).get_overall_health()

        assert report["overall_healthy"] is False
        assert report["status"] == "degraded"
        assert report["failed_components"] == ["paypal", "bitcoin", "monero"]
        assert "rate:monero/gbp" in report["checks"]
