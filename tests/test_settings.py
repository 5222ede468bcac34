# tests/test_settings.py
"""
Settings and Validator Tests - Environment-driven configuration

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- paygate.config.settings (Settings)
- paygate.shared.validators (validation helpers)
"""
import pytest
from pydantic import ValidationError as SettingsError

from paygate.config.settings import Settings
from paygate.shared.validators import (
    mask_secret,
    validate_api_key,
    validate_currency_code,
    validate_numeric_input,
    validate_url,
)


class TestSettings:
    def test_defaults_import_without_configuration(self):
        settings = Settings(_env_file=None)

        assert settings.paypal_configured is False
        assert settings.bitcoin_configured is False
        assert settings.monero_configured is False
        assert settings.btc_rate_ttl_minutes == 15
        assert settings.xmr_rate_ttl_minutes == 5
        assert settings.rate_staleness_ceiling_minutes == 60
        assert settings.monero_required_confirmations == 10
        assert settings.bitcoin_required_confirmations == 2
        assert settings.fiat_currency == "gbp"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PAYPAL_CLIENT_ID", "AaBbCcDd1234")
        monkeypatch.setenv("PAYPAL_CLIENT_SECRET", "EeFfGgHh5678")
        monkeypatch.setenv("PAYPAL_MODE", "LIVE")
        monkeypatch.setenv("BTC_RATE_TTL_MINUTES", "20")
        monkeypatch.setenv("FIAT_CURRENCY", "EUR")

        settings = Settings(_env_file=None)

        assert settings.paypal_configured is True
        assert settings.paypal_mode == "live"
        assert settings.paypal_base_url == "https://api-m.paypal.com"
        assert settings.btc_rate_ttl_minutes == 20
        assert settings.fiat_currency == "eur"

    def test_sandbox_base_url(self):
        assert Settings(_env_file=None).paypal_base_url == "https://api-m.sandbox.paypal.com"

    def test_urls_are_stored_without_trailing_slash(self, settings):
        assert settings.frontend_url == "https://shop.example.com"

    @pytest.mark.parametrize("field, value", [
        ("PAYPAL_MODE", "production"),
        ("BLOCKONOMICS_API_KEY", "short"),
        ("GLOBEE_API_KEY", "has a space"),
        ("FRONTEND_URL", "shop.example.com"),
        ("FIAT_CURRENCY", "pounds"),
        ("LOG_LEVEL", "CHATTY"),
        ("BTC_RATE_TTL_MINUTES", "0"),
        ("BITCOIN_TOLERANCE_PERCENT", "25"),
    ])
    def test_invalid_values(self, monkeypatch, field, value):
        monkeypatch.setenv(field, value)
        with pytest.raises(SettingsError):
            Settings(_env_file=None)


class TestValidators:
    def test_api_key(self):
        assert validate_api_key("test-blockonomics-key") is True
        assert validate_api_key("short") is False
        assert validate_api_key("with space inside") is False
        assert validate_api_key("") is False

    def test_url(self):
        assert validate_url("https://api.globee.com/v1") is True
        assert validate_url("ftp://example.com") is False
        assert validate_url("example.com") is False

    def test_currency_code(self):
        assert validate_currency_code("GBP") is True
        assert validate_currency_code("gbp") is True
        assert validate_currency_code("GB") is False
        assert validate_currency_code("G8P") is False

    def test_numeric_input(self):
        assert validate_numeric_input("49.99", min_val=0) is True
        assert validate_numeric_input("-1", min_val=0) is False
        assert validate_numeric_input("nan") is False
        assert validate_numeric_input("abc") is False
        assert validate_numeric_input("") is False

    def test_mask_secret(self):
        assert mask_secret("test-blockonomics-key") == "****-key"
        assert mask_secret("abc") == "***"
        assert mask_secret(None) == "<unset>"
