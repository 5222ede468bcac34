"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Every field has a default so the package imports cleanly without any
gateway configured; a missing credential is reported by the adapter that
needs it, at call time.

Files that USE this module:
- paygate.app (builds the service graph from settings)
- paygate.adapters.oracle.coingecko (oracle URL and timeout)
- paygate.adapters.gateways.* (credentials, URLs, timeouts, policy constants)
- paygate.application.* (cache windows)

Files that this module USES:
- paygate.shared.validators (validation functions for settings)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from typing import Optional  # Type hints for optional values

from pydantic import Field, field_validator  # Data validation and field configuration
from pydantic_settings import BaseSettings, SettingsConfigDict  # Settings management with Pydantic

from paygate.shared.validators import (
    validate_api_key,  # Validate credential format
    validate_currency_code,  # Validate fiat currency code
    validate_url,  # Validate absolute http(s) URLs
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- PayPal (card / wallet, OAuth client credentials) ---
    paypal_client_id: str = Field(default="", alias="PAYPAL_CLIENT_ID")
    paypal_client_secret: str = Field(default="", alias="PAYPAL_CLIENT_SECRET")
    paypal_mode: str = Field(default="sandbox", alias="PAYPAL_MODE")
    paypal_webhook_id: str = Field(default="", alias="PAYPAL_WEBHOOK_ID")
    paypal_brand_name: str = Field(default="RDJCustoms", alias="PAYPAL_BRAND_NAME")
    paypal_timeout_seconds: int = Field(default=30, alias="PAYPAL_TIMEOUT_SECONDS", ge=1, le=120)
    # Token is treated as expired this many seconds before PayPal says it is
    paypal_token_safety_margin_seconds: int = Field(
        default=60, alias="PAYPAL_TOKEN_SAFETY_MARGIN_SECONDS", ge=0, le=600
    )

    # --- Blockonomics (Bitcoin) ---
    blockonomics_api_key: str = Field(default="", alias="BLOCKONOMICS_API_KEY")
    blockonomics_api_url: str = Field(
        default="https://www.blockonomics.co/api", alias="BLOCKONOMICS_API_URL"
    )
    blockonomics_callback_secret: str = Field(default="", alias="BLOCKONOMICS_CALLBACK_SECRET")
    blockonomics_timeout_seconds: int = Field(default=10, alias="BLOCKONOMICS_TIMEOUT_SECONDS", ge=1, le=120)
    bitcoin_payment_window_hours: int = Field(default=24, alias="BITCOIN_PAYMENT_WINDOW_HOURS", ge=1, le=168)
    bitcoin_required_confirmations: int = Field(default=2, alias="BITCOIN_REQUIRED_CONFIRMATIONS", ge=1, le=100)
    bitcoin_tolerance_percent: float = Field(default=1.0, alias="BITCOIN_TOLERANCE_PERCENT", ge=0.0, le=10.0)

    # --- GloBee (Monero) ---
    globee_api_key: str = Field(default="", alias="GLOBEE_API_KEY")
    globee_secret: str = Field(default="", alias="GLOBEE_SECRET")
    globee_api_url: str = Field(default="https://api.globee.com/v1", alias="GLOBEE_API_URL")
    globee_timeout_seconds: int = Field(default=30, alias="GLOBEE_TIMEOUT_SECONDS", ge=1, le=120)
    globee_status_timeout_seconds: int = Field(default=10, alias="GLOBEE_STATUS_TIMEOUT_SECONDS", ge=1, le=120)
    monero_required_confirmations: int = Field(default=10, alias="MONERO_REQUIRED_CONFIRMATIONS", ge=1, le=100)
    monero_payment_window_hours: int = Field(default=24, alias="MONERO_PAYMENT_WINDOW_HOURS", ge=1, le=168)

    # --- Callback base URLs ---
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")
    backend_url: str = Field(default="http://localhost:5000", alias="BACKEND_URL")

    # --- Exchange-rate oracle (CoinGecko) ---
    coingecko_api_url: str = Field(default="https://api.coingecko.com/api/v3", alias="COINGECKO_API_URL")
    oracle_timeout_seconds: int = Field(default=10, alias="ORACLE_TIMEOUT_SECONDS", ge=1, le=60)
    fiat_currency: str = Field(default="gbp", alias="FIAT_CURRENCY")

    # --- Cache Settings (in minutes) ---
    btc_rate_ttl_minutes: int = Field(default=15, alias="BTC_RATE_TTL_MINUTES", ge=1, le=1440)
    xmr_rate_ttl_minutes: int = Field(default=5, alias="XMR_RATE_TTL_MINUTES", ge=1, le=1440)
    rate_staleness_ceiling_minutes: int = Field(
        default=60, alias="RATE_STALENESS_CEILING_MINUTES", ge=1, le=1440
    )
    tracking_cache_minutes: int = Field(default=30, alias="TRACKING_CACHE_MINUTES", ge=1, le=1440)

    # --- Logging (for server deployment) ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="PAYGATE_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    # Computed properties for convenience
    @property
    def paypal_base_url(self) -> str:
        """PayPal REST base URL for the configured mode."""
        if self.paypal_mode == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    @property
    def paypal_configured(self) -> bool:
        return bool(self.paypal_client_id and self.paypal_client_secret)

    @property
    def bitcoin_configured(self) -> bool:
        return bool(self.blockonomics_api_key)

    @property
    def monero_configured(self) -> bool:
        return bool(self.globee_api_key)

    @field_validator("paypal_mode")
    @classmethod
    def validate_paypal_mode(cls, v: str) -> str:
        """PayPal mode must be 'sandbox' or 'live'."""
        v = v.strip().lower()
        if v not in ("sandbox", "live"):
            raise ValueError("PAYPAL_MODE must be 'sandbox' or 'live'")
        return v

    @field_validator(
        "paypal_client_id",
        "paypal_client_secret",
        "blockonomics_api_key",
        "globee_api_key",
        "globee_secret",
    )
    @classmethod
    def validate_credential(cls, v: str) -> str:
        """Blank means 'gateway not configured'; anything else must look like a key."""
        if v and not validate_api_key(v):
            raise ValueError("Invalid credential format")
        return v

    @field_validator(
        "blockonomics_api_url",
        "globee_api_url",
        "coingecko_api_url",
        "frontend_url",
        "backend_url",
    )
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Base URLs are stored without a trailing slash."""
        if not validate_url(v):
            raise ValueError(f"Invalid URL: {v!r}")
        return v.rstrip("/")

    @field_validator("fiat_currency")
    @classmethod
    def validate_fiat(cls, v: str) -> str:
        """Fiat currency is a three-letter code, stored lower-case for the oracle."""
        if not validate_currency_code(v):
            raise ValueError("FIAT_CURRENCY must be a three-letter currency code")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return v


# Global settings instance
settings = Settings()
