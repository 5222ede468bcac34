# tests/conftest.py
"""
Shared pytest fixtures.

Files that USE this module:
- pytest (fixtures are injected into every test module)

Files that this module USES:
- paygate.config.settings (Settings built from explicit values)
"""
from datetime import datetime, timedelta, timezone  # Controlled time for cache and expiry tests

import pytest  # Testing framework for writing and running tests

from paygate.config.settings import Settings  # Configuration model under test

START = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        paypal_client_id="test-client-id",
        paypal_client_secret="test-client-secret",
        paypal_webhook_id="WH-TEST-12345",
        blockonomics_api_key="test-blockonomics-key",
        blockonomics_callback_secret="blockonomics-callback-secret",
        globee_api_key="test-globee-key",
        globee_secret="globee-webhook-secret",
        frontend_url="https://shop.example.com/",
        backend_url="https://api.shop.example.com",
    )
