# src/paygate/config/__init__.py
"""
Configuration Module

Provides centralized configuration management using Pydantic Settings.
Gateway credentials, callback base URLs, cache windows and timeouts are
all read from environment variables (or a local .env file).
"""

from paygate.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
