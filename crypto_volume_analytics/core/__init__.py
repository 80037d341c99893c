"""
Core components for Crypto Volume Analytics.

This module contains configuration, logging, application context and the
context-aware CLI base classes.
"""

from crypto_volume_analytics.core.context import AppContext
from crypto_volume_analytics.core.config import ConfigManager, ConfigError

__all__ = [
    "AppContext",
    "ConfigManager",
    "ConfigError",
]
