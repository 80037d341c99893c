"""
Crypto Volume Analytics - Trading volume tracking and analysis for cryptocurrencies.

This package provides volume comparison, liquidity scoring, spike detection and
calendar heatmaps over CoinGecko market data, cached in Redis with graceful
degradation when the cache is unavailable.
"""

__version__ = "0.1.0"
__author__ = "Crypto Volume Analytics Team"
__license__ = "MIT"

# Core imports for public API
from crypto_volume_analytics.core.config import ConfigManager
from crypto_volume_analytics.data.service import VolumeDataService, open_data_service

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "ConfigManager",
    "VolumeDataService",
    "open_data_service",
]
