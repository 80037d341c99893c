"""
Command modules for the Crypto Volume Analytics CLI.

This package contains the command groups organized by functionality.
"""

from crypto_volume_analytics.commands.volume import volume
from crypto_volume_analytics.commands.market import market
from crypto_volume_analytics.commands.cache import cache

__all__ = [
    "volume",
    "market",
    "cache",
]
