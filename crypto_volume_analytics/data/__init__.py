"""Data layer for crypto volume analytics.

This module provides data models, the cache store and memoization layer,
and the API clients for fetching cryptocurrency market data.
"""

from .models import (
    CacheCategory,
    MarketSnapshot,
    CacheEntry,
    APIResponse
)

from .cache import CacheStore, MemoryCacheBackend, create_cache_store
from .memoize import MemoizedComputation
from .service import VolumeDataService, open_data_service

__all__ = [
    'CacheCategory',
    'MarketSnapshot',
    'CacheEntry',
    'APIResponse',
    'CacheStore',
    'MemoryCacheBackend',
    'create_cache_store',
    'MemoizedComputation',
    'VolumeDataService',
    'open_data_service'
]
