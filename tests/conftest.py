"""
Pytest configuration and shared fixtures for the test suite.

Provides in-memory and failing cache backends, CoinGecko payload factories
and a CLI runner.
"""

import tempfile
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from click.testing import CliRunner

from crypto_volume_analytics.core.context import AppContext, set_context
from crypto_volume_analytics.data.cache import CacheStore, MemoryCacheBackend
from crypto_volume_analytics.data.memoize import MemoizedComputation

DAY_MS = 24 * 60 * 60 * 1000

# 2024-01-07 00:00 UTC, a Sunday
SUNDAY_MS = int(datetime(2024, 1, 7, tzinfo=timezone.utc).timestamp() * 1000)


class FailingBackend:
    """Backend whose every command raises, as an unreachable Redis would."""

    name = "redis"

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error or ConnectionError("Connection refused")
        self.calls: List[str] = []

    def __getattr__(self, command):
        async def fail(*args, **kwargs):
            self.calls.append(command)
            raise self.error
        return fail


class DictConfig:
    """Minimal stand-in for ConfigManager.get with dotted keys."""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self.values = values or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


def make_chart(volumes: List[float], start_ms: int = SUNDAY_MS) -> Dict[str, Any]:
    """Build a ``market_chart`` payload with one volume sample per day."""
    return {
        'prices': [[start_ms + i * DAY_MS, 1.0] for i in range(len(volumes))],
        'market_caps': [[start_ms + i * DAY_MS, 1.0] for i in range(len(volumes))],
        'total_volumes': [[start_ms + i * DAY_MS, volume] for i, volume in enumerate(volumes)],
    }


def make_market_row(coin_id: str, total_volume: float, market_cap: float, **extra: Any) -> Dict[str, Any]:
    """Build one ``/coins/markets`` row."""
    row = {
        'id': coin_id,
        'symbol': coin_id[:3],
        'name': coin_id.capitalize(),
        'image': f"https://assets.example/{coin_id}.png",
        'current_price': 100.0,
        'market_cap': market_cap,
        'market_cap_rank': 1,
        'total_volume': total_volume,
        'price_change_percentage_24h': 1.5,
        'price_change_percentage_1h_in_currency': 0.2,
        'price_change_percentage_7d_in_currency': -3.0,
        'last_updated': "2024-01-07T00:00:00.000Z",
    }
    row.update(extra)
    return row


def make_coin_detail(coin_id: str, total_volume: float, market_cap: float, rank: Optional[int] = 1) -> Dict[str, Any]:
    """Build a ``/coins/{id}`` detail record."""
    return {
        'id': coin_id,
        'symbol': coin_id[:3],
        'name': coin_id.capitalize(),
        'market_cap_rank': rank,
        'image': {'large': f"https://assets.example/{coin_id}-large.png"},
        'last_updated': "2024-01-07T00:00:00.000Z",
        'market_data': {
            'current_price': {'usd': 100.0},
            'market_cap': {'usd': market_cap},
            'total_volume': {'usd': total_volume},
            'ath': {'usd': 150.0},
            'ath_change_percentage': {'usd': -33.3},
            'atl': {'usd': 1.0},
            'atl_change_percentage': {'usd': 9900.0},
            'fully_diluted_valuation': {'usd': market_cap * 1.2},
            'price_change_percentage_1h_in_currency': {'usd': 0.4},
            'price_change_percentage_24h': 2.0,
            'price_change_percentage_7d': 5.0,
            'circulating_supply': 19_000_000,
            'total_supply': 21_000_000,
            'max_supply': 21_000_000,
        },
    }


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def app_context():
    """Install a fresh application context."""
    context = AppContext()
    set_context(context)
    return context


@pytest.fixture
def memory_backend():
    return MemoryCacheBackend(max_size=100)


@pytest.fixture
async def memory_store(memory_backend):
    """Connected cache store over the in-memory backend."""
    store = CacheStore(memory_backend, operation_timeout=1.0, reconnect_interval=30.0)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def failing_store(failing_backend):
    """Cache store whose backend is unreachable."""
    return CacheStore(failing_backend, operation_timeout=0.5, reconnect_interval=30.0)


@pytest.fixture
def memo(memory_store):
    return MemoizedComputation(memory_store)


@pytest.fixture
def sunday_ms():
    return SUNDAY_MS


@pytest.fixture
def chart_factory():
    return make_chart


@pytest.fixture
def market_row_factory():
    return make_market_row


@pytest.fixture
def coin_detail_factory():
    return make_coin_detail


@pytest.fixture
def dict_config():
    return DictConfig
