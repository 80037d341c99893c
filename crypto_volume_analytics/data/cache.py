"""Category-aware cache store with health tracking and graceful degradation."""

import asyncio
import dataclasses
import fnmatch
import json
import time
from collections import OrderedDict
from datetime import date, datetime, timezone, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Dict, List, Union
import logging

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from .models import CacheCategory, CacheEntry

logger = logging.getLogger(__name__)

# Errors that mean the backing service is gone rather than a single bad command
CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)

_FAILED = object()


class CacheState(Enum):
    """Connectivity of the cache backend."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(value: Any) -> str:
    """Serialize a cache value to JSON text."""
    return json.dumps(value, default=_json_default)


class MemoryCacheBackend:
    """In-process backend speaking the subset of Redis commands the store uses.

    Entries carry their own expiry and are evicted least recently used first
    once ``max_size`` is exceeded.
    """

    name = "memory"

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._evictions = 0

    async def ping(self) -> bool:
        return True

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def setex(self, key: str, ttl: int, value: str,
                    category: Optional[CacheCategory] = None) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl) if ttl > 0 else None
            self._entries[key] = CacheEntry(key=key, value=value, category=category, expires_at=expires_at)
            self._entries.move_to_end(key)

            while len(self._entries) > self.max_size:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                self._evictions += 1
            return True

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            return removed

    async def exists(self, *keys: str) -> int:
        async with self._lock:
            return sum(1 for key in keys if self._live_entry(key) is not None)

    async def flushall(self) -> bool:
        async with self._lock:
            self._entries.clear()
            return True

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            return [key for key in list(self._entries)
                    if self._live_entry(key) is not None and fnmatch.fnmatchcase(key, pattern)]

    async def ttl(self, key: str) -> int:
        """Remaining TTL, -2 for a missing key and -1 for no expiry (Redis semantics)."""
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return -2
            return entry.remaining_ttl

    async def info(self, section: Optional[str] = None) -> Dict[str, Any]:
        async with self._lock:
            return {
                'connected_clients': 1,
                'keys': len(self._entries),
                'max_size': self.max_size,
                'evictions': self._evictions,
            }

    async def aclose(self) -> None:
        return None


class CacheStore:
    """Key/value store with per-category TTL that never fails its callers.

    The store wraps a Redis-compatible async client. Any backend failure is
    logged and turned into a miss (``get``) or ``False`` (``set``,
    ``exists``, ``delete``, ``flush_all``). Connection errors and timeouts
    move the store to ``DISCONNECTED``; in that state operations short-circuit
    to the sentinel and only re-probe the backend with ``PING`` once every
    ``reconnect_interval`` seconds.
    """

    def __init__(self, client: Any, backend_name: Optional[str] = None,
                 operation_timeout: float = 2.0, reconnect_interval: float = 30.0):
        self._client = client
        self.backend_name = backend_name or getattr(client, 'name', 'redis')
        self.operation_timeout = operation_timeout
        self.reconnect_interval = reconnect_interval

        self._state = CacheState.DISCONNECTED
        self._last_attempt: Optional[float] = None

        self._stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'errors': 0,
        }

    @property
    def state(self) -> CacheState:
        return self._state

    def health(self) -> bool:
        """Whether the backend is currently reachable."""
        return self._state is CacheState.CONNECTED

    async def connect(self) -> bool:
        """Probe the backend and update the connection state."""
        self._last_attempt = time.monotonic()
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self.operation_timeout)
        except Exception as e:
            if self._state is CacheState.CONNECTED:
                logger.warning(f"Lost connection to {self.backend_name} cache: {e}")
            else:
                logger.warning(f"Failed to connect to {self.backend_name} cache: {e}")
            self._state = CacheState.DISCONNECTED
            return False

        if self._state is not CacheState.CONNECTED:
            logger.info(f"Connected to {self.backend_name} cache")
        self._state = CacheState.CONNECTED
        return True

    async def close(self) -> None:
        """Close the backend connection."""
        try:
            await self._client.aclose()
        except Exception as e:
            logger.debug(f"Error closing {self.backend_name} cache: {e}")
        self._state = CacheState.DISCONNECTED

    async def _ensure_connected(self) -> bool:
        if self._state is CacheState.CONNECTED:
            return True
        if (self._last_attempt is not None
                and time.monotonic() - self._last_attempt < self.reconnect_interval):
            return False
        return await self.connect()

    def _mark_disconnected(self, operation: str, error: BaseException) -> None:
        self._stats['errors'] += 1
        self._last_attempt = time.monotonic()
        if self._state is CacheState.CONNECTED:
            logger.warning(f"Cache {operation} failed, continuing without cache: {error!r}")
        else:
            logger.debug(f"Cache {operation} failed while disconnected: {error!r}")
        self._state = CacheState.DISCONNECTED

    async def _execute(self, operation: str, command: str, *args: Any) -> Any:
        """Run one backend command, returning ``_FAILED`` instead of raising."""
        if not await self._ensure_connected():
            return _FAILED

        try:
            return await asyncio.wait_for(getattr(self._client, command)(*args),
                                          timeout=self.operation_timeout)
        except CONNECTION_ERRORS as e:
            self._mark_disconnected(operation, e)
        except Exception as e:
            self._stats['errors'] += 1
            logger.error(f"Cache {operation} error: {e}")
        return _FAILED

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value for ``key`` or ``None`` when absent or unavailable."""
        raw = await self._execute('get', 'get', key)
        if raw is _FAILED or raw is None:
            self._stats['misses'] += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._stats['errors'] += 1
            self._stats['misses'] += 1
            logger.error(f"Cache get error: undecodable value for {key}: {e}")
            return None

        self._stats['hits'] += 1
        return value

    async def set(self, key: str, value: Any,
                  category: Union[CacheCategory, str] = CacheCategory.COIN_DATA) -> bool:
        """Store ``value`` under ``key`` with the TTL of ``category``.

        Returns:
            False when the value could not be stored; callers proceed uncached.
        """
        category = CacheCategory(category)

        try:
            payload = serialize(value)
        except (TypeError, ValueError) as e:
            self._stats['errors'] += 1
            logger.error(f"Cache set error: cannot serialize value for {key}: {e}")
            return False

        result = await self._execute('set', 'setex', key, category.ttl, payload)
        if result is _FAILED:
            return False

        self._stats['sets'] += 1
        return True

    async def exists(self, key: str) -> bool:
        result = await self._execute('exists', 'exists', key)
        return result is not _FAILED and bool(result)

    async def delete(self, key: str) -> bool:
        result = await self._execute('delete', 'delete', key)
        return result is not _FAILED

    async def flush_all(self) -> bool:
        result = await self._execute('flush', 'flushall')
        return result is not _FAILED

    async def keys(self, pattern: str = "*", limit: int = 50) -> Optional[Dict[str, Any]]:
        """List keys matching ``pattern`` with their remaining TTL.

        Returns:
            Key listing, or None when the cache is unavailable
        """
        keys = await self._execute('keys', 'keys', pattern)
        if keys is _FAILED:
            return None

        keys = sorted(k.decode() if isinstance(k, bytes) else k for k in keys)
        details = []
        for key in keys[:limit]:
            ttl = await self._execute('ttl', 'ttl', key)
            if ttl is _FAILED:
                details.append({'key': key, 'error': 'ttl unavailable'})
            else:
                details.append({'key': key, 'ttl': ttl})

        return {
            'total_keys': len(keys),
            'showing': len(details),
            'keys': details,
            'pattern': pattern,
        }

    async def self_test(self) -> Dict[str, Any]:
        """Round-trip a throwaway value through set, get, exists and delete."""
        test_key = f"cache_test_{int(time.time() * 1000)}"
        test_value = {
            'message': 'Cache test',
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

        stored = await self.set(test_key, test_value, CacheCategory.COIN_DATA)
        fetched = await self.get(test_key)
        exists = await self.exists(test_key)
        await self.delete(test_key)

        tests = {
            'set': stored,
            'get': fetched is not None,
            'exists': exists,
            'data_integrity': fetched == test_value,
        }
        return {
            'success': all(tests.values()),
            'tests': tests,
        }

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self._stats['hits'] + self._stats['misses']
        hit_rate = (self._stats['hits'] / total_requests * 100) if total_requests > 0 else 0

        return {
            **self._stats,
            'hit_rate': round(hit_rate, 2),
        }

    async def status(self) -> Dict[str, Any]:
        """Operational snapshot: health flag, counters and backend info."""
        status: Dict[str, Any] = {
            'is_healthy': self.health(),
            'state': self._state.value,
            'backend': self.backend_name,
            'stats': self.get_stats(),
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

        if self.health():
            info = await self._execute('info', 'info')
            if info is _FAILED:
                status['backend_info'] = {'error': 'Could not retrieve backend info'}
            else:
                status['backend_info'] = _summarize_info(info)

        return status


def _summarize_info(info: Dict[str, Any]) -> Dict[str, Any]:
    summary = {
        'connected_clients': info.get('connected_clients', 'unknown'),
        'used_memory_human': info.get('used_memory_human', 'unknown'),
    }
    keyspace = info.get('db0')
    if isinstance(keyspace, dict):
        summary['keyspace'] = keyspace
    elif 'keys' in info:
        summary['keyspace'] = {'keys': info['keys']}
    else:
        summary['keyspace'] = 'no keys'
    return summary


def create_cache_store(config: Any) -> CacheStore:
    """Build a cache store from configuration.

    Args:
        config: Object exposing ``get(dotted_key, default)``, e.g. ConfigManager

    Returns:
        CacheStore over Redis (``cache.backend: redis``) or the in-memory backend
    """
    backend = str(config.get('cache.backend', 'redis')).lower()
    timeout = float(config.get('cache.operation_timeout', 2.0))
    reconnect_interval = float(config.get('cache.reconnect_interval', 30.0))

    if backend == 'memory':
        client = MemoryCacheBackend(max_size=int(config.get('cache.max_size', 1000)))
        return CacheStore(client, 'memory', timeout, reconnect_interval)

    if backend != 'redis':
        raise ValueError(f"Unknown cache backend: {backend}")

    client = aioredis.from_url(
        config.get('redis.url', 'redis://localhost:6379'),
        password=config.get('redis.password') or None,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )
    return CacheStore(client, 'redis', timeout, reconnect_interval)
