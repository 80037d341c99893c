"""Cache-aside memoization over a CacheStore."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Union
import logging

from .cache import CacheStore
from .models import CacheCategory

logger = logging.getLogger(__name__)

Producer = Callable[[], Union[Any, Awaitable[Any]]]


class MemoizedComputation:
    """Get-or-set orchestration between a cache store and a producer.

    A hit is returned exactly as stored, without refreshing its TTL. On a
    miss the producer runs, a non-``None`` result is written back on a best
    effort basis, and the produced value is returned whether or not the write
    succeeded. Producer failures propagate unchanged and nothing is cached.

    With ``coalesce=True`` concurrent misses on the same key share a single
    producer call; otherwise every caller that misses runs its own producer.
    """

    def __init__(self, store: CacheStore, coalesce: bool = False):
        self.store = store
        self.coalesce = coalesce
        self._inflight: Dict[str, asyncio.Future] = {}

    async def get_or_set(self, key: str, producer: Producer,
                         category: Union[CacheCategory, str] = CacheCategory.COIN_DATA) -> Any:
        """Return the cached value for ``key`` or produce, store and return it.

        Args:
            key: Deterministic cache key
            producer: Zero-argument callable, sync or async, computing the value
            category: Cache category selecting the TTL

        Returns:
            Cached or newly produced value
        """
        cached = await self.store.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        logger.debug(f"Cache miss for {key}")

        if not self.coalesce:
            return await self._produce(key, producer, category)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._produce(key, producer, category))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            logger.debug(f"Joining in-flight computation for {key}")

        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _produce(self, key: str, producer: Producer,
                       category: Union[CacheCategory, str]) -> Any:
        value = producer()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            stored = await self.store.set(key, value, category)
            if not stored:
                logger.debug(f"Proceeding without caching {key}")

        return value
