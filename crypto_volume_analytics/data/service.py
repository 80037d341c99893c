"""Volume data service: upstream fetches, analytics and caching behind one facade."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union
import logging

from ..analytics.heatmap import build_volume_heatmap
from ..analytics.market import (
    calculate_coin_volume_comparison,
    calculate_detailed_volume,
    filter_spikes_by_intensity,
    rank_volume_leaders,
    summarize_market_volume,
    summarize_spikes,
)
from ..analytics.models import BatchResult, LeaderType
from ..analytics.volume import (
    build_daily_volumes,
    calculate_volume_comparisons,
    calculate_volume_stats,
    detect_volume_spikes,
)
from .cache import CacheStore, create_cache_store
from .clients.coingecko import COINGECKO_BASE_URL, CoinGeckoClient
from .errors import NoVolumeDataError
from .memoize import MemoizedComputation
from .models import CacheCategory, MarketSnapshot, volume_series_from_chart

logger = logging.getLogger(__name__)

# Market rows analysed by the leader boards and the market overview
MARKET_SCAN_SIZE = 250
TRENDING_MARKET_SIZE = 50
SEARCH_RESULT_LIMIT = 20


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clamp(value: int, lower: int, upper: int) -> int:
    return min(max(int(value), lower), upper)


def normalize_coin_ids(coin_ids: Union[str, Iterable[str]], limit: int) -> List[str]:
    """Split, trim and cap a coin id list, dropping blank entries."""
    if isinstance(coin_ids, str):
        coin_ids = coin_ids.split(',')
    ids = [coin_id.strip() for coin_id in coin_ids if coin_id and coin_id.strip()]
    return ids[:limit]


class VolumeDataService:
    """Serve volume analytics for coins and the market, memoized per request shape.

    Every public operation resolves through ``get_or_set`` with a deterministic
    key, so repeated calls within a category's TTL are answered from the cache.
    Upstream failures propagate to the caller except in the multi-coin
    operations, which report them per coin.
    """

    def __init__(self, client: CoinGeckoClient, memo: MemoizedComputation, config: Optional[Any] = None):
        """Initialize the service.

        Args:
            client: Started CoinGecko client
            memo: Memoization layer over the cache store
            config: Optional object exposing ``get(dotted_key, default)``
        """
        self.client = client
        self.memo = memo

        def setting(key: str, default: int) -> int:
            return int(config.get(key, default)) if config is not None else default

        self.min_days = setting('tracking.min_days', 7)
        self.max_days = setting('tracking.max_days', 365)
        self.batch_max_days = setting('tracking.batch_max_days', 30)
        self.batch_max_coins = setting('tracking.batch_max_coins', 10)

    @property
    def store(self) -> CacheStore:
        return self.memo.store

    def clamp_days(self, days: int) -> int:
        return _clamp(days, self.min_days, self.max_days)

    def clamp_batch_days(self, days: int) -> int:
        return _clamp(days, self.min_days, self.batch_max_days)

    # Upstream reads

    async def get_market_data(self, per_page: int = 50, page: int = 1) -> Dict[str, Any]:
        """One page of the market with volume comparisons per coin."""
        async def produce():
            rows = await self.client.get_market_data(per_page=per_page, page=page)
            comparisons = calculate_volume_comparisons(MarketSnapshot.from_market_row(row) for row in rows)
            return {
                'coins': [comparison.to_dict() for comparison in comparisons],
                'pagination': {'page': page, 'per_page': per_page},
            }

        return await self.memo.get_or_set(f"market_data:{page}:{per_page}", produce,
                                          CacheCategory.MARKET_DATA)

    async def get_coin_data(self, coin_id: str) -> Dict[str, Any]:
        """Raw detail record of one coin."""
        return await self.memo.get_or_set(f"coin_data:{coin_id}",
                                          lambda: self.client.get_coin_data(coin_id),
                                          CacheCategory.COIN_DATA)

    async def get_historical_data(self, coin_id: str, days: int) -> Dict[str, Any]:
        """Raw market chart of one coin over ``days``."""
        return await self.memo.get_or_set(f"historical:{coin_id}:{days}",
                                          lambda: self.client.get_historical_data(coin_id, days),
                                          CacheCategory.HISTORICAL_DATA)

    async def search_coins(self, query: str) -> Dict[str, Any]:
        async def produce():
            results = await self.client.search_coins(query)
            return {
                'coins': (results.get('coins') or [])[:SEARCH_RESULT_LIMIT],
                'query': query,
            }

        return await self.memo.get_or_set(f"search:{query}", produce, CacheCategory.SEARCH_RESULTS)

    async def get_trending_coins(self) -> Dict[str, Any]:
        """Trending coins enriched with the volume comparison of the top market rows."""
        async def produce():
            trending, rows = await asyncio.gather(
                self.client.get_trending_coins(),
                self.client.get_market_data(per_page=TRENDING_MARKET_SIZE),
            )
            comparisons = calculate_volume_comparisons(MarketSnapshot.from_market_row(row) for row in rows)
            by_id = {comparison.id: comparison for comparison in comparisons}

            trending_coins = []
            for entry in trending.get('coins') or []:
                item = dict(entry.get('item') or {})
                comparison = by_id.get(item.get('id'))
                item['volume_data'] = comparison.to_dict() if comparison else None
                trending_coins.append(item)

            return {
                'trending_coins': trending_coins,
                'top_volume_gainers': [c.to_dict() for c in rank_volume_leaders(comparisons, LeaderType.GAINERS)],
            }

        return await self.memo.get_or_set("trending_data", produce, CacheCategory.TRENDING_DATA)

    # Volume comparison

    async def get_volume_comparison(self, limit: int = 100) -> Dict[str, Any]:
        """Volume comparison of the ``limit`` largest coins by market cap."""
        async def produce():
            rows = await self.client.get_market_data(per_page=limit)
            comparisons = calculate_volume_comparisons(MarketSnapshot.from_market_row(row) for row in rows)
            return {
                'coins': [comparison.to_dict() for comparison in comparisons],
                'total_coins': len(comparisons),
                'generated_at': _now(),
            }

        return await self.memo.get_or_set(f"volume_comparison:market:{limit}", produce,
                                          CacheCategory.MARKET_DATA)

    async def get_coin_volume_comparison(self, coin_id: str) -> Dict[str, Any]:
        """Measured 7d against 30d volume of one coin."""
        async def produce():
            detail, chart_7d, chart_30d = await asyncio.gather(
                self.get_coin_data(coin_id),
                self.get_historical_data(coin_id, 7),
                self.get_historical_data(coin_id, 30),
            )
            snapshot = MarketSnapshot.from_coin_detail(detail, self.client.currency)
            return calculate_coin_volume_comparison(snapshot,
                                                    volume_series_from_chart(chart_7d),
                                                    volume_series_from_chart(chart_30d))

        return await self.memo.get_or_set(f"volume_comparison:{coin_id}", produce, CacheCategory.COIN_DATA)

    # Daily volume tracking

    async def _track(self, coin_id: str, days: int) -> Dict[str, Any]:
        chart = await self.get_historical_data(coin_id, days)
        pairs = volume_series_from_chart(chart)
        if not pairs:
            raise NoVolumeDataError(f"No volume data available for {coin_id}")

        points = build_daily_volumes(pairs)
        spikes = detect_volume_spikes(points)

        return {
            'coin_id': coin_id,
            'period_days': days,
            'daily_volumes': [point.to_dict() for point in points],
            'volume_spikes': spikes,
            'statistics': calculate_volume_stats(points),
            'points': points,
        }

    async def get_daily_volume_tracking(self, coin_id: str, days: int = 30) -> Dict[str, Any]:
        """Daily volumes, spikes and statistics of one coin.

        Raises:
            NoVolumeDataError: If the upstream series is empty
        """
        days = self.clamp_days(days)

        async def produce():
            return self._tracking_document(await self._track(coin_id, days))

        return await self.memo.get_or_set(f"volume_tracking:{coin_id}:{days}", produce,
                                          CacheCategory.VOLUME_TRACKING)

    @staticmethod
    def _tracking_document(tracking: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'coin_id': tracking['coin_id'],
            'period_days': tracking['period_days'],
            'daily_volumes': tracking['daily_volumes'],
            'volume_spikes': [spike.to_dict() for spike in tracking['volume_spikes']],
            'statistics': tracking['statistics'].to_dict(),
            'generated_at': _now(),
        }

    async def get_volume_spikes(self, coin_id: str, days: int = 30,
                                intensity: str = 'moderate') -> Dict[str, Any]:
        """Spikes of one coin at or above ``intensity``."""
        days = self.clamp_days(days)

        async def produce():
            tracking = await self._track(coin_id, days)
            spikes = filter_spikes_by_intensity(tracking['volume_spikes'], intensity)
            return {
                'coin_id': coin_id,
                'period_days': days,
                'intensity_filter': intensity,
                'total_spikes': len(spikes),
                'spikes': [spike.to_dict() for spike in spikes],
                'summary': summarize_spikes(spikes),
                'generated_at': _now(),
            }

        # Reject unknown filters before touching cache or upstream
        filter_spikes_by_intensity([], intensity)
        return await self.memo.get_or_set(f"volume_spikes:{coin_id}:{days}:{intensity}", produce,
                                          CacheCategory.VOLUME_TRACKING)

    async def get_volume_heatmap(self, coin_id: str, days: int = 30) -> Dict[str, Any]:
        """Calendar heatmap of one coin's daily volume."""
        days = self.clamp_days(days)

        async def produce():
            tracking = await self._track(coin_id, days)
            heatmap = build_volume_heatmap(tracking['points'], tracking['volume_spikes'])
            return {
                'coin_id': coin_id,
                'period_days': days,
                **heatmap.to_dict(),
                'statistics': tracking['statistics'].to_dict(),
                'generated_at': _now(),
            }

        return await self.memo.get_or_set(f"volume_heatmap:{coin_id}:{days}", produce,
                                          CacheCategory.VOLUME_TRACKING)

    async def get_multiple_volume_tracking(self, coin_ids: Union[str, Iterable[str]],
                                           days: int = 7) -> Dict[str, Any]:
        """Track several coins concurrently; one failing coin does not fail the batch.

        Raises:
            ValueError: If no coin id remains after normalization
        """
        ids = normalize_coin_ids(coin_ids, self.batch_max_coins)
        if not ids:
            raise ValueError("At least one coin id is required")
        days = self.clamp_batch_days(days)

        async def track_one(coin_id: str) -> Dict[str, Any]:
            return self._tracking_document(await self._track(coin_id, days))

        async def produce():
            outcomes = await asyncio.gather(*(track_one(coin_id) for coin_id in ids),
                                            return_exceptions=True)
            batch = BatchResult(requested=len(ids))
            for coin_id, outcome in zip(ids, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Error tracking volume for {coin_id}: {outcome}")
                    batch.errors.append({'success': False, 'coin_id': coin_id, 'error': str(outcome)})
                else:
                    batch.successes.append({'success': True, **outcome})

            return {
                'period_days': days,
                'total_coins_requested': batch.requested,
                'successful_coins': batch.successful,
                'failed_coins': batch.failed,
                'coins': batch.successes,
                'errors': batch.errors,
                'generated_at': _now(),
            }

        return await self.memo.get_or_set(f"multi_volume_tracking:{','.join(ids)}:{days}", produce,
                                          CacheCategory.VOLUME_TRACKING)

    # Market analytics

    async def _market_comparisons(self):
        rows = await self.client.get_market_data(per_page=MARKET_SCAN_SIZE)
        return calculate_volume_comparisons(MarketSnapshot.from_market_row(row) for row in rows)

    async def get_volume_leaders(self, leader_type: Union[LeaderType, str] = LeaderType.GAINERS,
                                 limit: int = 10) -> Dict[str, Any]:
        """Coins with the largest (gainers) or smallest (losers) volume change."""
        leader_type = LeaderType(leader_type)

        async def produce():
            leaders = rank_volume_leaders(await self._market_comparisons(), leader_type, limit)
            return {
                'type': leader_type.value,
                'coins': [comparison.to_dict() for comparison in leaders],
                'generated_at': _now(),
            }

        return await self.memo.get_or_set(f"volume_leaders:{leader_type.value}:{limit}", produce,
                                          CacheCategory.MARKET_DATA)

    async def get_volume_analytics(self) -> Dict[str, Any]:
        """Market-wide volume and liquidity overview."""
        async def produce():
            return summarize_market_volume(await self._market_comparisons())

        return await self.memo.get_or_set("volume_analytics_overview", produce, CacheCategory.MARKET_DATA)

    async def _detailed_one(self, coin_id: str) -> Dict[str, Any]:
        detail, chart_1d, chart_7d = await asyncio.gather(
            self.get_coin_data(coin_id),
            self.get_historical_data(coin_id, 1),
            self.get_historical_data(coin_id, 7),
        )
        snapshot = MarketSnapshot.from_coin_detail(detail, self.client.currency)
        analysis = calculate_detailed_volume(snapshot,
                                             volume_series_from_chart(chart_1d),
                                             volume_series_from_chart(chart_7d))
        analysis['id'] = coin_id
        return analysis

    async def get_detailed_volume_analysis(self, coin_ids: Union[str, Iterable[str]]) -> Dict[str, Any]:
        """Latest-sample volume analysis for several coins.

        Raises:
            ValueError: If no coin id remains after normalization
        """
        ids = normalize_coin_ids(coin_ids, self.batch_max_coins)
        if not ids:
            raise ValueError("At least one coin id is required")

        async def produce():
            outcomes = await asyncio.gather(*(self._detailed_one(coin_id) for coin_id in ids),
                                            return_exceptions=True)
            batch = BatchResult(requested=len(ids))
            for coin_id, outcome in zip(ids, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Error fetching volume data for {coin_id}: {outcome}")
                    batch.errors.append({'coin_id': coin_id, 'error': str(outcome)})
                else:
                    batch.successes.append(outcome)

            return {
                'coins': batch.successes,
                'errors': batch.errors,
                'coin_count': batch.successful,
                'analysis_timestamp': _now(),
            }

        return await self.memo.get_or_set(f"detailed_volume_analysis:{','.join(ids)}", produce,
                                          CacheCategory.COIN_DATA)

    async def health_check(self) -> Dict[str, Any]:
        """Cache and upstream reachability."""
        upstream = await self.client.health_check()
        return {
            'cache': self.store.health(),
            'upstream': upstream,
            'timestamp': _now(),
        }


@asynccontextmanager
async def open_data_service(config: Any) -> AsyncIterator[VolumeDataService]:
    """Build a VolumeDataService from configuration and release it on exit.

    Args:
        config: Object exposing ``get(dotted_key, default)``, e.g. ConfigManager
    """
    client = CoinGeckoClient(
        api_key=config.get('coingecko.api_key'),
        base_url=config.get('coingecko.base_url', COINGECKO_BASE_URL),
        timeout=int(config.get('coingecko.timeout', 10)),
        max_retries=int(config.get('coingecko.max_retries', 2)),
        currency=config.get('coingecko.currency', 'usd'),
    )
    store = create_cache_store(config)
    memo = MemoizedComputation(store, coalesce=bool(config.get('cache.coalesce', False)))

    await client.start()
    await store.connect()
    try:
        yield VolumeDataService(client, memo, config)
    finally:
        await store.close()
        await client.stop()
