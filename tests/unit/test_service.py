"""Tests for the volume data service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from crypto_volume_analytics.data.errors import ClientRequestError, NoVolumeDataError
from crypto_volume_analytics.data.memoize import MemoizedComputation
from crypto_volume_analytics.data.service import (
    VolumeDataService,
    normalize_coin_ids,
    open_data_service,
)


@pytest.fixture
def mock_client():
    """CoinGecko client double with async endpoint methods."""
    client = MagicMock()
    client.currency = "usd"
    client.get_market_data = AsyncMock(return_value=[])
    client.get_coin_data = AsyncMock(return_value={})
    client.get_historical_data = AsyncMock(return_value={})
    client.search_coins = AsyncMock(return_value={})
    client.get_trending_coins = AsyncMock(return_value={})
    client.health_check = AsyncMock(return_value=True)
    return client


@pytest.fixture
def service(mock_client, memo):
    return VolumeDataService(mock_client, memo)


@pytest.fixture
def spike_chart(chart_factory):
    """Ten days with one high spike on the last day."""
    return chart_factory([10] * 9 + [100])


class TestNormalizeCoinIds:
    """Test coin id list handling."""

    def test_split_trim_and_drop_blanks(self):
        assert normalize_coin_ids(" bitcoin, ethereum,,  ,solana ", 10) == ["bitcoin", "ethereum", "solana"]

    def test_cap(self):
        assert normalize_coin_ids([f"coin{i}" for i in range(15)], 10) == [f"coin{i}" for i in range(10)]


class TestServiceSettings:
    """Test day clamping and configured limits."""

    def test_defaults(self, service):
        assert service.clamp_days(1) == 7
        assert service.clamp_days(30) == 30
        assert service.clamp_days(1000) == 365
        assert service.clamp_batch_days(60) == 30

    def test_configured_limits(self, mock_client, memo, dict_config):
        config = dict_config({'tracking.max_days': 90, 'tracking.batch_max_coins': 2})
        service = VolumeDataService(mock_client, memo, config)

        assert service.clamp_days(365) == 90
        assert service.batch_max_coins == 2


class TestDailyVolumeTracking:
    """Test per-coin tracking, spikes and heatmaps."""

    @pytest.mark.asyncio
    async def test_tracking(self, service, mock_client, spike_chart):
        mock_client.get_historical_data.return_value = spike_chart

        result = await service.get_daily_volume_tracking("bitcoin", 30)

        assert result['coin_id'] == "bitcoin"
        assert result['period_days'] == 30
        assert len(result['daily_volumes']) == 10
        assert result['volume_spikes'][0]['spike_intensity'] == "high"
        assert result['statistics']['total_days'] == 10
        assert result['statistics']['spike_days'] == 1
        mock_client.get_historical_data.assert_awaited_once_with("bitcoin", 30)

    @pytest.mark.asyncio
    async def test_tracking_is_cached(self, service, mock_client, memory_store, spike_chart):
        mock_client.get_historical_data.return_value = spike_chart

        first = await service.get_daily_volume_tracking("bitcoin", 30)
        second = await service.get_daily_volume_tracking("bitcoin", 30)

        assert first == second
        assert mock_client.get_historical_data.await_count == 1
        assert await memory_store.exists("volume_tracking:bitcoin:30")
        assert await memory_store.exists("historical:bitcoin:30")

    @pytest.mark.asyncio
    async def test_days_are_clamped(self, service, mock_client, spike_chart):
        mock_client.get_historical_data.return_value = spike_chart

        result = await service.get_daily_volume_tracking("bitcoin", 2)

        assert result['period_days'] == 7
        mock_client.get_historical_data.assert_awaited_once_with("bitcoin", 7)

    @pytest.mark.asyncio
    async def test_no_volume_data(self, service, mock_client, memory_store):
        mock_client.get_historical_data.return_value = {'total_volumes': []}

        with pytest.raises(NoVolumeDataError, match="No volume data available for ghost"):
            await service.get_daily_volume_tracking("ghost", 30)

        assert not await memory_store.exists("volume_tracking:ghost:30")

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, service, mock_client):
        mock_client.get_historical_data.side_effect = ClientRequestError("not found", status_code=404)

        with pytest.raises(ClientRequestError):
            await service.get_daily_volume_tracking("ghost", 30)

    @pytest.mark.asyncio
    async def test_spikes(self, service, mock_client, spike_chart):
        mock_client.get_historical_data.return_value = spike_chart

        high = await service.get_volume_spikes("bitcoin", 30, 'high')
        extreme = await service.get_volume_spikes("bitcoin", 30, 'extreme')

        assert high['total_spikes'] == 1
        assert high['summary']['high_spikes'] == 1
        assert high['intensity_filter'] == "high"
        assert extreme['total_spikes'] == 0
        assert extreme['summary']['avg_spike_intensity'] == 0.0

    @pytest.mark.asyncio
    async def test_unknown_spike_filter_rejected_before_fetch(self, service, mock_client):
        with pytest.raises(ValueError):
            await service.get_volume_spikes("bitcoin", 30, 'normal')

        mock_client.get_historical_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_heatmap(self, service, mock_client, spike_chart):
        mock_client.get_historical_data.return_value = spike_chart

        result = await service.get_volume_heatmap("bitcoin", 30)

        assert len(result['heatmap_data']) == 10
        assert result['heatmap_data'][-1]['intensity'] == 3
        assert set(result['weekly_data']) == {"2024-W01", "2024-W02", "2024-W03"}
        assert result['intensity_legend']['0'] == "Normal"


class TestMultipleVolumeTracking:
    """Test the multi-coin fan-out."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, service, mock_client, chart_factory):
        async def historical(coin_id, days):
            if coin_id == "ghost":
                raise ClientRequestError("coin not found", status_code=404)
            return chart_factory([1, 2, 3])

        mock_client.get_historical_data.side_effect = historical

        result = await service.get_multiple_volume_tracking("bitcoin,ghost,ethereum")

        assert result['total_coins_requested'] == 3
        assert result['successful_coins'] == 2
        assert result['failed_coins'] == 1
        assert [coin['coin_id'] for coin in result['coins']] == ["bitcoin", "ethereum"]
        assert all(coin['success'] for coin in result['coins'])
        assert result['errors'][0]['coin_id'] == "ghost"
        assert result['errors'][0]['success'] is False
        assert "coin not found" in result['errors'][0]['error']

    @pytest.mark.asyncio
    async def test_batch_days_are_clamped(self, service, mock_client, chart_factory):
        mock_client.get_historical_data.return_value = chart_factory([1, 2, 3])

        result = await service.get_multiple_volume_tracking(["bitcoin"], days=90)

        assert result['period_days'] == 30
        mock_client.get_historical_data.assert_awaited_once_with("bitcoin", 30)

    @pytest.mark.asyncio
    async def test_requires_a_coin(self, service):
        with pytest.raises(ValueError):
            await service.get_multiple_volume_tracking(" , ")


class TestMarketOperations:
    """Test market-wide operations."""

    @pytest.fixture
    def market_rows(self, market_row_factory):
        return [
            market_row_factory("bitcoin", 20e9, 800e9),
            market_row_factory("ethereum", 10e9, 100e9),
            market_row_factory("dust", 100.0, 0.0),
        ]

    @pytest.mark.asyncio
    async def test_market_data(self, service, mock_client, memory_store, market_rows):
        mock_client.get_market_data.return_value = market_rows

        result = await service.get_market_data(per_page=3, page=2)

        assert [coin['id'] for coin in result['coins']] == ["bitcoin", "ethereum", "dust"]
        assert result['coins'][1]['liquidity_score'] == 4
        assert result['pagination'] == {'page': 2, 'per_page': 3}
        mock_client.get_market_data.assert_awaited_once_with(per_page=3, page=2)
        assert await memory_store.exists("market_data:2:3")

    @pytest.mark.asyncio
    async def test_volume_comparison(self, service, mock_client, market_rows):
        mock_client.get_market_data.return_value = market_rows

        result = await service.get_volume_comparison(limit=3)

        assert result['total_coins'] == 3
        mock_client.get_market_data.assert_awaited_once_with(per_page=3)

    @pytest.mark.asyncio
    async def test_volume_leaders_scan_the_market(self, service, mock_client, market_rows):
        mock_client.get_market_data.return_value = market_rows

        result = await service.get_volume_leaders("losers", limit=2)

        assert result['type'] == "losers"
        assert len(result['coins']) == 2
        mock_client.get_market_data.assert_awaited_once_with(per_page=250)

    @pytest.mark.asyncio
    async def test_volume_analytics(self, service, mock_client, market_rows):
        mock_client.get_market_data.return_value = market_rows

        result = await service.get_volume_analytics()

        assert result['market_summary']['coins_analyzed'] == 3
        assert result['liquidity_distribution']['poor'] == 2

    @pytest.mark.asyncio
    async def test_trending(self, service, mock_client, market_rows):
        mock_client.get_market_data.return_value = market_rows
        mock_client.get_trending_coins.return_value = {'coins': [
            {'item': {'id': 'bitcoin', 'name': 'Bitcoin'}},
            {'item': {'id': 'pepe', 'name': 'Pepe'}},
        ]}

        result = await service.get_trending_coins()

        assert result['trending_coins'][0]['volume_data']['id'] == "bitcoin"
        assert result['trending_coins'][1]['volume_data'] is None
        mock_client.get_market_data.assert_awaited_once_with(per_page=50)

    @pytest.mark.asyncio
    async def test_search_is_capped(self, service, mock_client, memory_store):
        mock_client.search_coins.return_value = {'coins': [{'id': f"coin{i}"} for i in range(30)]}

        result = await service.search_coins("coin")

        assert len(result['coins']) == 20
        assert result['query'] == "coin"
        assert await memory_store.exists("search:coin")


class TestCoinOperations:
    """Test per-coin comparisons and detailed analysis."""

    @pytest.mark.asyncio
    async def test_coin_volume_comparison(self, service, mock_client, coin_detail_factory, chart_factory):
        mock_client.get_coin_data.return_value = coin_detail_factory("bitcoin", 60e9, 600e9)
        mock_client.get_historical_data.side_effect = lambda coin_id, days: chart_factory([1.0] * days)

        result = await service.get_coin_volume_comparison("bitcoin")

        assert result['volume_data']['volume_7d_total'] == 7.0
        assert result['volume_data']['volume_30d_total'] == 30.0
        assert result['volume_data']['liquidity_score'] == 4
        assert mock_client.get_historical_data.await_count == 2

    @pytest.mark.asyncio
    async def test_detailed_analysis_reports_failures(self, service, mock_client,
                                                      coin_detail_factory, chart_factory):
        async def coin_data(coin_id):
            if coin_id == "ghost":
                raise ClientRequestError("coin not found", status_code=404)
            return coin_detail_factory(coin_id, 1.0, 1500.0)

        mock_client.get_coin_data.side_effect = coin_data
        mock_client.get_historical_data.return_value = chart_factory([100.0, 150.0])

        result = await service.get_detailed_volume_analysis("bitcoin,ghost")

        assert result['coin_count'] == 1
        assert result['coins'][0]['id'] == "bitcoin"
        assert result['coins'][0]['volume_24h_change_percentage'] == pytest.approx(50.0)
        assert result['errors'][0]['coin_id'] == "ghost"

    @pytest.mark.asyncio
    async def test_coin_data_shared_cache(self, service, mock_client, coin_detail_factory):
        mock_client.get_coin_data.return_value = coin_detail_factory("bitcoin", 1.0, 1.0)

        await service.get_coin_data("bitcoin")
        await service.get_coin_data("bitcoin")

        mock_client.get_coin_data.assert_awaited_once_with("bitcoin")


class TestDegradedCache:
    """Test that the service keeps answering without a cache."""

    @pytest.mark.asyncio
    async def test_tracking_without_cache(self, mock_client, failing_store, spike_chart):
        service = VolumeDataService(mock_client, MemoizedComputation(failing_store))
        mock_client.get_historical_data.return_value = spike_chart

        first = await service.get_daily_volume_tracking("bitcoin", 30)
        await service.get_daily_volume_tracking("bitcoin", 30)

        assert first['statistics']['spike_days'] == 1
        assert mock_client.get_historical_data.await_count == 2

    @pytest.mark.asyncio
    async def test_health_check(self, mock_client, failing_store):
        service = VolumeDataService(mock_client, MemoizedComputation(failing_store))

        health = await service.health_check()

        assert health['cache'] is False
        assert health['upstream'] is True


class TestOpenDataService:
    """Test building the service from configuration."""

    @pytest.mark.asyncio
    async def test_open_with_memory_cache(self, dict_config):
        config = dict_config({'cache.backend': 'memory', 'tracking.max_days': 90,
                              'coingecko.currency': 'eur', 'cache.coalesce': True})

        async with open_data_service(config) as service:
            assert service.store.backend_name == "memory"
            assert service.store.health()
            assert service.memo.coalesce is True
            assert service.client.currency == "eur"
            assert service.max_days == 90

        assert service.client._session is None
