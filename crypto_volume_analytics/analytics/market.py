"""Market-wide and per-coin volume summaries built on the volume analytics."""

from typing import Any, Dict, List, Optional, Sequence, Union

from ..data.models import MarketSnapshot, PriceChangeInterval, VolumePair
from .models import LeaderType, SpikeIntensity, VolumeComparison, VolumeSpike
from .volume import (
    calculate_liquidity_score,
    calculate_volume_change,
    calculate_volume_metrics,
    calculate_volume_to_mcap_ratio,
)

TOP_N = 10

# (lower bound exclusive, bucket), evaluated top to bottom
VOLUME_BUCKETS = (
    (10_000_000_000, 'ultra_high_volume'),
    (1_000_000_000, 'very_high_volume'),
    (100_000_000, 'high_volume'),
    (10_000_000, 'medium_volume'),
    (1_000_000, 'low_volume'),
)

# (lower bound inclusive, bucket), evaluated top to bottom
LIQUIDITY_BUCKETS = (
    (9, 'excellent'),
    (7, 'very_good'),
    (5, 'good'),
    (3, 'fair'),
)

INTENSITY_FILTERS = {
    'moderate': (SpikeIntensity.MODERATE, SpikeIntensity.HIGH, SpikeIntensity.EXTREME),
    'high': (SpikeIntensity.HIGH, SpikeIntensity.EXTREME),
    'extreme': (SpikeIntensity.EXTREME,),
}


def _volume_bucket(volume_24h: float) -> str:
    for bound, bucket in VOLUME_BUCKETS:
        if volume_24h > bound:
            return bucket
    return 'very_low_volume'


def _liquidity_bucket(score: int) -> str:
    for bound, bucket in LIQUIDITY_BUCKETS:
        if score >= bound:
            return bucket
    return 'poor'


def rank_volume_leaders(comparisons: Sequence[VolumeComparison],
                        leader_type: Union[LeaderType, str] = LeaderType.GAINERS,
                        limit: int = TOP_N) -> List[VolumeComparison]:
    """Sort by 7d-to-30d volume change, descending for gainers and ascending for losers."""
    leader_type = LeaderType(leader_type)
    ranked = sorted(comparisons, key=lambda c: c.volume_change_7d_to_30d,
                    reverse=leader_type is LeaderType.GAINERS)
    return ranked[:max(limit, 0)]


def summarize_market_volume(comparisons: Sequence[VolumeComparison]) -> Dict[str, Any]:
    """Market totals, distributions and top lists over volume comparisons."""
    count = len(comparisons)

    total_volume_24h = sum(c.volume_24h for c in comparisons)
    total_market_cap = sum(c.market_cap for c in comparisons)

    volume_distribution = {bucket: 0 for _, bucket in VOLUME_BUCKETS}
    volume_distribution['very_low_volume'] = 0
    liquidity_distribution = {bucket: 0 for _, bucket in LIQUIDITY_BUCKETS}
    liquidity_distribution['poor'] = 0

    for comparison in comparisons:
        volume_distribution[_volume_bucket(comparison.volume_24h)] += 1
        liquidity_distribution[_liquidity_bucket(comparison.liquidity_score)] += 1

    def top(items, key, reverse=True):
        return [c.to_dict() for c in sorted(items, key=key, reverse=reverse)[:TOP_N]]

    return {
        'market_summary': {
            'total_volume_24h': total_volume_24h,
            'estimated_total_volume_7d': sum(c.estimated_volume_7d for c in comparisons),
            'estimated_total_volume_30d': sum(c.estimated_volume_30d for c in comparisons),
            'total_market_cap': total_market_cap,
            'volume_to_mcap_ratio': calculate_volume_to_mcap_ratio(total_volume_24h, total_market_cap),
            'average_volume_change': (
                sum(c.volume_change_7d_to_30d for c in comparisons) / count if count else 0.0),
            'average_volume_to_mcap_ratio': (
                sum(c.volume_to_mcap_ratio for c in comparisons) / count if count else 0.0),
            'coins_analyzed': count,
        },
        'volume_distribution': volume_distribution,
        'liquidity_distribution': liquidity_distribution,
        'top_volume_gainers': top([c for c in comparisons if c.volume_change_7d_to_30d > 0],
                                  key=lambda c: c.volume_change_7d_to_30d),
        'top_volume_losers': top([c for c in comparisons if c.volume_change_7d_to_30d < 0],
                                 key=lambda c: c.volume_change_7d_to_30d, reverse=False),
        'highest_liquidity': top(comparisons, key=lambda c: c.liquidity_score),
        'lowest_liquidity': top(comparisons, key=lambda c: c.liquidity_score, reverse=False),
        'highest_volume_24h': top(comparisons, key=lambda c: c.volume_24h),
    }


def calculate_coin_volume_comparison(snapshot: MarketSnapshot,
                                     volumes_7d: Sequence[VolumePair],
                                     volumes_30d: Sequence[VolumePair]) -> Dict[str, Any]:
    """Compare measured 7d and 30d volume totals of one coin.

    Unlike the market-wide comparison, the totals here are sums of the
    historical samples rather than extrapolations of the last 24h.
    """
    volume_7d = float(sum(volume for _, volume in volumes_7d))
    volume_30d = float(sum(volume for _, volume in volumes_30d))
    metrics_7d = calculate_volume_metrics(volumes_7d)
    metrics_30d = calculate_volume_metrics(volumes_30d)

    return {
        'coin': {
            'id': snapshot.id,
            'name': snapshot.name,
            'symbol': snapshot.symbol,
            'image': snapshot.image,
            'current_price': snapshot.current_price,
            'market_cap': snapshot.market_cap,
            'market_cap_rank': snapshot.market_cap_rank,
            'circulating_supply': snapshot.circulating_supply,
            'total_supply': snapshot.total_supply,
            'max_supply': snapshot.max_supply,
        },
        'volume_data': {
            'volume_24h': snapshot.total_volume,
            'volume_7d_total': volume_7d,
            'volume_30d_total': volume_30d,
            'volume_change_percentage': calculate_volume_change(volume_7d, volume_30d),
            'volume_to_mcap_ratio': calculate_volume_to_mcap_ratio(snapshot.total_volume, snapshot.market_cap),
            'liquidity_score': calculate_liquidity_score(snapshot.total_volume, snapshot.market_cap),
            'volume_metrics_7d': metrics_7d.to_dict() if metrics_7d else None,
            'volume_metrics_30d': metrics_30d.to_dict() if metrics_30d else None,
        },
        'price_changes': {
            f'price_change_{interval.value}': snapshot.price_change(interval)
            for interval in PriceChangeInterval
        },
        'additional_metrics': {
            'ath': snapshot.ath,
            'ath_change_percentage': snapshot.ath_change_percentage,
            'atl': snapshot.atl,
            'atl_change_percentage': snapshot.atl_change_percentage,
            'fully_diluted_valuation': snapshot.fully_diluted_valuation,
            'last_updated': snapshot.last_updated,
        },
    }


def calculate_detailed_volume(snapshot: MarketSnapshot,
                              volumes_1d: Sequence[VolumePair],
                              volumes_7d: Sequence[VolumePair]) -> Dict[str, Any]:
    """Latest-sample volume change, 7d average and liquidity of one coin."""
    current = volumes_1d[-1][1] if volumes_1d else 0.0
    previous = volumes_1d[-2][1] if len(volumes_1d) > 1 else current
    change = (current - previous) / previous * 100 if previous > 0 else 0.0
    average_7d = sum(volume for _, volume in volumes_7d) / len(volumes_7d) if volumes_7d else 0.0

    return {
        'id': snapshot.id,
        'volume_24h_current': current,
        'volume_24h_previous': previous,
        'volume_24h_change_percentage': change,
        'volume_7d_average': average_7d,
        'volume_rank': snapshot.market_cap_rank or 999,
        'volume_to_mcap_ratio': calculate_volume_to_mcap_ratio(current, snapshot.market_cap),
        'liquidity_score': calculate_liquidity_score(current, snapshot.market_cap),
    }


def filter_spikes_by_intensity(spikes: Sequence[VolumeSpike], intensity: str = 'moderate') -> List[VolumeSpike]:
    """Keep spikes at or above ``intensity`` (moderate, high or extreme)."""
    try:
        allowed = INTENSITY_FILTERS[intensity]
    except KeyError:
        raise ValueError(f"Unknown spike intensity filter: {intensity}") from None
    return [spike for spike in spikes if spike.spike_intensity in allowed]


def summarize_spikes(spikes: Sequence[VolumeSpike]) -> Dict[str, Any]:
    """Spike counts per intensity and the mean z-score."""
    counts = {level: 0 for level in (SpikeIntensity.EXTREME, SpikeIntensity.HIGH, SpikeIntensity.MODERATE)}
    for spike in spikes:
        if spike.spike_intensity in counts:
            counts[spike.spike_intensity] += 1

    average: Optional[float] = sum(s.z_score for s in spikes) / len(spikes) if spikes else 0.0

    return {
        'extreme_spikes': counts[SpikeIntensity.EXTREME],
        'high_spikes': counts[SpikeIntensity.HIGH],
        'moderate_spikes': counts[SpikeIntensity.MODERATE],
        'avg_spike_intensity': average,
    }
