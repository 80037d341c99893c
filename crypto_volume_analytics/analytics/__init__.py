"""Volume analytics for cryptocurrency markets.

This module provides pure functions over market snapshots and volume series:
- Volume to market cap ratio, liquidity scoring and volume comparison
- Daily volume tracking, spike detection and series statistics
- Calendar heatmaps and market-wide volume summaries
"""

from .models import (
    SpikeIntensity,
    VolumeTrend,
    LeaderType,
    DailyVolumePoint,
    VolumeSpike,
    VolumeStatistics,
    VolumeComparison,
    VolumeHeatmap,
)
from .volume import (
    calculate_liquidity_score,
    calculate_volume_comparison,
    detect_volume_spikes,
    calculate_volume_stats,
)
from .heatmap import build_volume_heatmap
from .market import summarize_market_volume, rank_volume_leaders

__all__ = [
    'SpikeIntensity',
    'VolumeTrend',
    'LeaderType',
    'DailyVolumePoint',
    'VolumeSpike',
    'VolumeStatistics',
    'VolumeComparison',
    'VolumeHeatmap',
    'calculate_liquidity_score',
    'calculate_volume_comparison',
    'detect_volume_spikes',
    'calculate_volume_stats',
    'build_volume_heatmap',
    'summarize_market_volume',
    'rank_volume_leaders',
]
