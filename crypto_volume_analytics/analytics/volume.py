"""Volume analytics: liquidity, volume comparison, spike detection and statistics.

Every function here is pure. Degenerate input (empty or constant series,
zero market cap, zero mean) yields explicit zero or sentinel results rather
than NaN, infinity or an exception.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..data.models import MarketSnapshot, PriceChangeInterval, VolumePair
from .models import (
    DailyVolumePoint,
    SpikeIntensity,
    VolumeComparison,
    VolumeMetrics,
    VolumeSpike,
    VolumeStatistics,
    VolumeTrend,
    WeeklyAverage,
)

SPIKE_Z_SCORE = 2.0
HIGH_SPIKE_Z_SCORE = 2.5
SIGNIFICANT_SPIKE_Z_SCORE = 3.0

# 30 days / 7 days, rounded; scales a monthly volume down to one week
MONTHLY_TO_WEEKLY_FACTOR = 4.28

MIN_SPIKE_SERIES_LENGTH = 3
TREND_WINDOW_DAYS = 7

# (ratio threshold in percent, score), evaluated top to bottom
LIQUIDITY_BRACKETS = (
    (50, 10),
    (25, 8),
    (15, 6),
    (5, 4),
    (1, 2),
)


def _round(value: float, digits: int = 2) -> float:
    return float(round(value, digits))


def calculate_volume_to_mcap_ratio(volume_24h: Optional[float], market_cap: Optional[float]) -> float:
    """24h volume as a percentage of market capitalization, 0 without a market cap."""
    volume_24h = volume_24h or 0.0
    market_cap = market_cap or 0.0
    if market_cap <= 0:
        return 0.0
    return volume_24h / market_cap * 100


def calculate_liquidity_score(volume_24h: Optional[float], market_cap: Optional[float]) -> int:
    """Score liquidity from 0 to 10 by the volume to market cap ratio.

    A zero (or unknown) market cap scores 0; otherwise the lowest score is 1.
    """
    if not market_cap or market_cap <= 0:
        return 0

    ratio = calculate_volume_to_mcap_ratio(volume_24h, market_cap)
    for threshold, score in LIQUIDITY_BRACKETS:
        if ratio > threshold:
            return score
    return 1


def calculate_volume_change(volume_7d: float, volume_30d: float) -> float:
    """Percentage change of a 7-day volume against the weekly share of a 30-day volume.

    Returns 0 when the 30-day volume is not positive.
    """
    if volume_30d <= 0:
        return 0.0

    normalized_weekly = volume_30d / MONTHLY_TO_WEEKLY_FACTOR
    return (volume_7d - normalized_weekly) / normalized_weekly * 100


def calculate_volume_comparison(snapshot: MarketSnapshot) -> VolumeComparison:
    """Derive the volume comparison record of a market snapshot.

    The 7d and 30d volumes are extrapolated from the last 24h volume, so the
    comparison only reflects how the approximation relates to itself plus the
    normalization factor; it is not a measured aggregate.
    """
    volume_24h = snapshot.total_volume or 0.0
    estimated_volume_7d = volume_24h * 7
    estimated_volume_30d = volume_24h * 30

    return VolumeComparison(
        id=snapshot.id,
        name=snapshot.name,
        symbol=snapshot.symbol,
        image=snapshot.image,
        current_price=snapshot.current_price,
        market_cap=snapshot.market_cap,
        market_cap_rank=snapshot.market_cap_rank,
        volume_24h=volume_24h,
        estimated_volume_7d=estimated_volume_7d,
        estimated_volume_30d=estimated_volume_30d,
        volume_change_7d_to_30d=calculate_volume_change(estimated_volume_7d, estimated_volume_30d),
        volume_to_mcap_ratio=calculate_volume_to_mcap_ratio(volume_24h, snapshot.market_cap),
        liquidity_score=calculate_liquidity_score(volume_24h, snapshot.market_cap),
        price_change_1h=snapshot.price_change(PriceChangeInterval.HOUR_1),
        price_change_24h=snapshot.price_change(PriceChangeInterval.HOUR_24),
        price_change_7d=snapshot.price_change(PriceChangeInterval.DAYS_7),
        price_change_14d=snapshot.price_change(PriceChangeInterval.DAYS_14),
        price_change_30d=snapshot.price_change(PriceChangeInterval.DAYS_30),
        price_change_200d=snapshot.price_change(PriceChangeInterval.DAYS_200),
        price_change_1y=snapshot.price_change(PriceChangeInterval.YEAR_1),
        ath=snapshot.ath,
        ath_change_percentage=snapshot.ath_change_percentage,
        atl=snapshot.atl,
        atl_change_percentage=snapshot.atl_change_percentage,
        circulating_supply=snapshot.circulating_supply,
        total_supply=snapshot.total_supply,
        max_supply=snapshot.max_supply,
        fully_diluted_valuation=snapshot.fully_diluted_valuation,
        last_updated=snapshot.last_updated,
    )


def calculate_volume_comparisons(snapshots: Iterable[MarketSnapshot]) -> List[VolumeComparison]:
    return [calculate_volume_comparison(snapshot) for snapshot in snapshots]


def build_daily_volumes(pairs: Iterable[VolumePair]) -> List[DailyVolumePoint]:
    """Turn raw (timestamp, volume) pairs into daily points, keeping their order."""
    return [DailyVolumePoint.from_pair(timestamp, volume) for timestamp, volume in pairs]


def _mean_and_std(volumes: Sequence[float]) -> Tuple[float, float]:
    """Population mean and standard deviation."""
    values = np.asarray(volumes, dtype=float)
    return float(np.mean(values)), float(np.std(values))


def classify_spike_intensity(z_score: float) -> SpikeIntensity:
    """Bracket a z-score, highest bracket first."""
    if z_score > SIGNIFICANT_SPIKE_Z_SCORE:
        return SpikeIntensity.EXTREME
    if z_score > HIGH_SPIKE_Z_SCORE:
        return SpikeIntensity.HIGH
    if z_score > SPIKE_Z_SCORE:
        return SpikeIntensity.MODERATE
    return SpikeIntensity.NORMAL


def detect_volume_spikes(points: Sequence[DailyVolumePoint]) -> List[VolumeSpike]:
    """Find days whose volume lies more than two standard deviations above the mean.

    Mean and standard deviation are computed over the whole series. Series
    shorter than three points and constant series have no spikes.

    Returns:
        Spikes ordered by z-score, highest first; ties keep chronological order
    """
    if len(points) < MIN_SPIKE_SERIES_LENGTH:
        return []

    mean, std_dev = _mean_and_std([point.volume for point in points])
    if std_dev == 0:
        return []

    scored = []
    for index, point in enumerate(points):
        z_score = (point.volume - mean) / std_dev
        if z_score <= SPIKE_Z_SCORE:
            continue

        previous_volume = points[index - 1].volume if index > 0 else point.volume
        if previous_volume > 0:
            percentage_change = (point.volume - previous_volume) / previous_volume * 100
        else:
            percentage_change = 0.0

        deviation = (point.volume - mean) / mean * 100 if mean != 0 else 0.0

        spike = VolumeSpike(
            date=point.date,
            timestamp=point.timestamp,
            volume=point.volume,
            formatted_date=point.formatted_date,
            z_score=_round(z_score),
            is_spike=True,
            is_significant_spike=z_score > SIGNIFICANT_SPIKE_Z_SCORE,
            spike_intensity=classify_spike_intensity(z_score),
            percentage_change_from_previous=_round(percentage_change),
            deviation_from_mean=_round(deviation),
        )
        scored.append((z_score, spike))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [spike for _, spike in scored]


def calculate_median(values: Sequence[float]) -> float:
    """Median; the mean of the two central values for an even count, 0 when empty."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def _week_start(point: DailyVolumePoint) -> str:
    moment = datetime.fromisoformat(point.date)
    # Sunday-aligned: Python counts Monday as 0
    days_since_sunday = (moment.weekday() + 1) % 7
    return (moment - timedelta(days=days_since_sunday)).date().isoformat()


def calculate_weekly_averages(points: Sequence[DailyVolumePoint]) -> List[WeeklyAverage]:
    """Average volume per Sunday-aligned week, in order of first appearance."""
    weeks = {}
    for point in points:
        weeks.setdefault(_week_start(point), []).append(point.volume)

    return [
        WeeklyAverage(
            week_start=week_start,
            average_volume=float(np.mean(volumes)),
            total_days=len(volumes),
        )
        for week_start, volumes in weeks.items()
    ]


def calculate_volume_trend(points: Sequence[DailyVolumePoint]) -> VolumeTrend:
    """Compare the mean of the last seven samples with the mean of the first seven."""
    if len(points) < 2:
        return VolumeTrend.INSUFFICIENT_DATA

    recent_avg = float(np.mean([point.volume for point in points[-TREND_WINDOW_DAYS:]]))
    older_avg = float(np.mean([point.volume for point in points[:TREND_WINDOW_DAYS]]))

    if older_avg == 0:
        return VolumeTrend.STABLE

    change = (recent_avg - older_avg) / older_avg * 100

    if change > 20:
        return VolumeTrend.STRONGLY_INCREASING
    if change > 5:
        return VolumeTrend.INCREASING
    if change < -20:
        return VolumeTrend.STRONGLY_DECREASING
    if change < -5:
        return VolumeTrend.DECREASING
    return VolumeTrend.STABLE


def calculate_volume_stats(points: Sequence[DailyVolumePoint]) -> VolumeStatistics:
    """Aggregate statistics of a volume series.

    An empty series yields zeros with an ``insufficient_data`` trend. A single
    point has zero standard deviation and volatility.
    """
    if not points:
        return VolumeStatistics(
            mean=0.0, median=0.0, max=0.0, min=0.0,
            standard_deviation=0.0, volatility_percentage=0.0,
            weekly_averages=[], trend=VolumeTrend.INSUFFICIENT_DATA,
            total_days=0, spike_days=0,
        )

    volumes = [point.volume for point in points]
    mean, std_dev = _mean_and_std(volumes)
    volatility = std_dev / mean * 100 if mean != 0 else 0.0

    if std_dev > 0:
        spike_days = sum(1 for volume in volumes if (volume - mean) / std_dev > SPIKE_Z_SCORE)
    else:
        spike_days = 0

    return VolumeStatistics(
        mean=_round(mean),
        median=_round(calculate_median(volumes)),
        max=_round(max(volumes)),
        min=_round(min(volumes)),
        standard_deviation=_round(std_dev),
        volatility_percentage=_round(volatility),
        weekly_averages=calculate_weekly_averages(points),
        trend=calculate_volume_trend(points),
        total_days=len(points),
        spike_days=spike_days,
    )


def calculate_volume_metrics(pairs: Sequence[VolumePair]) -> Optional[VolumeMetrics]:
    """Total, central tendency and volatility of raw volume samples; None when empty."""
    if not pairs:
        return None

    volumes = [volume for _, volume in pairs]
    average, std_dev = _mean_and_std(volumes)

    return VolumeMetrics(
        total=float(sum(volumes)),
        average=average,
        median=calculate_median(volumes),
        max=float(max(volumes)),
        min=float(min(volumes)),
        volatility=std_dev / average * 100 if average != 0 else 0.0,
        data_points=len(volumes),
    )
