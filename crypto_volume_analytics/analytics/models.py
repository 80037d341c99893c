"""Value objects produced by the volume analytics engine."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from enum import Enum


class SpikeIntensity(Enum):
    """Z-score bracket of a daily volume."""
    NORMAL = "normal"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"

    @property
    def heatmap_level(self) -> int:
        """Calendar intensity level, 0 (normal) to 4 (extreme)."""
        return {
            SpikeIntensity.NORMAL: 0,
            SpikeIntensity.MODERATE: 2,
            SpikeIntensity.HIGH: 3,
            SpikeIntensity.EXTREME: 4,
        }[self]


class VolumeTrend(Enum):
    """Direction of recent volume relative to the start of the series."""
    STRONGLY_INCREASING = "strongly_increasing"
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"
    STRONGLY_DECREASING = "strongly_decreasing"
    INSUFFICIENT_DATA = "insufficient_data"


class LeaderType(Enum):
    """Sort direction for volume leader boards."""
    GAINERS = "gainers"
    LOSERS = "losers"


HEATMAP_LEGEND = {
    0: 'Normal',
    1: 'Low Spike',
    2: 'Moderate Spike',
    3: 'High Spike',
    4: 'Extreme Spike',
}


@dataclass(frozen=True)
class DailyVolumePoint:
    """One sample of a volume series."""

    date: str
    timestamp: int
    volume: float
    formatted_date: str

    @classmethod
    def from_pair(cls, timestamp: int, volume: float) -> 'DailyVolumePoint':
        """Build a point from a millisecond timestamp and volume."""
        moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
        return cls(
            date=moment.date().isoformat(),
            timestamp=int(timestamp),
            volume=float(volume),
            formatted_date=f"{moment:%a}, {moment:%b} {moment.day}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VolumeSpike:
    """A daily volume lying more than two standard deviations above the mean."""

    date: str
    timestamp: int
    volume: float
    formatted_date: str
    z_score: float
    is_spike: bool
    is_significant_spike: bool
    spike_intensity: SpikeIntensity
    percentage_change_from_previous: float
    deviation_from_mean: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['spike_intensity'] = self.spike_intensity.value
        return data


@dataclass(frozen=True)
class WeeklyAverage:
    """Average volume of the samples falling in one Sunday-aligned week."""

    week_start: str
    average_volume: float
    total_days: int


@dataclass(frozen=True)
class VolumeStatistics:
    """Aggregate statistics of a volume series."""

    mean: float
    median: float
    max: float
    min: float
    standard_deviation: float
    volatility_percentage: float
    weekly_averages: List[WeeklyAverage]
    trend: VolumeTrend
    total_days: int
    spike_days: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['trend'] = self.trend.value
        return data


@dataclass(frozen=True)
class VolumeMetrics:
    """Summary of raw (timestamp, volume) samples."""

    total: float
    average: float
    median: float
    max: float
    min: float
    volatility: float
    data_points: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VolumeComparison:
    """Volume and liquidity view of a market snapshot.

    ``estimated_volume_7d`` and ``estimated_volume_30d`` extrapolate the last
    24h volume and assume it is representative of the whole window; they are
    an approximation, not measured totals.
    """

    id: str
    name: str
    symbol: str
    image: Optional[str]
    current_price: float
    market_cap: float
    market_cap_rank: Optional[int]
    volume_24h: float
    estimated_volume_7d: float
    estimated_volume_30d: float
    volume_change_7d_to_30d: float
    volume_to_mcap_ratio: float
    liquidity_score: int
    price_change_1h: float
    price_change_24h: float
    price_change_7d: float
    price_change_14d: float
    price_change_30d: float
    price_change_200d: float
    price_change_1y: float
    ath: Optional[float] = None
    ath_change_percentage: Optional[float] = None
    atl: Optional[float] = None
    atl_change_percentage: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    max_supply: Optional[float] = None
    fully_diluted_valuation: Optional[float] = None
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HeatmapCell:
    """Calendar cell for one day of volume."""

    date: str
    formatted_date: str
    volume: float
    intensity: int
    is_spike: bool
    day_of_week: int
    week_of_year: int

    @property
    def week_key(self) -> str:
        iso_year = datetime.fromisoformat(self.date).isocalendar()[0]
        return f"{iso_year}-W{self.week_of_year:02d}"


@dataclass
class VolumeHeatmap:
    """Heatmap cells plus their grouping into calendar week rows."""

    cells: List[HeatmapCell] = field(default_factory=list)
    weeks: Dict[str, List[HeatmapCell]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'heatmap_data': [asdict(cell) for cell in self.cells],
            'weekly_data': {week: [asdict(cell) for cell in cells] for week, cells in self.weeks.items()},
            'intensity_legend': {str(level): label for level, label in HEATMAP_LEGEND.items()},
        }


@dataclass
class BatchResult:
    """Outcome of a multi-coin fan-out; failures are reported, not raised."""

    requested: int
    successes: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return len(self.successes)

    @property
    def failed(self) -> int:
        return len(self.errors)
