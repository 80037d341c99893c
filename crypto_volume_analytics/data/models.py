"""Data models for cryptocurrency market data and cache bookkeeping."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Optional, Dict, Any, List, Tuple
from enum import Enum
import json


class DataSource(Enum):
    """Supported data sources."""
    COINGECKO = "coingecko"


class CacheCategory(Enum):
    """Cache categories, each bound to a fixed time-to-live."""
    COIN_DATA = "coin_data"
    MARKET_DATA = "market_data"
    HISTORICAL_DATA = "historical_data"
    SEARCH_RESULTS = "search_results"
    TRENDING_DATA = "trending_data"
    VOLUME_TRACKING = "volume_tracking"

    @property
    def ttl(self) -> int:
        """Time-to-live in seconds for entries of this category."""
        return CACHE_TTLS[self]


CACHE_TTLS = MappingProxyType({
    CacheCategory.COIN_DATA: 300,
    CacheCategory.MARKET_DATA: 900,
    CacheCategory.HISTORICAL_DATA: 3600,
    CacheCategory.SEARCH_RESULTS: 1800,
    CacheCategory.TRENDING_DATA: 600,
    CacheCategory.VOLUME_TRACKING: 1800,
})


class PriceChangeInterval(Enum):
    """Price change windows reported by the market endpoints."""
    HOUR_1 = "1h"
    HOUR_24 = "24h"
    DAYS_7 = "7d"
    DAYS_14 = "14d"
    DAYS_30 = "30d"
    DAYS_200 = "200d"
    YEAR_1 = "1y"


# (timestamp in milliseconds, volume)
VolumePair = Tuple[int, float]


def _number(value: Any) -> float:
    """Coerce an optional upstream number to float, absent values become 0."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _optional_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market attributes of a single coin.

    Built fresh from each upstream response and never mutated afterwards.
    Numeric fields the upstream omits are normalized to 0, except the
    supply and all-time-high/low figures which stay ``None`` when unknown.
    """

    id: str
    name: str
    symbol: str
    current_price: float = 0.0
    market_cap: float = 0.0
    total_volume: float = 0.0
    market_cap_rank: Optional[int] = None
    image: Optional[str] = None
    price_changes: Dict[str, float] = field(default_factory=dict)
    ath: Optional[float] = None
    ath_change_percentage: Optional[float] = None
    atl: Optional[float] = None
    atl_change_percentage: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    max_supply: Optional[float] = None
    fully_diluted_valuation: Optional[float] = None
    last_updated: Optional[str] = None

    def price_change(self, interval: PriceChangeInterval) -> float:
        """Percentage price change over ``interval`` (0 when unknown)."""
        return self.price_changes.get(interval.value, 0.0)

    @classmethod
    def from_market_row(cls, row: Dict[str, Any]) -> 'MarketSnapshot':
        """Create a snapshot from one ``/coins/markets`` row."""
        price_changes = {
            PriceChangeInterval.HOUR_1.value: _number(row.get('price_change_percentage_1h_in_currency')),
            PriceChangeInterval.HOUR_24.value: _number(row.get('price_change_percentage_24h')),
            PriceChangeInterval.DAYS_7.value: _number(
                row.get('price_change_percentage_7d', row.get('price_change_percentage_7d_in_currency'))),
            PriceChangeInterval.DAYS_14.value: _number(
                row.get('price_change_percentage_14d', row.get('price_change_percentage_14d_in_currency'))),
            PriceChangeInterval.DAYS_30.value: _number(
                row.get('price_change_percentage_30d', row.get('price_change_percentage_30d_in_currency'))),
            PriceChangeInterval.DAYS_200.value: _number(
                row.get('price_change_percentage_200d', row.get('price_change_percentage_200d_in_currency'))),
            PriceChangeInterval.YEAR_1.value: _number(
                row.get('price_change_percentage_1y', row.get('price_change_percentage_1y_in_currency'))),
        }

        return cls(
            id=row.get('id', ''),
            name=row.get('name', ''),
            symbol=row.get('symbol', ''),
            current_price=_number(row.get('current_price')),
            market_cap=_number(row.get('market_cap')),
            total_volume=_number(row.get('total_volume')),
            market_cap_rank=row.get('market_cap_rank'),
            image=row.get('image'),
            price_changes=price_changes,
            ath=_optional_number(row.get('ath')),
            ath_change_percentage=_optional_number(row.get('ath_change_percentage')),
            atl=_optional_number(row.get('atl')),
            atl_change_percentage=_optional_number(row.get('atl_change_percentage')),
            circulating_supply=_optional_number(row.get('circulating_supply')),
            total_supply=_optional_number(row.get('total_supply')),
            max_supply=_optional_number(row.get('max_supply')),
            fully_diluted_valuation=_optional_number(row.get('fully_diluted_valuation')),
            last_updated=row.get('last_updated'),
        )

    @classmethod
    def from_coin_detail(cls, detail: Dict[str, Any], currency: str = "usd") -> 'MarketSnapshot':
        """Create a snapshot from a ``/coins/{id}`` detail record."""
        market = detail.get('market_data') or {}

        def in_currency(name: str) -> Any:
            values = market.get(name) or {}
            return values.get(currency) if isinstance(values, dict) else values

        hour_change = market.get('price_change_percentage_1h_in_currency')
        if isinstance(hour_change, dict):
            hour_change = hour_change.get(currency)
        price_changes = {PriceChangeInterval.HOUR_1.value: _number(hour_change)}
        for interval in (PriceChangeInterval.HOUR_24, PriceChangeInterval.DAYS_7,
                         PriceChangeInterval.DAYS_14, PriceChangeInterval.DAYS_30,
                         PriceChangeInterval.DAYS_200, PriceChangeInterval.YEAR_1):
            price_changes[interval.value] = _number(market.get(f'price_change_percentage_{interval.value}'))

        image = detail.get('image')
        if isinstance(image, dict):
            image = image.get('large')

        return cls(
            id=detail.get('id', ''),
            name=detail.get('name', ''),
            symbol=detail.get('symbol', ''),
            current_price=_number(in_currency('current_price')),
            market_cap=_number(in_currency('market_cap')),
            total_volume=_number(in_currency('total_volume')),
            market_cap_rank=detail.get('market_cap_rank'),
            image=image,
            price_changes=price_changes,
            ath=_optional_number(in_currency('ath')),
            ath_change_percentage=_optional_number(in_currency('ath_change_percentage')),
            atl=_optional_number(in_currency('atl')),
            atl_change_percentage=_optional_number(in_currency('atl_change_percentage')),
            circulating_supply=_optional_number(market.get('circulating_supply')),
            total_supply=_optional_number(market.get('total_supply')),
            max_supply=_optional_number(market.get('max_supply')),
            fully_diluted_valuation=_optional_number(in_currency('fully_diluted_valuation')),
            last_updated=market.get('last_updated') or detail.get('last_updated'),
        )


def volume_series_from_chart(chart: Optional[Dict[str, Any]]) -> List[VolumePair]:
    """Extract the ordered (timestamp, volume) pairs of a ``market_chart`` payload.

    Malformed rows are skipped; a missing ``total_volumes`` yields an empty list.
    """
    if not chart:
        return []

    pairs: List[VolumePair] = []
    for row in chart.get('total_volumes') or []:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        timestamp, volume = row[0], row[1]
        if timestamp is None:
            continue
        pairs.append((int(timestamp), _number(volume)))
    return pairs


@dataclass
class CacheEntry:
    """Serialized value held by the in-memory cache backend."""

    key: str
    value: str
    category: Optional[CacheCategory] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def remaining_ttl(self) -> int:
        """Whole seconds until expiry, -1 for entries without expiry."""
        if self.expires_at is None:
            return -1
        remaining = (self.expires_at - datetime.now(timezone.utc)).total_seconds()
        return max(int(remaining), 0)


@dataclass
class APIResponse:
    """Wrapper for API responses with metadata."""

    data: Any
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    response_time: float = 0.0
    data_source: DataSource = DataSource.COINGECKO
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        """Check if response was successful."""
        return 200 <= self.status_code < 300

    def to_json(self) -> str:
        """Convert response data to JSON string."""
        return json.dumps(self.data, default=str)
