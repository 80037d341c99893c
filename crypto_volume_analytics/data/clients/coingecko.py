"""CoinGecko API client implementation."""

from typing import Dict, List, Optional, Any
import logging

from ..api_client import BaseAPIClient, APIClientConfig, RateLimitConfig
from ..models import DataSource

logger = logging.getLogger(__name__)

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"

# Placeholder shipped in example .env files, never a real key
PLACEHOLDER_API_KEY = "your_api_key_here"

PRICE_CHANGE_WINDOWS = "1h,24h,7d,14d,30d,200d,1y"


class CoinGeckoClient(BaseAPIClient):
    """CoinGecko API client returning raw JSON payloads."""

    def __init__(self, api_key: Optional[str] = None, base_url: str = COINGECKO_BASE_URL,
                 timeout: int = 10, max_retries: int = 2, currency: str = "usd"):
        """Initialize CoinGecko client.

        Args:
            api_key: Optional CoinGecko demo API key for higher rate limits
            base_url: API root
            timeout: Per-request bound in seconds
            max_retries: Retries for connectivity and 5xx failures
            currency: Quote currency for prices and volumes
        """
        if api_key == PLACEHOLDER_API_KEY:
            api_key = None

        # CoinGecko rate limits (public vs. demo tier)
        rate_limit = RateLimitConfig(requests_per_minute=30 if api_key else 10)

        config = APIClientConfig(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            rate_limit=rate_limit,
            headers={
                "Accept": "application/json",
                "User-Agent": "CryptoVolumeAnalytics/1.0"
            }
        )

        super().__init__(config, DataSource.COINGECKO)
        self.currency = currency

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for CoinGecko API.

        Returns:
            Dictionary of authentication headers
        """
        if self.config.api_key:
            return {"x-cg-demo-api-key": self.config.api_key}
        return {}

    async def get_market_data(self, per_page: int = 100, page: int = 1,
                              **params: Any) -> List[Dict[str, Any]]:
        """Get market rows ordered by market capitalization.

        Args:
            per_page: Rows per page (CoinGecko allows up to 250)
            page: 1-based page number
            **params: Extra query parameters overriding the defaults

        Returns:
            List of ``/coins/markets`` rows
        """
        query = {
            "vs_currency": self.currency,
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": page,
            "sparkline": "false",
            "price_change_percentage": PRICE_CHANGE_WINDOWS,
        }
        query.update(params)

        response = await self._make_request("GET", "coins/markets", params=query)
        return response.data or []

    async def get_coin_data(self, coin_id: str) -> Dict[str, Any]:
        """Get the detail record of a single coin, market data only."""
        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
        }

        response = await self._make_request("GET", f"coins/{coin_id}", params=params)
        return response.data or {}

    async def get_historical_data(self, coin_id: str, days: int = 30) -> Dict[str, Any]:
        """Get price, market cap and volume series for a coin.

        CoinGecko returns hourly samples for short ranges; a daily interval is
        requested explicitly for ranges longer than 90 days.
        """
        params: Dict[str, Any] = {
            "vs_currency": self.currency,
            "days": days,
        }
        if days > 90:
            params["interval"] = "daily"

        response = await self._make_request("GET", f"coins/{coin_id}/market_chart", params=params)
        return response.data or {}

    async def search_coins(self, query: str) -> Dict[str, Any]:
        """Search coins, exchanges and categories by free text."""
        response = await self._make_request("GET", "search", params={"query": query})
        return response.data or {}

    async def get_trending_coins(self) -> Dict[str, Any]:
        """Get the trending search list."""
        response = await self._make_request("GET", "search/trending")
        return response.data or {}
