"""Tests for API client framework."""

import pytest
import asyncio
import aiohttp
from unittest.mock import AsyncMock, MagicMock, patch
from datetime import datetime

from crypto_volume_analytics.data.api_client import (
    RateLimiter,
    RateLimitConfig,
    BaseAPIClient,
    APIClientConfig,
)
from crypto_volume_analytics.data.errors import (
    ClientRequestError,
    RateLimitError,
    ServerError,
    ServiceUnavailableError,
)
from crypto_volume_analytics.data.models import DataSource, APIResponse


@pytest.fixture
def rate_limit_config():
    """Create a test rate limit configuration."""
    return RateLimitConfig(requests_per_minute=10, backoff_factor=1.5)


@pytest.fixture
def api_client_config():
    """Create a test API client configuration."""
    return APIClientConfig(
        base_url="https://api.test.com",
        api_key="test_key",
        timeout=10,
        max_retries=2,
        retry_delay=0.01,
        headers={"User-Agent": "Test-Client"}
    )


def mock_response(status=200, data=None, content_type="application/json"):
    """Create a mock aiohttp response."""
    response = AsyncMock()
    response.status = status
    response.headers = {"Content-Type": content_type}
    response.content_type = content_type
    response.json = AsyncMock(return_value=data)
    response.text = AsyncMock(return_value=data)
    return response


class MockAPIClient(BaseAPIClient):
    """Mock API client for testing."""

    def _get_auth_headers(self):
        return {"Authorization": f"Bearer {self.config.api_key}"}


class TestRateLimitConfig:
    """Test RateLimitConfig class."""

    def test_rate_limit_config_defaults(self):
        """Test default rate limit configuration."""
        config = RateLimitConfig()

        assert config.requests_per_minute == 60
        assert config.backoff_factor == 1.5


class TestRateLimiter:
    """Test RateLimiter functionality."""

    @pytest.mark.asyncio
    async def test_rate_limiter_acquire_success(self, rate_limit_config):
        """Test successful rate limit acquisition."""
        limiter = RateLimiter(rate_limit_config)

        for _ in range(5):
            assert await limiter.acquire()

    @pytest.mark.asyncio
    async def test_rate_limiter_acquire_blocked(self, rate_limit_config):
        """Test rate limiting when limit is exceeded."""
        rate_limit_config.requests_per_minute = 2
        limiter = RateLimiter(rate_limit_config)

        assert await limiter.acquire()
        assert await limiter.acquire()

        assert not await limiter.acquire()

    @pytest.mark.asyncio
    async def test_rate_limiter_window_slides(self, rate_limit_config):
        """Test that requests older than a minute free their slot."""
        rate_limit_config.requests_per_minute = 1
        limiter = RateLimiter(rate_limit_config)

        with patch('crypto_volume_analytics.data.api_client.time.time', return_value=1000.0):
            assert await limiter.acquire()
            assert not await limiter.acquire()

        with patch('crypto_volume_analytics.data.api_client.time.time', return_value=1061.0):
            assert await limiter.acquire()

    @pytest.mark.asyncio
    async def test_rate_limiter_wait_if_needed(self, rate_limit_config):
        """Test waiting when rate limited."""
        rate_limit_config.requests_per_minute = 1
        limiter = RateLimiter(rate_limit_config)

        assert await limiter.wait_if_needed() == 0.0

        # Second request waits out the remainder of the minute
        with patch('crypto_volume_analytics.data.api_client.time.time') as mock_time, \
                patch('crypto_volume_analytics.data.api_client.asyncio.sleep', new=AsyncMock()) as mock_sleep:
            start = limiter._request_times[0]
            mock_time.side_effect = [start + 30, start + 30, start + 61]

            waited = await limiter.wait_if_needed()

        assert waited == pytest.approx(30.0)
        mock_sleep.assert_awaited_once()


class TestBaseAPIClient:
    """Test BaseAPIClient functionality."""

    @pytest.mark.asyncio
    async def test_api_client_lifecycle(self, api_client_config):
        """Test API client start and stop."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        assert client._session is None

        await client.start()
        assert isinstance(client._session, aiohttp.ClientSession)

        await client.stop()
        assert client._session is None

    @pytest.mark.asyncio
    async def test_api_client_context_manager(self, api_client_config):
        """Test API client as async context manager."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        async with client:
            assert client._session is not None

        assert client._session is None

    @pytest.mark.asyncio
    async def test_api_client_make_request_success(self, api_client_config):
        """Test successful API request."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(data={"volume": 5})

            response = await client._make_request("GET", "/coins/markets", params={"page": 1})

            assert response.status_code == 200
            assert response.data == {"volume": 5}
            assert response.data_source == DataSource.COINGECKO
            assert response.is_success
            assert isinstance(response.timestamp, datetime)

            call_args = mock_session.request.call_args
            assert call_args[1]['url'] == "https://api.test.com/coins/markets"
            assert call_args[1]['params'] == {"page": 1}

    @pytest.mark.asyncio
    async def test_api_client_make_request_text_body(self, api_client_config):
        """Test non-JSON responses are returned as text."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(
                data="pong", content_type="text/plain")

            response = await client._make_request("GET", "ping")

        assert response.data == "pong"

    @pytest.mark.asyncio
    async def test_api_client_make_request_with_auth(self, api_client_config):
        """Test API request with authentication headers."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(data={})

            await client._make_request("GET", "test")

            headers = mock_session.request.call_args[1]['headers']
            assert headers["Authorization"] == "Bearer test_key"
            assert headers["User-Agent"] == "Test-Client"

    @pytest.mark.asyncio
    async def test_api_client_without_key_sends_no_auth(self, api_client_config):
        """Test that no auth header is sent without an API key."""
        api_client_config.api_key = None
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(data={})

            await client._make_request("GET", "test")

            assert "Authorization" not in mock_session.request.call_args[1]['headers']

    @pytest.mark.asyncio
    async def test_api_client_rate_limited_response(self, api_client_config):
        """Test that HTTP 429 is raised without retrying."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(
                status=429, data={"status": {"error_code": 429}})

            with pytest.raises(RateLimitError) as exc_info:
                await client._make_request("GET", "coins/markets")

            assert exc_info.value.status_code == 429
            assert mock_session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_api_client_client_error(self, api_client_config):
        """Test that a 4xx answer is raised with its payload."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(
                status=404, data={"error": "coin not found"})

            with pytest.raises(ClientRequestError) as exc_info:
                await client._make_request("GET", "coins/nope")

            assert exc_info.value.status_code == 404
            assert exc_info.value.payload == {"error": "coin not found"}
            assert mock_session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_api_client_make_request_retry(self, api_client_config):
        """Test API request retry logic."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.side_effect = [
                aiohttp.ClientConnectionError("Network error"),
                mock_response(status=500, data="oops", content_type="text/plain"),
                mock_response(data={"success": True}),
            ]

            response = await client._make_request("GET", "test")

            assert response.data == {"success": True}
            assert mock_session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_api_client_server_error_after_retries(self, api_client_config):
        """Test that a persistent 5xx is raised once retries run out."""
        api_client_config.max_retries = 1
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.return_value = mock_response(
                status=503, data="unavailable", content_type="text/plain")

            with pytest.raises(ServerError) as exc_info:
                await client._make_request("GET", "test")

            assert exc_info.value.status_code == 503
            assert mock_session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_api_client_unreachable(self, api_client_config):
        """Test that connectivity failures surface as ServiceUnavailableError."""
        api_client_config.max_retries = 1
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_session') as mock_session:
            mock_session.request.return_value.__aenter__.side_effect = asyncio.TimeoutError()

            with pytest.raises(ServiceUnavailableError) as exc_info:
                await client._make_request("GET", "test")

            assert isinstance(exc_info.value.reason, asyncio.TimeoutError)
            assert mock_session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_api_client_health_check(self, api_client_config):
        """Test API client health check."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_make_request') as mock_request:
            mock_request.return_value = APIResponse(data={"gecko_says": "(V3) To the Moon!"},
                                                    status_code=200)

            assert await client.health_check()
            mock_request.assert_called_once_with("GET", "ping")

    @pytest.mark.asyncio
    async def test_api_client_health_check_failure(self, api_client_config):
        """Test API client health check failure."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)

        with patch.object(client, '_make_request') as mock_request:
            mock_request.side_effect = ServiceUnavailableError("Connection failed")

            assert not await client.health_check()

    def test_api_client_get_stats(self, api_client_config):
        """Test API client statistics."""
        client = MockAPIClient(api_client_config, DataSource.COINGECKO)
        client._request_count = 42

        stats = client.get_stats()

        assert stats['data_source'] == 'coingecko'
        assert stats['request_count'] == 42
        assert stats['base_url'] == 'https://api.test.com'
        assert stats['has_api_key'] is True
        assert stats['rate_limit']['requests_per_minute'] == 60
