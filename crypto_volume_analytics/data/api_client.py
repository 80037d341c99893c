"""Base API client framework with rate limiting and error handling."""

import asyncio
import aiohttp
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
import logging

from .errors import (
    UpstreamError,
    ServiceUnavailableError,
    RateLimitError,
    ClientRequestError,
    ServerError,
)
from .models import APIResponse, DataSource

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    requests_per_minute: int = 60
    backoff_factor: float = 1.5  # Exponential backoff multiplier


@dataclass
class APIClientConfig:
    """Configuration for API clients."""

    base_url: str
    api_key: Optional[str] = None
    timeout: int = 10
    max_retries: int = 2
    retry_delay: float = 1.0
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    headers: Dict[str, str] = field(default_factory=dict)


class RateLimiter:
    """Sliding one-minute window rate limiter for API requests."""

    def __init__(self, config: RateLimitConfig):
        """Initialize rate limiter.

        Args:
            config: Rate limiting configuration
        """
        self.config = config
        self._request_times: List[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> bool:
        """Acquire permission to make a request.

        Returns:
            True if request is allowed, False if rate limited
        """
        async with self._lock:
            now = time.time()

            minute_ago = now - 60
            self._request_times = [t for t in self._request_times if t > minute_ago]

            if len(self._request_times) >= self.config.requests_per_minute:
                return False

            self._request_times.append(now)
            return True

    async def wait_if_needed(self) -> float:
        """Wait until a request slot frees up.

        Returns:
            Time waited in seconds
        """
        waited = 0.0
        while not await self.acquire():
            now = time.time()
            oldest_request = min(self._request_times) if self._request_times else now
            wait_time = max(60 - (now - oldest_request), 0.05)

            logger.info(f"Rate limited, waiting {wait_time:.2f} seconds")
            await asyncio.sleep(wait_time)
            waited += wait_time

        return waited


class BaseAPIClient(ABC):
    """Base class for market data API clients.

    Failures are raised as :class:`UpstreamError` subclasses so callers can
    tell connectivity problems, rate limiting and rejected requests apart.
    Connectivity and 5xx failures are retried with exponential backoff,
    everything else is raised on the first attempt.
    """

    def __init__(self, config: APIClientConfig, data_source: DataSource):
        """Initialize API client.

        Args:
            config: API client configuration
            data_source: Data source identifier
        """
        self.config = config
        self.data_source = data_source
        self.rate_limiter = RateLimiter(config.rate_limit)
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_count = 0

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()

    async def start(self):
        """Start the API client session."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers=self.config.headers
            )
            logger.info(f"Started {self.data_source.value} API client")

    async def stop(self):
        """Stop the API client session."""
        if self._session:
            await self._session.close()
            self._session = None
            logger.info(f"Stopped {self.data_source.value} API client")

    async def _make_request(self, method: str, endpoint: str,
                            params: Optional[Dict[str, Any]] = None,
                            headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Make HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint
            params: Query parameters
            headers: Additional headers

        Returns:
            APIResponse for a 2xx answer

        Raises:
            ServiceUnavailableError: provider unreachable after all retries
            RateLimitError: provider answered 429
            ClientRequestError: provider answered another 4xx
            ServerError: provider answered 5xx on every attempt
        """
        if not self._session:
            await self.start()

        await self.rate_limiter.wait_if_needed()

        url = f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        request_headers = {**self.config.headers}
        if headers:
            request_headers.update(headers)

        if self.config.api_key:
            request_headers.update(self._get_auth_headers())

        start_time = time.time()
        last_exception: Optional[UpstreamError] = None

        for attempt in range(self.config.max_retries + 1):
            try:
                async with self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=request_headers
                ) as response:
                    response_time = time.time() - start_time
                    self._request_count += 1

                    if response.content_type == 'application/json':
                        data = await response.json()
                    else:
                        data = await response.text()

                    api_response = APIResponse(
                        data=data,
                        status_code=response.status,
                        headers=dict(response.headers),
                        response_time=response_time,
                        data_source=self.data_source,
                        timestamp=datetime.now(timezone.utc)
                    )

                    logger.debug(f"{method} {url} -> {response.status} ({response_time:.3f}s)")

                    if api_response.is_success:
                        return api_response

                    raise self._error_for_response(api_response, endpoint)

            except (RateLimitError, ClientRequestError):
                raise
            except ServerError as e:
                last_exception = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = ServiceUnavailableError(
                    f"Unable to reach {self.data_source.value} for {endpoint}: {e}",
                    reason=e
                )

            logger.warning(f"Request attempt {attempt + 1} for {endpoint} failed: {last_exception}")

            if attempt < self.config.max_retries:
                delay = self.config.retry_delay * (self.config.rate_limit.backoff_factor ** attempt)
                await asyncio.sleep(delay)

        raise last_exception

    def _error_for_response(self, response: APIResponse, endpoint: str) -> UpstreamError:
        """Build the error matching a non-2xx response."""
        status = response.status_code
        payload = response.data

        if status == 429:
            return RateLimitError(f"{self.data_source.value} rate limit exceeded for {endpoint}",
                                  status_code=status, payload=payload)
        if 400 <= status < 500:
            return ClientRequestError(f"{self.data_source.value} rejected {endpoint}",
                                      status_code=status, payload=payload)
        return ServerError(f"{self.data_source.value} failed to serve {endpoint}",
                           status_code=status, payload=payload)

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for API requests.

        Returns:
            Dictionary of authentication headers
        """
        pass

    async def health_check(self) -> bool:
        """Check if API is healthy and accessible.

        Returns:
            True if API is healthy, False otherwise
        """
        try:
            response = await self._make_request("GET", "ping")
            return response.is_success
        except UpstreamError as e:
            logger.error(f"Health check failed for {self.data_source.value}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics.

        Returns:
            Dictionary with client statistics
        """
        return {
            'data_source': self.data_source.value,
            'request_count': self._request_count,
            'base_url': self.config.base_url,
            'has_api_key': bool(self.config.api_key),
            'rate_limit': {
                'requests_per_minute': self.config.rate_limit.requests_per_minute,
            }
        }
