"""Upstream data source errors and their mapping to caller-visible outcomes."""

from dataclasses import dataclass
from typing import Any, Optional


class UpstreamError(Exception):
    """Base class for failures while talking to the market data provider."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 payload: Any = None, reason: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.reason = reason

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return self.message


class ServiceUnavailableError(UpstreamError):
    """The provider could not be reached (connection, DNS or timeout failure)."""


class RateLimitError(UpstreamError):
    """The provider rejected the request with HTTP 429."""


class ClientRequestError(UpstreamError):
    """The provider rejected the request with a 4xx status other than 429."""


class ServerError(UpstreamError):
    """The provider answered with a 5xx status."""


class NoVolumeDataError(UpstreamError):
    """The provider returned an empty volume series."""


@dataclass(frozen=True)
class ErrorReport:
    """Externally visible description of a failed request."""

    status: int
    error: str
    message: str

    def to_dict(self):
        return {'error': self.error, 'message': self.message}


def describe_error(exc: BaseException, debug: bool = False) -> ErrorReport:
    """Map an exception raised by a producer to a distinct external outcome."""
    if isinstance(exc, ServiceUnavailableError):
        return ErrorReport(503, 'Service unavailable', 'Unable to connect to external services')

    if isinstance(exc, RateLimitError):
        return ErrorReport(429, 'Rate limit exceeded', 'API rate limit exceeded, please try again later')

    if isinstance(exc, ClientRequestError):
        status = exc.status_code if exc.status_code is not None else 400
        detail = None
        if isinstance(exc.payload, dict):
            detail = exc.payload.get('error')
        return ErrorReport(status, 'Client error', detail or 'Bad request')

    if isinstance(exc, NoVolumeDataError):
        return ErrorReport(404, 'Client error', exc.message)

    return ErrorReport(500, 'Internal server error', str(exc) if debug else 'Something went wrong')
