"""
Backend base classes and data structures.

Defines the interface contract for upstream backends. A backend
performs exactly one exchange per call; retries, throttling and
caching are layered on top of it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..species import DEFAULT_SERVER


@dataclass
class RequestSpec:
    """A single upstream request: method, path, params and body."""

    path: str
    method: str = "GET"
    base_url: str = DEFAULT_SERVER
    params: dict[str, str] = field(default_factory=dict)
    json_data: Any = None
    timeout: float = 30.0

    @property
    def url(self) -> str:
        """Absolute URL without the query string."""
        return f"{self.base_url.rstrip('/')}{self.path}"


@dataclass
class FetchResult:
    """Result of a fetch operation."""

    url: str
    status_code: int
    data: Any
    headers: dict[str, str]

    elapsed_ms: float
    retry_count: int = 0

    @property
    def ok(self) -> bool:
        """Check if request was successful (2xx status)."""
        return 200 <= self.status_code < 300


class Backend(ABC):
    """Abstract base class for upstream backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier."""
        pass

    @abstractmethod
    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Perform one request and return the parsed response.

        Args:
            request: The upstream request to perform

        Returns:
            FetchResult for a 2xx response

        Raises:
            UpstreamStatusError: On a non-2xx response
            TransportFailure: On a network-level failure
        """
        pass

    async def close(self) -> None:
        """Clean up backend resources."""
        pass

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class BackendError(Exception):
    """Base exception for single-attempt backend failures."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class UpstreamStatusError(BackendError):
    """Upstream answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        status_text: str = "",
        body: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, url, status_code=status_code)
        self.status_text = status_text
        self.body = body
        self.retry_after = retry_after


class TransportFailure(BackendError):
    """Network-level failure: timeout, connection reset, DNS."""
    pass


class MalformedResponseError(BackendError):
    """Upstream answered 2xx with a body that does not decode as declared."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, url, status_code=status_code, cause=cause)
        self.body = body
