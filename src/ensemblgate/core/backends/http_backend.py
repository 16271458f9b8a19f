"""
HTTP Backend implementation using httpx.

Provides a single async exchange with the Ensembl REST API:
- Persistent connection pooling
- JSON request/response handling via orjson
- Retry hint extraction from rate-limit headers
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import orjson

from ensemblgate import __version__
from .base import (
    Backend,
    FetchResult,
    MalformedResponseError,
    RequestSpec,
    TransportFailure,
    UpstreamStatusError,
)


DEFAULT_USER_AGENT = f"ensemblgate/{__version__}"


def parse_retry_after(headers: httpx.Headers) -> float | None:
    """Extract a retry hint in seconds from response headers.

    Understands ``Retry-After`` as delta-seconds or an HTTP-date, and
    falls back to Ensembl's ``X-RateLimit-Reset`` (seconds until reset).

    Args:
        headers: Response headers

    Returns:
        Seconds to wait, or None when no usable hint is present
    """
    for header in ("Retry-After", "X-RateLimit-Reset"):
        value = headers.get(header)
        if not value:
            continue

        try:
            return max(0.0, float(value))
        except ValueError:
            pass

        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            continue
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

    return None


class HttpBackend(Backend):
    """HTTP backend using httpx for async requests.

    Performs exactly one attempt per fetch; non-2xx responses and
    transport failures are raised as typed errors for the retry layer
    to classify.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str | None = None,
        default_headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP backend.

        Args:
            timeout: Default request timeout in seconds
            user_agent: Custom user agent
            default_headers: Default headers for all requests
            transport: Optional httpx transport (used to stub the upstream)
        """
        self.timeout = timeout
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.transport = transport

        self.default_headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(default_headers or {}),
        }

        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "http"

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=self.default_headers,
                transport=self.transport,
                limits=httpx.Limits(
                    max_connections=20,
                    max_keepalive_connections=10,
                ),
            )
        return self._client

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        """Decode a successful response body."""
        if not response.content:
            return None

        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            return orjson.loads(response.content)
        return response.text

    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Perform one request.

        Args:
            request: The upstream request to perform

        Returns:
            FetchResult with the parsed payload

        Raises:
            UpstreamStatusError: Non-2xx status
            TransportFailure: Timeout, reset, DNS or other transport error
            MalformedResponseError: 2xx JSON response that fails to decode
        """
        client = await self._ensure_client()
        method = request.method.upper()
        params = request.params or None

        started = time.perf_counter()

        try:
            if method == "GET":
                response = await client.get(
                    request.url,
                    params=params,
                    timeout=request.timeout,
                )
            elif method == "POST":
                response = await client.post(
                    request.url,
                    params=params,
                    content=orjson.dumps(request.json_data),
                    timeout=request.timeout,
                )
            else:
                raise ValueError(f"Unsupported method: {request.method}")
        except httpx.TransportError as e:
            raise TransportFailure(
                f"Transport error: {type(e).__name__}: {e}",
                url=request.url,
                cause=e,
            ) from e

        elapsed_ms = (time.perf_counter() - started) * 1000

        if not response.is_success:
            raise UpstreamStatusError(
                f"Ensembl API error: {response.status_code} {response.reason_phrase}",
                url=str(response.url),
                status_code=response.status_code,
                status_text=response.reason_phrase,
                body=response.text,
                retry_after=parse_retry_after(response.headers),
            )

        try:
            data = self._parse_body(response)
        except orjson.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Ensembl API returned malformed JSON: {e}",
                url=str(response.url),
                status_code=response.status_code,
                body=response.text,
                cause=e,
            ) from e

        return FetchResult(
            url=str(response.url),
            status_code=response.status_code,
            data=data,
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
