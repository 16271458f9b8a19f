"""
Ensembl REST access layer.

Coordinates the full request workflow: route → resolve release →
cache lookup → rate-limited, retried fetch → cache store.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Sequence

import httpx

from .backends.base import Backend, RequestSpec
from .backends.http_backend import HttpBackend
from .enrich.errors import InputValidationError
from .fetch.batch import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CHUNK_SIZE,
    MERGERS,
    ResultShape,
    execute_batch,
)
from .fetch.caching import ResponseCache
from .fetch.release import DEFAULT_UNKNOWN_COOLDOWN, ReleaseVersionResolver
from .fetch.retries import RetryingExecutor, RetryPolicy
from .fetch.throttling import DEFAULT_MIN_INTERVAL, RateLimiter
from .logging import get_contextual_logger
from .normalize import (
    normalize_identifier,
    normalize_species_name,
    require_valid,
    validate_batch_items,
    validate_ensembl_id,
    validate_species,
)
from .species import DEFAULT_SERVER, check_grch37_support, server_identifier

if TYPE_CHECKING:
    from .config.models import AppConfig


logger = get_contextual_logger("client")

DEFAULT_PROBE_ENDPOINT = "/info/data"
DEFAULT_SEQUENCE_CHUNK_SIZE = 50

_MISSING = object()


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop null/empty parameters so requests match their cache keys."""
    if not params:
        return {}
    return {name: value for name, value in params.items() if value is not None and value != ""}


def parse_release(payload: Any) -> str:
    """Extract the release token from an ``/info/data`` payload.

    Raises:
        ValueError: Payload carries no usable release list
    """
    releases = payload.get("releases") if isinstance(payload, dict) else None
    if not releases:
        raise ValueError(f"No releases in probe payload: {payload!r}")
    return str(max(releases))


class EnsemblClient:
    """Resilient client for the Ensembl REST API.

    Owns one cache, one rate limiter, one retry executor and one release
    resolver. Every request, including the release probe, passes through
    the same rate limiter.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER,
        *,
        backend: Backend | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
        headers: dict[str, str] | None = None,
        cache: ResponseCache | None = None,
        cache_enabled: bool = True,
        rate_limiter: RateLimiter | None = None,
        policy: RetryPolicy | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        sequence_chunk_size: int = DEFAULT_SEQUENCE_CHUNK_SIZE,
        probe_endpoint: str = DEFAULT_PROBE_ENDPOINT,
        unknown_cooldown: float | None = DEFAULT_UNKNOWN_COOLDOWN,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Default server for requests without an explicit server
            backend: Upstream backend (default: HttpBackend over ``transport``)
            transport: httpx transport for the default backend
            user_agent: User-Agent for the default backend
            headers: Extra headers for the default backend
            cache: Response cache (default: ResponseCache with default tiers)
            cache_enabled: Whether GET responses are cached
            rate_limiter: Shared limiter (default: 100 ms spacing)
            policy: Retry policy (default: RetryPolicy())
            chunk_size: Items per POST for lookup and VEP batches
            max_chunk_size: Upstream cap on items per POST
            sequence_chunk_size: Items per POST for sequence batches
            probe_endpoint: Endpoint returning the release list
            unknown_cooldown: Seconds before re-probing a failed release
            sleep: Coroutine used for limiter and backoff waits
            rng: Uniform [0, 1) source for jitter
            clock: Monotonic time source shared by cache, limiter, resolver
        """
        self.base_url = base_url.rstrip("/")
        self.backend = backend or HttpBackend(
            timeout=(policy or RetryPolicy()).attempt_timeout,
            user_agent=user_agent,
            default_headers=headers,
            transport=transport,
        )
        self.cache = cache if cache is not None else ResponseCache(clock=clock)
        self.cache_enabled = cache_enabled
        self.rate_limiter = rate_limiter or RateLimiter(
            DEFAULT_MIN_INTERVAL, clock=clock, sleep=sleep
        )
        self.executor = RetryingExecutor(
            self.backend,
            self.rate_limiter,
            policy,
            sleep=sleep,
            rng=rng,
        )
        self.releases = ReleaseVersionResolver(
            self._probe_release,
            unknown_cooldown=unknown_cooldown,
            clock=clock,
        )

        self.chunk_size = chunk_size
        self.max_chunk_size = max_chunk_size
        self.sequence_chunk_size = sequence_chunk_size
        self.probe_endpoint = probe_endpoint

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **overrides: Any,
    ) -> "EnsemblClient":
        """Build a client from application configuration.

        Args:
            config: Loaded AppConfig
            transport: Optional httpx transport for the backend
            **overrides: Constructor keyword arguments taking precedence

        Returns:
            Configured EnsemblClient
        """
        clock = overrides.pop("clock", time.monotonic)
        sleep = overrides.pop("sleep", asyncio.sleep)

        kwargs: dict[str, Any] = {
            "transport": transport,
            "user_agent": config.server.user_agent,
            "headers": config.server.headers,
            "cache": ResponseCache(
                max_entries=config.cache.max_entries,
                default_ttl=config.cache.default_ttl_seconds,
                ttl_tiers=config.cache.ttl_tiers(),
                clock=clock,
            ),
            "cache_enabled": config.cache.enabled,
            "rate_limiter": RateLimiter(
                config.rate_limit.min_interval_s, clock=clock, sleep=sleep
            ),
            "policy": config.retry.to_policy(),
            "chunk_size": config.batch.chunk_size,
            "max_chunk_size": config.batch.max_chunk_size,
            "sequence_chunk_size": config.batch.sequence_chunk_size,
            "probe_endpoint": config.release.probe_endpoint,
            "unknown_cooldown": config.release.unknown_cooldown_s,
            "sleep": sleep,
            "clock": clock,
        }
        kwargs.update(overrides)
        return cls(config.server.base_url, **kwargs)

    # =========================================================================
    # Release scoping
    # =========================================================================

    async def _probe_release(self, server: str) -> str:
        """Fetch the current release through the limiter and retries, never the cache."""
        result = await self.executor.execute(
            RequestSpec(
                path=self.probe_endpoint,
                base_url=server,
                timeout=self.executor.policy.attempt_timeout,
            )
        )
        return parse_release(result.data)

    async def release_version(self, server: str | None = None) -> str:
        """Get the memoized release token for a server ("unknown" on failure)."""
        return await self.releases.resolve((server or self.base_url).rstrip("/"))

    async def scope_for(self, server: str | None = None) -> str:
        """Cache scope: server identifier plus release token."""
        base = (server or self.base_url).rstrip("/")
        release = await self.releases.resolve(base)
        return f"{server_identifier(base)}:{release}"

    # =========================================================================
    # Requests
    # =========================================================================

    def _check_routing(self, endpoint: str, server: str) -> None:
        if server_identifier(server) != "grch37":
            return
        message = check_grch37_support(endpoint)
        if message:
            raise InputValidationError(
                message,
                endpoint,
                suggestion="Query this endpoint on the GRCh38 server instead.",
            )

    async def request(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> Any:
        """GET an endpoint, serving from the cache when a fresh entry exists.

        Args:
            endpoint: Path such as ``/lookup/id/ENSG00000141510``
            params: Query parameters
            server: Base URL (default: the client's base_url)

        Returns:
            Parsed response payload

        Raises:
            EnsemblError: Enriched upstream or validation failure
        """
        base = (server or self.base_url).rstrip("/")
        self._check_routing(endpoint, base)
        query = _clean_params(params)

        server_id = server_identifier(base)
        release = await self.releases.resolve(base)
        scope = f"{server_id}:{release}"
        key = ResponseCache.build_key(scope, endpoint, query)
        log = logger.with_context(server=server_id, release=release)

        if self.cache_enabled:
            cached = self.cache.get(key, _MISSING)
            if cached is not _MISSING:
                log.debug(
                    "request_complete",
                    extra={"endpoint": endpoint, "scope": scope, "from_cache": True},
                )
                return cached

        log.debug("request_start", extra={"endpoint": endpoint, "scope": scope})
        result = await self.executor.execute(
            RequestSpec(
                path=endpoint,
                base_url=base,
                params=query,
                timeout=self.executor.policy.attempt_timeout,
            )
        )

        if self.cache_enabled:
            self.cache.set(
                key,
                result.data,
                ttl=self.cache.ttl_for_endpoint(endpoint),
                scope=scope,
            )

        log.debug(
            "request_complete",
            extra={
                "endpoint": endpoint,
                "scope": scope,
                "from_cache": False,
                "retries": result.retry_count,
                "elapsed_ms": round(result.elapsed_ms, 1),
            },
        )
        return result.data

    async def request_post(
        self,
        endpoint: str,
        body: Any,
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> Any:
        """POST a JSON body. POST responses are never cached."""
        base = (server or self.base_url).rstrip("/")
        self._check_routing(endpoint, base)

        log = logger.with_context(server=server_identifier(base))
        log.debug("request_start", extra={"endpoint": endpoint, "method": "POST"})
        result = await self.executor.execute(
            RequestSpec(
                path=endpoint,
                method="POST",
                base_url=base,
                params=_clean_params(params),
                json_data=body,
                timeout=self.executor.policy.attempt_timeout,
            )
        )
        log.debug(
            "request_complete",
            extra={
                "endpoint": endpoint,
                "method": "POST",
                "retries": result.retry_count,
                "elapsed_ms": round(result.elapsed_ms, 1),
            },
        )
        return result.data

    async def batch(
        self,
        items: Sequence[Any],
        chunk_size: int,
        issue: Callable[[list[Any]], Awaitable[Any]],
        merge: ResultShape | Callable[[list[Any]], Any],
    ) -> Any:
        """Fan ``items`` out over chunked requests and merge the results.

        Args:
            items: Identifiers to process
            chunk_size: Items per upstream request, at most ``max_chunk_size``
            issue: Coroutine function performing one chunk request
            merge: A ResultShape or a custom merge function

        Raises:
            InputValidationError: Empty batch or chunk size over the cap
        """
        merger = MERGERS[merge] if isinstance(merge, ResultShape) else merge
        return await execute_batch(
            items,
            chunk_size,
            issue,
            merger,
            max_chunk_size=self.max_chunk_size,
        )

    # =========================================================================
    # Batch helpers
    # =========================================================================

    async def lookup_ids(
        self,
        ids: Sequence[str],
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> dict[str, Any]:
        """Batch ``POST /lookup/id``; returns a dict keyed by stable ID."""
        ids = self._prepare_ids(ids, "/lookup/id")

        async def issue(chunk: list[str]) -> Any:
            return await self.request_post("/lookup/id", {"ids": chunk}, params, server=server)

        return await self.batch(ids, self.chunk_size, issue, ResultShape.KEYED)

    async def lookup_symbols(
        self,
        species: str,
        symbols: Sequence[str],
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> dict[str, Any]:
        """Batch ``POST /lookup/symbol/:species``; returns a dict keyed by symbol."""
        species = self._prepare_species(species, "/lookup/symbol")
        endpoint = f"/lookup/symbol/{species}"
        symbols = self._prepare_ids(symbols, endpoint)

        async def issue(chunk: list[str]) -> Any:
            return await self.request_post(endpoint, {"symbols": chunk}, params, server=server)

        return await self.batch(symbols, self.chunk_size, issue, ResultShape.KEYED)

    async def sequence_ids(
        self,
        ids: Sequence[str],
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> list[Any]:
        """Batch ``POST /sequence/id``; returns sequences in input order."""
        ids = self._prepare_ids(ids, "/sequence/id")

        async def issue(chunk: list[str]) -> Any:
            return await self.request_post("/sequence/id", {"ids": chunk}, params, server=server)

        return await self.batch(ids, self.sequence_chunk_size, issue, ResultShape.ORDERED)

    async def vep_ids(
        self,
        species: str,
        ids: Sequence[str],
        params: Mapping[str, Any] | None = None,
        *,
        server: str | None = None,
    ) -> list[Any]:
        """Batch ``POST /vep/:species/id``; returns consequences in input order."""
        species = self._prepare_species(species, "/vep")
        endpoint = f"/vep/{species}/id"
        ids = self._prepare_ids(ids, endpoint)

        async def issue(chunk: list[str]) -> Any:
            return await self.request_post(endpoint, {"ids": chunk}, params, server=server)

        return await self.batch(ids, self.chunk_size, issue, ResultShape.ORDERED)

    @staticmethod
    def _prepare_ids(ids: Sequence[str], endpoint: str) -> list[str]:
        if isinstance(ids, str):
            ids = [ids]
        normalized = [normalize_identifier(item) if isinstance(item, str) else item for item in ids]
        require_valid(validate_batch_items(normalized, validate_ensembl_id, "ids"), endpoint)
        return normalized

    @staticmethod
    def _prepare_species(species: str, endpoint: str) -> str:
        species = normalize_species_name(species)
        require_valid(validate_species(species), endpoint)
        return species

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def clear_cache(self) -> None:
        """Drop every cached response. Memoized releases are kept."""
        self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        """Cache size, hits, misses, evictions and hit rate."""
        return self.cache.stats()

    async def close(self) -> None:
        """Close the upstream backend."""
        await self.backend.close()

    async def __aenter__(self) -> "EnsemblClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
