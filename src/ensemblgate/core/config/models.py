"""
Pydantic configuration models for ensemblgate.

These models provide type-safe configuration with validation for:
- Upstream server selection
- Retry, rate limit and cache policies
- Batch chunking limits
- Release probing
- Logging
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..fetch.batch import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_CHUNK_SIZE
from ..fetch.caching import DEFAULT_MAX_ENTRIES, DEFAULT_TTL, DEFAULT_TTL_TIERS, TtlTier
from ..fetch.release import DEFAULT_UNKNOWN_COOLDOWN
from ..fetch.retries import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_BASE_DELAY,
    DEFAULT_JITTER_RATIO,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRYABLE_STATUSES,
    RetryPolicy,
)
from ..fetch.throttling import DEFAULT_MIN_INTERVAL
from ..species import DEFAULT_SERVER


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Upstream server and HTTP client settings."""

    base_url: str = Field(
        default=DEFAULT_SERVER,
        description="Default Ensembl REST server",
    )
    user_agent: str | None = Field(
        default=None,
        description="User-Agent header (default: ensemblgate/<version>)",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every request",
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Ensure the base URL is absolute and has no trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


# =============================================================================
# Resilience Configuration
# =============================================================================


class RetryConfig(BaseModel):
    """Retry and backoff settings."""

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        le=10,
        description="Retries after the first attempt for retryable failures",
    )
    base_delay_s: float = Field(
        default=DEFAULT_BASE_DELAY,
        ge=0.0,
        description="Backoff base delay in seconds",
    )
    max_delay_s: float = Field(
        default=DEFAULT_MAX_DELAY,
        ge=0.0,
        description="Backoff cap in seconds",
    )
    jitter_ratio: float = Field(
        default=DEFAULT_JITTER_RATIO,
        ge=0.0,
        le=1.0,
        description="Maximum random jitter as a fraction of the delay",
    )
    attempt_timeout_s: float = Field(
        default=DEFAULT_ATTEMPT_TIMEOUT,
        gt=0.0,
        description="Wall-clock timeout for each attempt",
    )
    retryable_statuses: list[int] = Field(
        default_factory=lambda: sorted(DEFAULT_RETRYABLE_STATUSES),
        description="HTTP statuses that trigger a retry",
    )

    @field_validator("max_delay_s")
    @classmethod
    def max_delay_gte_base(cls, v: float, info: Any) -> float:
        """Ensure the cap is at least the base delay."""
        base = info.data.get("base_delay_s", 0.0)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    @field_validator("retryable_statuses")
    @classmethod
    def statuses_are_errors(cls, v: list[int]) -> list[int]:
        """Success statuses are never retried."""
        for status in v:
            if not 400 <= status <= 599:
                raise ValueError(f"retryable status {status} is not a 4xx/5xx code")
        return v

    def to_policy(self) -> RetryPolicy:
        """Build the immutable runtime policy."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay_s,
            max_delay=self.max_delay_s,
            retryable_statuses=frozenset(self.retryable_statuses),
            jitter_ratio=self.jitter_ratio,
            attempt_timeout=self.attempt_timeout_s,
        )


class RateLimitConfig(BaseModel):
    """Global rate limiting settings."""

    min_interval_ms: int = Field(
        default=int(DEFAULT_MIN_INTERVAL * 1000),
        ge=0,
        description="Minimum delay between request starts in milliseconds",
    )

    @property
    def min_interval_s(self) -> float:
        return self.min_interval_ms / 1000.0


# =============================================================================
# Cache Configuration
# =============================================================================


class TtlTierConfig(BaseModel):
    """TTL for endpoints starting with a path prefix."""

    prefix: str = Field(description="Endpoint path prefix, e.g. /lookup/")
    ttl_seconds: float = Field(gt=0, description="Time to live in seconds")

    @field_validator("prefix")
    @classmethod
    def prefix_is_path(cls, v: str) -> str:
        """Prefixes are matched against request paths."""
        if not v.startswith("/"):
            raise ValueError("prefix must start with '/'")
        return v


def _default_tiers() -> list[TtlTierConfig]:
    return [TtlTierConfig(prefix=tier.prefix, ttl_seconds=tier.ttl) for tier in DEFAULT_TTL_TIERS]


class CacheConfig(BaseModel):
    """Response cache settings."""

    enabled: bool = Field(
        default=True,
        description="Cache GET responses",
    )
    max_entries: int = Field(
        default=DEFAULT_MAX_ENTRIES,
        ge=1,
        description="Maximum resident entries before LRU eviction",
    )
    default_ttl_seconds: float = Field(
        default=DEFAULT_TTL,
        gt=0,
        description="TTL for endpoints matching no tier",
    )
    tiers: list[TtlTierConfig] = Field(
        default_factory=_default_tiers,
        description="Ordered TTL tiers; first matching prefix wins",
    )

    def ttl_tiers(self) -> list[TtlTier]:
        return [TtlTier(prefix=tier.prefix, ttl=tier.ttl_seconds) for tier in self.tiers]


# =============================================================================
# Batch & Release Configuration
# =============================================================================


class BatchConfig(BaseModel):
    """Batch fan-out settings."""

    max_chunk_size: int = Field(
        default=DEFAULT_MAX_CHUNK_SIZE,
        ge=1,
        description="Upstream cap on identifiers per POST",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=1,
        description="Identifiers per POST for lookup and VEP batches",
    )
    sequence_chunk_size: int = Field(
        default=50,
        ge=1,
        description="Identifiers per POST for sequence batches",
    )

    @field_validator("chunk_size", "sequence_chunk_size")
    @classmethod
    def within_cap(cls, v: int, info: Any) -> int:
        """Chunk sizes may not exceed the upstream cap."""
        cap = info.data.get("max_chunk_size")
        if cap is not None and v > cap:
            raise ValueError(f"chunk size {v} exceeds max_chunk_size {cap}")
        return v


class ReleaseConfig(BaseModel):
    """Release version probing."""

    probe_endpoint: str = Field(
        default="/info/data",
        description="Endpoint returning {'releases': [...]}",
    )
    unknown_cooldown_s: float | None = Field(
        default=DEFAULT_UNKNOWN_COOLDOWN,
        ge=0,
        description="Seconds before re-probing after a failed probe (null: never)",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


def _env_log_level() -> str:
    return os.environ.get("ENSEMBL_LOG_LEVEL", "INFO").upper()


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default_factory=_env_log_level,
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        """Normalize and check the level name."""
        level = v.upper()
        if level == "WARN":
            level = "WARNING"
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from ensemblgate.yaml.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    release: ReleaseConfig = Field(default_factory=ReleaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
