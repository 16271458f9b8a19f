"""Fetch utilities - caching, throttling, retries, release scoping, batching."""

from .batch import (
    BatchChunk,
    ResultShape,
    chunked,
    execute_batch,
    merge_keyed,
    merge_ordered,
    validate_batch,
)
from .caching import CacheEntry, ResponseCache, TtlTier
from .release import UNKNOWN_RELEASE, ReleaseVersionResolver
from .retries import RetryingExecutor, RetryPolicy
from .throttling import RateLimiter

__all__ = [
    "BatchChunk",
    "CacheEntry",
    "RateLimiter",
    "ReleaseVersionResolver",
    "ResponseCache",
    "ResultShape",
    "RetryPolicy",
    "RetryingExecutor",
    "TtlTier",
    "UNKNOWN_RELEASE",
    "chunked",
    "execute_batch",
    "merge_keyed",
    "merge_ordered",
    "validate_batch",
]
