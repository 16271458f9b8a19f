"""
In-memory response cache with per-endpoint TTL tiers and LRU eviction.

Keys are partitioned by scope ({server, release}) so a new Ensembl
release or a different server never serves stale data.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping


logger = logging.getLogger(__name__)


HOUR = 60 * 60

DEFAULT_TTL = 1 * HOUR
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class TtlTier:
    """TTL applied to every endpoint starting with ``prefix``."""

    prefix: str
    ttl: float


# First match wins. Most data is immutable within a release; variation
# and phenotype annotations change more often.
DEFAULT_TTL_TIERS: tuple[TtlTier, ...] = (
    # Meta/species/assembly: change only on release
    TtlTier("/info/", 24 * HOUR),
    TtlTier("/archive/", 24 * HOUR),
    # Ontology/taxonomy
    TtlTier("/ontology/", 24 * HOUR),
    TtlTier("/taxonomy/", 24 * HOUR),
    # Gene/transcript lookups, sequences, features
    TtlTier("/lookup/", 6 * HOUR),
    TtlTier("/xrefs/", 6 * HOUR),
    TtlTier("/sequence/", 6 * HOUR),
    TtlTier("/overlap/", 6 * HOUR),
    # Comparative genomics
    TtlTier("/homology/", 6 * HOUR),
    TtlTier("/genetree/", 6 * HOUR),
    TtlTier("/cafe/", 6 * HOUR),
    TtlTier("/alignment/", 6 * HOUR),
    # Coordinate mapping
    TtlTier("/map/", 6 * HOUR),
    # Variation/VEP
    TtlTier("/variation/", 1 * HOUR),
    TtlTier("/vep/", 1 * HOUR),
    TtlTier("/ld/", 1 * HOUR),
    TtlTier("/phenotype/", 1 * HOUR),
    TtlTier("/variant_recoder/", 1 * HOUR),
    TtlTier("/transcript_haplotypes/", 1 * HOUR),
)


@dataclass
class CacheEntry:
    """A cached value and its freshness metadata."""

    value: Any
    stored_at: float
    ttl: float
    scope: str

    def is_fresh(self, now: float) -> bool:
        """Visible only while ``now - stored_at < ttl``."""
        return now - self.stored_at < self.ttl


class ResponseCache:
    """TTL + LRU store for upstream responses.

    Not thread-safe. Concurrent access from coroutines on a single
    event loop is fine because no method awaits.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: float = DEFAULT_TTL,
        ttl_tiers: Iterable[TtlTier] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_entries: Resident entry ceiling
            default_ttl: TTL in seconds for endpoints matching no tier
            ttl_tiers: Ordered prefix tiers (default: DEFAULT_TTL_TIERS)
            clock: Monotonic time source in seconds
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.ttl_tiers = tuple(ttl_tiers) if ttl_tiers is not None else DEFAULT_TTL_TIERS
        self._clock = clock

        # Insertion order doubles as recency order (oldest first)
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # =========================================================================
    # Keys and TTLs
    # =========================================================================

    @staticmethod
    def build_key(
        scope: str,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        """Build a deterministic key from scope, endpoint and parameters.

        Parameter names are sorted and null/empty values dropped, so
        permutations of the same parameters yield the same key.
        """
        param_string = ""
        if params:
            pairs = sorted(
                ((name, value) for name, value in params.items() if value is not None and value != ""),
                key=lambda pair: pair[0],
            )
            if pairs:
                param_string = "?" + "&".join(f"{name}={value}" for name, value in pairs)
        return f"{scope}:{endpoint}{param_string}"

    def ttl_for_endpoint(self, endpoint: str) -> float:
        """Resolve the TTL for an endpoint; first matching prefix wins."""
        for tier in self.ttl_tiers:
            if endpoint.startswith(tier.prefix):
                return tier.ttl
        return self.default_ttl

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Return a fresh value and mark it most recently used.

        Expired entries are dropped on read. Never raises.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            logger.debug("cache_miss", extra={"key": key})
            return default

        now = self._clock()
        if not entry.is_fresh(now):
            del self._entries[key]
            self._misses += 1
            logger.debug(
                "cache_expired",
                extra={"key": key, "age_s": round(now - entry.stored_at, 3), "ttl_s": entry.ttl},
            )
            return default

        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug("cache_hit", extra={"key": key})
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        scope: str = "",
    ) -> None:
        """Store a value, evicting the least recently used entry if full.

        Overwriting an existing key never changes the resident count.
        """
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_lru()

        self._entries[key] = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
            scope=scope,
        )
        self._entries.move_to_end(key)

    def clear(self) -> None:
        """Drop every entry and reset counters."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        logger.info("cache_cleared")

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest, _ = self._entries.popitem(last=False)
        self._evictions += 1
        logger.debug("cache_evict", extra={"key": oldest})

    # =========================================================================
    # Introspection
    # =========================================================================

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """Residency check; does not touch counters, recency or expiry."""
        return key in self._entries

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with size, hits, misses, evictions and hit_rate
            ("N/A" before any lookup, otherwise a percentage string)
        """
        total = self._hits + self._misses
        hit_rate = "N/A" if total == 0 else f"{self._hits / total * 100:.1f}%"
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": hit_rate,
        }
