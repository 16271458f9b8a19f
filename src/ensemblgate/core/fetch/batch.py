"""
Batch fan-out.

Splits oversized identifier lists into chunks no larger than the
upstream cap, issues each chunk through the normal request pipeline,
and merges the per-chunk results back into one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ..enrich.errors import InputValidationError


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


DEFAULT_CHUNK_SIZE = 200
DEFAULT_MAX_CHUNK_SIZE = 1000


class ResultShape(str, Enum):
    """How per-chunk payloads combine."""

    KEYED = "keyed"  # dict keyed by identifier, union across chunks
    ORDERED = "ordered"  # list in input order, concatenated in chunk order


@dataclass(frozen=True)
class BatchChunk:
    """A contiguous, size-bounded slice of the caller's items."""

    index: int
    offset: int
    items: tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.items)


def validate_batch(
    items: Sequence[Any],
    chunk_size: int,
    max_chunk_size: int | None = DEFAULT_MAX_CHUNK_SIZE,
) -> None:
    """Reject batches that must not reach the network.

    Raises:
        InputValidationError: Empty batch or chunk size outside (0, cap]
    """
    if len(items) == 0:
        raise InputValidationError(
            "Batch must contain at least one item.",
            suggestion="Provide one or more identifiers.",
        )
    if chunk_size < 1:
        raise InputValidationError(f"Chunk size must be positive, got {chunk_size}.")
    if max_chunk_size is not None and chunk_size > max_chunk_size:
        raise InputValidationError(
            f"Chunk size {chunk_size} exceeds the upstream cap of {max_chunk_size}.",
            suggestion=f"Use a chunk size of at most {max_chunk_size}.",
        )


def chunked(items: Sequence[T], chunk_size: int) -> list[BatchChunk]:
    """Split ``items`` into contiguous chunks of at most ``chunk_size``."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    return [
        BatchChunk(index=index, offset=offset, items=tuple(items[offset:offset + chunk_size]))
        for index, offset in enumerate(range(0, len(items), chunk_size))
    ]


def merge_keyed(results: Sequence[dict[str, Any] | None]) -> dict[str, Any]:
    """Union keyed chunk results; chunks cover disjoint identifiers."""
    merged: dict[str, Any] = {}
    for result in results:
        if result:
            merged.update(result)
    return merged


def merge_ordered(results: Sequence[list[Any] | None]) -> list[Any]:
    """Concatenate ordered chunk results in chunk order."""
    merged: list[Any] = []
    for result in results:
        if result:
            merged.extend(result)
    return merged


MERGERS: dict[ResultShape, Callable[[Sequence[Any]], Any]] = {
    ResultShape.KEYED: merge_keyed,
    ResultShape.ORDERED: merge_ordered,
}


async def execute_batch(
    items: Sequence[T],
    chunk_size: int,
    issue: Callable[[list[T]], Awaitable[R]],
    merge: Callable[[list[R]], Any],
    *,
    max_chunk_size: int | None = DEFAULT_MAX_CHUNK_SIZE,
) -> Any:
    """Fan a batch out over sequential chunk requests and merge the results.

    A single-chunk batch takes the same path as a multi-chunk one.

    Args:
        items: Caller-supplied identifiers
        chunk_size: Maximum items per upstream request
        issue: Coroutine function performing one chunk request
        merge: Combines the list of chunk results
        max_chunk_size: Upstream cap ``chunk_size`` may not exceed

    Returns:
        Whatever ``merge`` returns

    Raises:
        InputValidationError: Before any request, for invalid batches
    """
    validate_batch(items, chunk_size, max_chunk_size)

    chunks = chunked(items, chunk_size)
    results: list[R] = []

    for chunk in chunks:
        logger.debug(
            "batch_chunk",
            extra={"chunk": chunk.index + 1, "chunks": len(chunks), "size": len(chunk)},
        )
        results.append(await issue(list(chunk.items)))

    return merge(results)
