"""Tests for batch fan-out."""

from __future__ import annotations

import pytest

from ensemblgate.core.enrich import InputValidationError
from ensemblgate.core.fetch import chunked, execute_batch, merge_keyed, merge_ordered


def test_chunked_preserves_order_and_bounds():
    items = list(range(450))
    chunks = chunked(items, 200)

    assert [len(chunk) for chunk in chunks] == [200, 200, 50]
    assert [chunk.offset for chunk in chunks] == [0, 200, 400]
    assert [item for chunk in chunks for item in chunk.items] == items


def test_merge_helpers():
    assert merge_keyed([{"a": 1}, None, {"b": 2}]) == {"a": 1, "b": 2}
    assert merge_ordered([[1, 2], [], [3]]) == [1, 2, 3]


@pytest.mark.asyncio
async def test_keyed_batch_fans_out_and_merges():
    ids = [f"ENSG{n:011d}" for n in range(450)]
    sizes = []

    async def issue(chunk):
        sizes.append(len(chunk))
        return {item: {"id": item} for item in chunk}

    result = await execute_batch(ids, 200, issue, merge_keyed)

    assert sizes == [200, 200, 50]
    assert len(result) == 450
    assert set(result) == set(ids)


@pytest.mark.asyncio
async def test_ordered_batch_keeps_input_order():
    ids = [f"id{n}" for n in range(7)]

    async def issue(chunk):
        return [item.upper() for item in chunk]

    result = await execute_batch(ids, 3, issue, merge_ordered)

    assert result == [item.upper() for item in ids]


@pytest.mark.asyncio
async def test_single_chunk_takes_same_path():
    calls = []

    async def issue(chunk):
        calls.append(chunk)
        return {item: 1 for item in chunk}

    result = await execute_batch(["a", "b"], 200, issue, merge_keyed)

    assert calls == [["a", "b"]]
    assert result == {"a": 1, "b": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "items, chunk_size",
    [([], 200), (["a"], 0), (["a"], 1001)],
)
async def test_invalid_batches_never_issue(items, chunk_size):
    calls = []

    async def issue(chunk):
        calls.append(chunk)
        return {}

    with pytest.raises(InputValidationError):
        await execute_batch(items, chunk_size, issue, merge_keyed, max_chunk_size=1000)

    assert calls == []


@pytest.mark.asyncio
async def test_chunk_failure_propagates():
    async def issue(chunk):
        if "bad" in chunk:
            raise RuntimeError("chunk failed")
        return {}

    with pytest.raises(RuntimeError):
        await execute_batch(["ok", "bad"], 1, issue, merge_keyed)
