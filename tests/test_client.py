"""End-to-end tests for EnsemblClient against a scripted upstream."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from ensemblgate.core.client import EnsemblClient, parse_release
from ensemblgate.core.config import AppConfig
from ensemblgate.core.enrich import EnsemblError, InputValidationError
from ensemblgate.core.fetch import RateLimiter, ResponseCache
from ensemblgate.core.species import GRCH37_SERVER


GENE = "/lookup/id/ENSG00000141510"


def test_parse_release():
    assert parse_release({"releases": [114]}) == "114"
    assert parse_release({"releases": [113, 114]}) == "114"
    with pytest.raises(ValueError):
        parse_release({"releases": []})
    with pytest.raises(ValueError):
        parse_release("nope")


# =============================================================================
# Caching
# =============================================================================


@pytest.mark.asyncio
async def test_repeat_request_served_from_cache(upstream, make_client):
    upstream.route(GENE, httpx.Response(200, json={"id": "ENSG00000141510"}))

    async with make_client() as client:
        first = await client.request(GENE)
        second = await client.request(GENE)

    assert first == second == {"id": "ENSG00000141510"}
    assert len(upstream.calls_to(GENE)) == 1
    assert client.cache_stats()["hits"] == 1


@pytest.mark.asyncio
async def test_param_order_shares_cache_entry(upstream, make_client):
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client() as client:
        await client.request(GENE, {"expand": "1", "format": "full"})
        await client.request(GENE, {"format": "full", "expand": "1", "db_type": None})

    assert len(upstream.calls_to(GENE)) == 1


@pytest.mark.asyncio
async def test_servers_do_not_share_cache(upstream, make_client):
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client() as client:
        await client.request(GENE)
        await client.request(GENE, server=GRCH37_SERVER)

    hosts = [call.url.host for call in upstream.calls_to(GENE)]
    assert hosts == ["rest.ensembl.org", "grch37.rest.ensembl.org"]


@pytest.mark.asyncio
async def test_mirrors_on_one_host_do_not_share_cache(upstream, make_client):
    for mirror in ("a", "b"):
        upstream.route(f"/{mirror}/info/data", httpx.Response(200, json={"releases": [114]}))
        upstream.route(f"/{mirror}/x", httpx.Response(200, json={"server": mirror}))

    async with make_client() as client:
        first = await client.request("/x", server="https://mirror.example/a")
        second = await client.request("/x", server="https://mirror.example/b")

    assert first == {"server": "a"}
    assert second == {"server": "b"}
    assert len(upstream.calls_to("/b/x")) == 1


@pytest.mark.asyncio
async def test_release_change_invalidates_scope(upstream, make_client, clock):
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client() as client:
        await client.request(GENE)
        client.releases.reset()
        upstream.route("/info/data", httpx.Response(200, json={"releases": [115]}))
        await client.request(GENE)

    assert len(upstream.calls_to(GENE)) == 2


@pytest.mark.asyncio
async def test_expired_entry_refetched(upstream, make_client, clock):
    upstream.route(GENE, httpx.Response(200, json={}))
    cache = ResponseCache(clock=clock)

    async with make_client(cache=cache) as client:
        await client.request(GENE)
        clock.advance(cache.ttl_for_endpoint(GENE))
        await client.request(GENE)

    assert len(upstream.calls_to(GENE)) == 2


@pytest.mark.asyncio
async def test_cache_disabled(upstream, make_client):
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client(cache_enabled=False) as client:
        await client.request(GENE)
        await client.request(GENE)

    assert len(upstream.calls_to(GENE)) == 2


@pytest.mark.asyncio
async def test_failures_are_not_cached(upstream, make_client):
    upstream.route(GENE, httpx.Response(400, text="bad"), httpx.Response(200, json={"ok": 1}))

    async with make_client() as client:
        with pytest.raises(EnsemblError):
            await client.request(GENE)
        assert await client.request(GENE) == {"ok": 1}


@pytest.mark.asyncio
async def test_post_is_never_cached(upstream, make_client):
    upstream.route("/lookup/id", httpx.Response(200, json={}))

    async with make_client() as client:
        await client.request_post("/lookup/id", {"ids": ["ENSG00000141510"]})
        await client.request_post("/lookup/id", {"ids": ["ENSG00000141510"]})

    assert len(upstream.calls_to("/lookup/id")) == 2
    assert client.cache_stats()["size"] == 0


class RecordingLimiter(RateLimiter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.starts = []

    async def acquire(self):
        waited = await super().acquire()
        self.starts.append(self._clock())
        return waited


@pytest.mark.asyncio
async def test_concurrent_identical_misses_both_fetch_spaced(upstream, make_client, clock):
    async def slow(request):
        await asyncio.sleep(0)
        return httpx.Response(200, json={})

    upstream.route(GENE, slow)
    limiter = RecordingLimiter(0.1, clock=clock, sleep=clock.sleep)

    async with make_client(rate_limiter=limiter) as client:
        await asyncio.gather(client.request(GENE), client.request(GENE))

    assert len(upstream.calls_to(GENE)) == 2
    assert len(limiter.starts) == 3
    assert all(b - a >= 0.1 - 1e-9 for a, b in zip(limiter.starts, limiter.starts[1:]))


@pytest.mark.asyncio
async def test_clear_cache(upstream, make_client):
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client() as client:
        await client.request(GENE)
        client.clear_cache()
        await client.request(GENE)

    assert len(upstream.calls_to(GENE)) == 2


# =============================================================================
# Release Scoping
# =============================================================================


@pytest.mark.asyncio
async def test_concurrent_first_requests_probe_once(upstream, make_client):
    upstream.route("/lookup/id/ENSG00000012048", httpx.Response(200, json={}))
    upstream.route(GENE, httpx.Response(200, json={}))

    async with make_client() as client:
        await asyncio.gather(
            client.request(GENE),
            client.request("/lookup/id/ENSG00000012048"),
            client.request(GENE, {"expand": "1"}),
        )

    assert len(upstream.calls_to("/info/data")) == 1
    assert await client.release_version() == "114"


@pytest.mark.asyncio
async def test_probe_failure_does_not_fail_requests(upstream, make_client):
    upstream.route("/info/data", httpx.Response(400, text="broken"))
    upstream.route(GENE, httpx.Response(200, json={"id": 1}))

    async with make_client() as client:
        assert await client.request(GENE) == {"id": 1}
        assert await client.release_version() == "unknown"
        assert await client.scope_for() == "grch38:unknown"


@pytest.mark.asyncio
async def test_probe_goes_through_retries(upstream, make_client, clock):
    upstream.route(
        "/info/data",
        httpx.Response(503),
        httpx.Response(200, json={"releases": [114]}),
    )

    async with make_client() as client:
        assert await client.release_version() == "114"

    assert len(upstream.calls_to("/info/data")) == 2
    assert clock.sleeps == [1.0]


# =============================================================================
# Routing and Errors
# =============================================================================


@pytest.mark.asyncio
async def test_grch37_rejects_comparative_endpoint_before_network(upstream, make_client):
    async with make_client() as client:
        with pytest.raises(InputValidationError):
            await client.request("/homology/id/ENSG00000141510", server=GRCH37_SERVER)

    assert upstream.calls == []


@pytest.mark.asyncio
async def test_enriched_error_surfaces(upstream, make_client):
    upstream.route(
        "/lookup/symbol/homo_sapien/BRCA1",
        httpx.Response(400, text="Can not find internal name for species 'homo_sapien'"),
    )

    async with make_client() as client:
        with pytest.raises(EnsemblError) as excinfo:
            await client.request("/lookup/symbol/homo_sapien/BRCA1")

    assert "Did you mean 'homo_sapiens'?" in excinfo.value.message


@pytest.mark.asyncio
async def test_malformed_json_surfaces_as_ensembl_error(upstream, make_client):
    upstream.route(
        GENE,
        httpx.Response(200, content=b"{not json", headers={"Content-Type": "application/json"}),
    )

    async with make_client() as client:
        with pytest.raises(EnsemblError) as excinfo:
            await client.request(GENE)

    assert excinfo.value.status_code == 200
    assert excinfo.value.endpoint == GENE
    assert client.cache_stats()["size"] == 0
    assert len(upstream.calls_to(GENE)) == 1


# =============================================================================
# Batch Helpers
# =============================================================================


def echo_lookup(request):
    ids = json.loads(request.content)["ids"]
    return httpx.Response(200, json={item: {"id": item} for item in ids})


@pytest.mark.asyncio
async def test_lookup_ids_chunks_and_merges(upstream, make_client):
    upstream.route("/lookup/id", echo_lookup)
    ids = [f"ENSG{n:011d}" for n in range(450)]

    async with make_client(chunk_size=200) as client:
        result = await client.lookup_ids(ids)

    sizes = [len(json.loads(call.content)["ids"]) for call in upstream.calls_to("/lookup/id")]
    assert sizes == [200, 200, 50]
    assert len(result) == 450


@pytest.mark.asyncio
async def test_lookup_ids_normalizes_input(upstream, make_client):
    upstream.route("/lookup/id", echo_lookup)

    async with make_client() as client:
        result = await client.lookup_ids(["ensg00000141510"])

    assert list(result) == ["ENSG00000141510"]


@pytest.mark.asyncio
async def test_lookup_ids_rejects_malformed_before_network(upstream, make_client):
    async with make_client() as client:
        with pytest.raises(InputValidationError):
            await client.lookup_ids(["ENSG123"])
        with pytest.raises(InputValidationError):
            await client.lookup_ids([])

    assert upstream.calls_to("/lookup/id") == []


@pytest.mark.asyncio
async def test_lookup_symbols(upstream, make_client):
    def handler(request):
        symbols = json.loads(request.content)["symbols"]
        return httpx.Response(200, json={symbol: {"display_name": symbol} for symbol in symbols})

    upstream.route("/lookup/symbol/homo_sapiens", handler)

    async with make_client() as client:
        result = await client.lookup_symbols("Homo Sapiens", ["brca1", "tp53"])

    assert set(result) == {"BRCA1", "TP53"}


@pytest.mark.asyncio
async def test_lookup_symbols_rejects_bad_species(upstream, make_client):
    async with make_client() as client:
        with pytest.raises(InputValidationError) as excinfo:
            await client.lookup_symbols("homo_sapien", ["BRCA1"])

    assert "homo_sapiens" in excinfo.value.message
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_sequence_ids_keep_order(upstream, make_client):
    def handler(request):
        ids = json.loads(request.content)["ids"]
        return httpx.Response(200, json=[{"id": item, "seq": "ACGT"} for item in ids])

    upstream.route("/sequence/id", handler)
    ids = [f"ENST{n:011d}" for n in range(7)]

    async with make_client(sequence_chunk_size=3) as client:
        result = await client.sequence_ids(ids)

    assert [entry["id"] for entry in result] == ids
    assert len(upstream.calls_to("/sequence/id")) == 3


@pytest.mark.asyncio
async def test_vep_ids(upstream, make_client):
    def handler(request):
        ids = json.loads(request.content)["ids"]
        return httpx.Response(200, json=[{"input": item} for item in ids])

    upstream.route("/vep/human/id", handler)

    async with make_client() as client:
        result = await client.vep_ids("human", ["rs699", "rs6025"])

    assert [entry["input"] for entry in result] == ["rs699", "rs6025"]


@pytest.mark.asyncio
async def test_batch_chunk_size_over_cap_rejected(make_client):
    async def issue(chunk):
        return {}

    async with make_client(max_chunk_size=100) as client:
        with pytest.raises(InputValidationError):
            await client.batch(["a"], 101, issue, lambda results: results)


# =============================================================================
# Configuration
# =============================================================================


@pytest.mark.asyncio
async def test_from_config(upstream, clock):
    config = AppConfig.model_validate(
        {
            "rate_limit": {"min_interval_ms": 0},
            "cache": {"max_entries": 5},
            "batch": {"chunk_size": 10},
        }
    )
    client = EnsemblClient.from_config(
        config,
        transport=upstream.transport(),
        clock=clock,
        sleep=clock.sleep,
    )
    upstream.route(GENE, httpx.Response(200, json={}))

    async with client:
        await client.request(GENE)

    assert client.cache.max_entries == 5
    assert client.chunk_size == 10
    assert client.rate_limiter.min_interval == 0
    assert client.executor.policy.max_retries == 3
