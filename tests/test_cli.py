"""Tests for the ensemblgate command line."""

from __future__ import annotations

import httpx
import pytest
from typer.testing import CliRunner

from ensemblgate import __version__
from ensemblgate.cli import main as cli_main
from ensemblgate.core.client import EnsemblClient
from ensemblgate.core.fetch import RateLimiter


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ENSEMBLGATE_CONFIG", raising=False)
    monkeypatch.setenv("ENSEMBL_LOG_LEVEL", "WARNING")


@pytest.fixture
def stub_upstream(monkeypatch, upstream, clock):
    def create_client(config):
        return EnsemblClient(
            transport=upstream.transport(),
            rate_limiter=RateLimiter(0, clock=clock, sleep=clock.sleep),
            sleep=clock.sleep,
            clock=clock,
            rng=lambda: 0.0,
        )

    monkeypatch.setattr(cli_main, "create_client", create_client)
    return upstream


def test_version():
    result = runner.invoke(cli_main.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_config(tmp_path):
    path = tmp_path / "configs" / "ensemblgate.yaml"

    result = runner.invoke(cli_main.app, ["init", "--path", str(path)])
    assert result.exit_code == 0
    assert path.exists()

    again = runner.invoke(cli_main.app, ["init", "--path", str(path)])
    assert again.exit_code == 1


def test_suggest_species():
    result = runner.invoke(cli_main.app, ["suggest-species", "homo_sapien"])
    assert result.exit_code == 0
    assert "homo_sapiens" in result.output

    missing = runner.invoke(cli_main.app, ["suggest-species", "xyzabc"])
    assert missing.exit_code == 1


def test_get_prints_json(stub_upstream):
    stub_upstream.route(
        "/lookup/id/ENSG00000141510",
        httpx.Response(200, json={"id": "ENSG00000141510", "display_name": "TP53"}),
    )

    result = runner.invoke(
        cli_main.app, ["get", "/lookup/id/ENSG00000141510", "-p", "expand=1"]
    )

    assert result.exit_code == 0, result.output
    assert "TP53" in result.output
    call = stub_upstream.calls_to("/lookup/id/ENSG00000141510")[0]
    assert call.url.params["expand"] == "1"


def test_get_routes_grch37(stub_upstream):
    stub_upstream.route("/lookup/id/ENSG00000141510", httpx.Response(200, json={}))

    result = runner.invoke(
        cli_main.app, ["get", "/lookup/id/ENSG00000141510", "--assembly", "hg19"]
    )

    assert result.exit_code == 0, result.output
    assert stub_upstream.calls_to("/lookup/id/ENSG00000141510")[0].url.host == "grch37.rest.ensembl.org"


def test_get_reports_enriched_error(stub_upstream):
    stub_upstream.route("/lookup/id/ENSG00000000001", httpx.Response(404, text="not found"))

    result = runner.invoke(cli_main.app, ["get", "/lookup/id/ENSG00000000001"])

    assert result.exit_code == 1
    assert "not found" in result.output
    assert "Suggestion" in result.output


def test_get_rejects_malformed_param():
    result = runner.invoke(cli_main.app, ["get", "/info/ping", "-p", "novalue"])
    assert result.exit_code != 0


def test_lookup_table(stub_upstream):
    stub_upstream.route(
        "/lookup/id",
        httpx.Response(
            200,
            json={
                "ENSG00000141510": {
                    "id": "ENSG00000141510",
                    "display_name": "TP53",
                    "biotype": "protein_coding",
                },
                "ENSG00000000000": None,
            },
        ),
    )

    result = runner.invoke(cli_main.app, ["lookup", "ENSG00000141510", "ENSG00000000000"])

    assert result.exit_code == 0, result.output
    assert "TP53" in result.output
    assert "not found" in result.output


def test_release(stub_upstream):
    result = runner.invoke(cli_main.app, ["release"])

    assert result.exit_code == 0, result.output
    assert "114" in result.output


def test_bad_config_file_exits(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("retry:\n  max_retries: -1\n", encoding="utf-8")

    result = runner.invoke(cli_main.app, ["--config", str(path), "release"])

    assert result.exit_code == 1
