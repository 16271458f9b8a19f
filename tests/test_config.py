"""Tests for configuration models and YAML loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ensemblgate.core.config import (
    AppConfig,
    BatchConfig,
    ConfigError,
    LoggingConfig,
    RetryConfig,
    ServerConfig,
    load_app_config,
    validate_config_file,
    write_default_config,
)
from ensemblgate.core.fetch.caching import DEFAULT_TTL_TIERS


def test_defaults():
    config = AppConfig()
    assert config.server.base_url == "https://rest.ensembl.org"
    assert config.retry.max_retries == 3
    assert config.rate_limit.min_interval_s == pytest.approx(0.1)
    assert config.cache.max_entries == 1000
    assert config.batch.max_chunk_size == 1000
    assert config.release.probe_endpoint == "/info/data"
    assert len(config.cache.ttl_tiers()) == len(DEFAULT_TTL_TIERS)


def test_retry_config_builds_policy():
    policy = RetryConfig(max_retries=5, base_delay_s=0.5, max_delay_s=4).to_policy()
    assert policy.max_attempts == 6
    assert policy.backoff(10) == 4
    assert 429 in policy.retryable_statuses


def test_retry_config_validation():
    with pytest.raises(ValidationError):
        RetryConfig(base_delay_s=10, max_delay_s=1)
    with pytest.raises(ValidationError):
        RetryConfig(retryable_statuses=[200])


def test_server_url_normalized():
    assert ServerConfig(base_url="https://example.org/").base_url == "https://example.org"
    with pytest.raises(ValidationError):
        ServerConfig(base_url="example.org")


def test_batch_chunk_size_capped():
    with pytest.raises(ValidationError):
        BatchConfig(max_chunk_size=100, chunk_size=200)
    assert BatchConfig(max_chunk_size=100, chunk_size=100, sequence_chunk_size=50).chunk_size == 100


def test_log_level_from_environment(monkeypatch):
    monkeypatch.setenv("ENSEMBL_LOG_LEVEL", "debug")
    assert LoggingConfig().level == "DEBUG"

    with pytest.raises(ValidationError):
        LoggingConfig(level="loud")


def test_load_missing_default_returns_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ENSEMBLGATE_CONFIG", raising=False)
    assert load_app_config() == AppConfig()


def test_load_missing_explicit_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_app_config(tmp_path / "nope.yaml")


def test_load_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("ENSEMBL_SERVER", "https://mirror.example.org")
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n"
        "  base_url: ${ENSEMBL_SERVER}\n"
        "retry:\n"
        "  max_retries: ${RETRIES:-1}\n",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.server.base_url == "https://mirror.example.org"
    assert config.retry.max_retries == 1


def test_load_invalid_values_wrapped(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("retry:\n  max_retries: -4\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_app_config(path)
    assert excinfo.value.details


def test_load_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("server: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_app_config(path)


def test_default_template_round_trips(tmp_path, monkeypatch):
    monkeypatch.delenv("ENSEMBL_LOG_LEVEL", raising=False)
    path = tmp_path / "configs" / "ensemblgate.yaml"

    assert write_default_config(path) is True
    assert write_default_config(path) is False
    assert validate_config_file(path) == []
    assert load_app_config(path) == AppConfig()


def test_validate_config_file_lists_errors(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("cache:\n  max_entries: 0\n", encoding="utf-8")

    errors = validate_config_file(path)
    assert len(errors) == 1
    assert errors[0].startswith("cache.max_entries")
