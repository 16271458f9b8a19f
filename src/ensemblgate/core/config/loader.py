"""
Configuration loader for YAML files.

Loads and validates configuration from YAML files into Pydantic models.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig


DEFAULT_CONFIG_PATH = Path("configs/ensemblgate.yaml")
CONFIG_ENV_VAR = "ENSEMBLGATE_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML contents

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}",
            path=path,
            details=str(e),
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Cannot read {path}",
            path=path,
            details=str(e),
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping", path=path)
    return data


def _expand_env_vars(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand environment variables in string values.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        data: Dictionary with potential env var references

    Returns:
        Dictionary with expanded values
    """
    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2) or ""
        return os.environ.get(var_name, default)

    def expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_PATTERN.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [expand_value(item) for item in value]
        return value

    return expand_value(data)


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load application configuration from YAML file.

    Args:
        path: Path to the config file (default: $ENSEMBLGATE_CONFIG or
              configs/ensemblgate.yaml)
        expand_env: Whether to expand environment variables

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid
    """
    explicit = path is not None or CONFIG_ENV_VAR in os.environ
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))
    else:
        path = Path(path)

    # The default location is optional; an explicitly named file is not
    if not path.exists() and not explicit:
        return AppConfig()

    data = _load_yaml_file(path)

    if expand_env:
        data = _expand_env_vars(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def validate_config_file(path: Path | str) -> list[str]:
    """Validate a configuration file without building a client.

    Args:
        path: Path to the YAML file

    Returns:
        List of validation error messages (empty if valid)
    """
    path = Path(path)

    try:
        data = _load_yaml_file(path)
    except ConfigError as e:
        return [str(e)]

    errors: list[str] = []
    try:
        AppConfig.model_validate(_expand_env_vars(data))
    except ValidationError as e:
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"{loc}: {error['msg']}")

    return errors


DEFAULT_CONFIG_TEMPLATE = """\
# ensemblgate configuration
# Values support ${VAR} and ${VAR:-default} environment expansion.

server:
  base_url: https://rest.ensembl.org

retry:
  max_retries: 3
  base_delay_s: 1.0
  max_delay_s: 30.0
  jitter_ratio: 0.25
  attempt_timeout_s: 30.0
  retryable_statuses: [429, 500, 502, 503, 504]

rate_limit:
  min_interval_ms: 100

cache:
  enabled: true
  max_entries: 1000
  default_ttl_seconds: 3600

batch:
  max_chunk_size: 1000
  chunk_size: 200
  sequence_chunk_size: 50

release:
  probe_endpoint: /info/data
  unknown_cooldown_s: 300

logging:
  level: ${ENSEMBL_LOG_LEVEL:-INFO}
  file: null
  json_format: true
  rich_console: true
"""


def write_default_config(path: Path | str = DEFAULT_CONFIG_PATH, force: bool = False) -> bool:
    """Write the default configuration file.

    Returns:
        True if the file was written, False if it already existed
    """
    path = Path(path)
    if path.exists() and not force:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    return True
