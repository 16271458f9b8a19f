"""Configuration loading and validation."""

from .models import (
    AppConfig,
    BatchConfig,
    CacheConfig,
    LoggingConfig,
    RateLimitConfig,
    ReleaseConfig,
    RetryConfig,
    ServerConfig,
    TtlTierConfig,
)
from .loader import (
    ConfigError,
    load_app_config,
    validate_config_file,
    write_default_config,
)

__all__ = [
    # Config models
    "AppConfig",
    "BatchConfig",
    "CacheConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "ReleaseConfig",
    "RetryConfig",
    "ServerConfig",
    "TtlTierConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "validate_config_file",
    "write_default_config",
]
