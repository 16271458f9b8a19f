"""Backend implementations for single upstream exchanges."""

from .base import (
    Backend,
    BackendError,
    FetchResult,
    MalformedResponseError,
    RequestSpec,
    TransportFailure,
    UpstreamStatusError,
)
from .http_backend import HttpBackend, parse_retry_after

__all__ = [
    # Base classes
    "Backend",
    "RequestSpec",
    "FetchResult",
    # Base errors
    "BackendError",
    "UpstreamStatusError",
    "TransportFailure",
    "MalformedResponseError",
    # HTTP backend
    "HttpBackend",
    "parse_retry_after",
]
