"""
ensemblgate - Resilient access layer for the Ensembl REST API.

Coordinates caching, global rate limiting, retry with backoff and
batch fan-out on a single request path, with cached data scoped to
the upstream server and data release.
"""

__version__ = "0.1.0"
__app_name__ = "ensemblgate"
