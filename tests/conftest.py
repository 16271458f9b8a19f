"""Shared fixtures: fake time and a scripted Ensembl upstream."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from ensemblgate.core.client import EnsemblClient
from ensemblgate.core.fetch import RateLimiter


class FakeClock:
    """Monotonic clock whose sleep advances time instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Upstream:
    """Scripted Ensembl REST server for httpx.MockTransport.

    Routes are matched on request path. A route maps to a list of
    responses consumed in order (the last one repeats) or to a callable
    taking the request.
    """

    def __init__(self, release: int = 114):
        self.calls: list[httpx.Request] = []
        self.routes: dict[str, Any] = {
            "/info/data": [httpx.Response(200, json={"releases": [release]})],
        }

    def route(self, path: str, *responses: Any) -> None:
        if len(responses) == 1 and callable(responses[0]):
            self.routes[path] = responses[0]
        else:
            self.routes[path] = list(responses)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [call for call in self.calls if call.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        if len(route) > 1:
            response = route.pop(0)
        else:
            response = route[0]
        if isinstance(response, Exception):
            raise response
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def make_client(upstream: Upstream, clock: FakeClock) -> Callable[..., EnsemblClient]:
    """Client wired to the scripted upstream with zero-jitter fake time."""

    def factory(**kwargs: Any) -> EnsemblClient:
        kwargs.setdefault("transport", upstream.transport())
        kwargs.setdefault("rate_limiter", RateLimiter(0, clock=clock, sleep=clock.sleep))
        kwargs.setdefault("sleep", clock.sleep)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", lambda: 0.0)
        return EnsemblClient(**kwargs)

    return factory
