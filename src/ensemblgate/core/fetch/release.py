"""
Release version resolution.

The Ensembl release is part of every cache scope. It is probed once
per server, with concurrent callers sharing a single in-flight probe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)


UNKNOWN_RELEASE = "unknown"
DEFAULT_UNKNOWN_COOLDOWN = 300.0  # seconds


class ReleaseVersionResolver:
    """Single-flight, memoized release lookup per server.

    A successful probe is memoized for the lifetime of the resolver.
    A failed probe resolves to ``UNKNOWN_RELEASE`` instead of raising;
    after ``unknown_cooldown`` seconds the next caller probes again. A
    cooldown of None keeps "unknown" for the resolver's lifetime.
    """

    def __init__(
        self,
        probe: Callable[[str], Awaitable[str]],
        *,
        unknown_cooldown: float | None = DEFAULT_UNKNOWN_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize resolver.

        Args:
            probe: Coroutine function fetching the release token for a server
            unknown_cooldown: Seconds before re-probing after a failure
            clock: Monotonic time source
        """
        self._probe = probe
        self.unknown_cooldown = unknown_cooldown
        self._clock = clock

        self._resolved: dict[str, str] = {}
        self._failed_at: dict[str, float] = {}
        self._inflight: dict[str, asyncio.Future[str]] = {}
        self.probe_count = 0

    def _in_cooldown(self, server: str) -> bool:
        failed_at = self._failed_at.get(server)
        if failed_at is None:
            return False
        if self.unknown_cooldown is None:
            return True
        return self._clock() - failed_at < self.unknown_cooldown

    async def resolve(self, server: str) -> str:
        """Get the release token for ``server``.

        Args:
            server: Base URL of the upstream server

        Returns:
            Release token, or UNKNOWN_RELEASE if the probe failed
        """
        if server in self._resolved:
            return self._resolved[server]

        if self._in_cooldown(server):
            return UNKNOWN_RELEASE

        inflight = self._inflight.get(server)
        if inflight is None:
            inflight = asyncio.ensure_future(self._probe_once(server))
            self._inflight[server] = inflight

        # Shield so one cancelled caller does not cancel the shared probe
        return await asyncio.shield(inflight)

    async def _probe_once(self, server: str) -> str:
        self.probe_count += 1
        try:
            release = str(await self._probe(server))
        except Exception as e:
            self._failed_at[server] = self._clock()
            logger.warning(
                "release_unknown",
                extra={"server": server, "reason": f"{type(e).__name__}: {e}"},
            )
            return UNKNOWN_RELEASE
        finally:
            self._inflight.pop(server, None)

        self._resolved[server] = release
        self._failed_at.pop(server, None)
        logger.info("release_resolved", extra={"server": server, "release": release})
        return release

    def reset(self) -> None:
        """Forget every memoized release and failure."""
        self._resolved.clear()
        self._failed_at.clear()
