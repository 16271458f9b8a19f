"""
Retry utilities with tenacity.

Wraps one logical upstream call with rate-limited attempts, a fixed
per-attempt timeout, exponential backoff with jitter, server retry
hints and retryable/non-retryable classification.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from ..backends.base import (
    Backend,
    FetchResult,
    MalformedResponseError,
    RequestSpec,
    TransportFailure,
    UpstreamStatusError,
)
from ..enrich.errors import EnsemblError, RetryExhaustedError, enrich_error
from .throttling import RateLimiter


logger = logging.getLogger(__name__)


# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER_RATIO = 0.25
DEFAULT_ATTEMPT_TIMEOUT = 30.0  # seconds
DEFAULT_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration for one logical call.

    ``max_retries`` counts retries after the first attempt, so a
    persistently retryable failure is attempted ``max_retries + 1``
    times in total.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES
    jitter_ratio: float = DEFAULT_JITTER_RATIO
    attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < self.base_delay:
            raise ValueError("require 0 <= base_delay <= max_delay")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be within [0, 1]")
        if self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff(self, retry_index: int) -> float:
        """Base delay before retry number ``retry_index`` (0-based), without jitter."""
        return min(self.base_delay * (2 ** retry_index), self.max_delay)

    def is_retryable(self, exc: BaseException) -> bool:
        """Transport failures and statuses in the retryable set are retried."""
        if isinstance(exc, TransportFailure):
            return True
        if isinstance(exc, UpstreamStatusError):
            return exc.status_code in self.retryable_statuses
        return False


class wait_retry_hint_or_backoff(wait_base):
    """Wait strategy: server retry hint if present, else capped backoff.

    Up to ``jitter_ratio`` of the base delay is added at random so
    concurrent callers do not retry in lockstep.
    """

    def __init__(self, policy: RetryPolicy, rng: Callable[[], float] = random.random):
        self.policy = policy
        self.rng = rng

    def base_delay(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = getattr(exc, "retry_after", None)
        if hint is not None:
            return max(0.0, float(hint))
        return self.policy.backoff(retry_state.attempt_number - 1)

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.base_delay(retry_state)
        return delay + delay * self.policy.jitter_ratio * self.rng()


def _endpoint_of(request: RequestSpec) -> str:
    if not request.params:
        return request.path
    query = "&".join(f"{k}={v}" for k, v in request.params.items() if v not in (None, ""))
    return f"{request.path}?{query}" if query else request.path


class RetryingExecutor:
    """Executes one logical request with rate limiting and retries.

    States per call: ATTEMPT -> SUCCESS, ATTEMPT -> RETRYABLE -> WAIT ->
    ATTEMPT, ATTEMPT -> NON_RETRYABLE -> FAILED, and exhausted -> FAILED.
    Retry state is local to each call to ``execute``.
    """

    def __init__(
        self,
        backend: Backend,
        rate_limiter: RateLimiter,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize executor.

        Args:
            backend: Single-attempt upstream backend
            rate_limiter: Shared limiter acquired before every attempt
            policy: Retry policy (default: RetryPolicy())
            sleep: Coroutine used for backoff waits
            rng: Uniform [0, 1) source for jitter
        """
        self.backend = backend
        self.rate_limiter = rate_limiter
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "retry_scheduled",
            extra={
                "endpoint": retry_state.kwargs.get("endpoint"),
                "attempt": retry_state.attempt_number,
                "status": getattr(exc, "status_code", None),
                "delay_s": round(delay, 3),
                "reason": str(exc),
            },
        )

    async def _attempt(self, request: RequestSpec, *, endpoint: str) -> FetchResult:
        await self.rate_limiter.acquire()

        try:
            return await asyncio.wait_for(
                self.backend.fetch(request),
                timeout=self.policy.attempt_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"Attempt timed out after {self.policy.attempt_timeout}s",
                url=request.url,
                cause=e,
            ) from e
        except MalformedResponseError as e:
            raise EnsemblError(
                f"Ensembl API returned an unreadable response for {endpoint}.",
                e.status_code,
                endpoint,
                suggestion="The response body was not valid JSON. Retry the request, "
                "or check https://rest.ensembl.org/info/ping for service status.",
            ) from e
        except UpstreamStatusError as e:
            if self.policy.is_retryable(e):
                raise
            raise enrich_error(
                e.status_code or 0,
                e.status_text,
                endpoint,
                e.body,
                request.params,
            ) from e

    async def execute(self, request: RequestSpec) -> FetchResult:
        """Run the request until success, a permanent failure, or exhaustion.

        Args:
            request: The upstream request to perform

        Returns:
            FetchResult of the first successful attempt

        Raises:
            EnsemblError: Non-retryable status or undecodable body (raised on
                first occurrence)
            RetryExhaustedError: Retryable failures used up the budget
        """
        endpoint = _endpoint_of(request)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_retry_hint_or_backoff(self.policy, self._rng),
            retry=retry_if_exception(self.policy.is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=False,
        )

        try:
            result = await retrying(self._attempt, request, endpoint=endpoint)
        except RetryError as e:
            raise self._exhausted(e, endpoint) from e.last_attempt.exception()

        result.retry_count = retrying.statistics.get("attempt_number", 1) - 1
        return result

    def _exhausted(self, error: RetryError, endpoint: str) -> RetryExhaustedError:
        last = error.last_attempt.exception()
        attempts = error.last_attempt.attempt_number

        if isinstance(last, UpstreamStatusError) and last.status_code is not None:
            enriched: EnsemblError = enrich_error(
                last.status_code, last.status_text, endpoint, last.body
            )
            return RetryExhaustedError(
                f"{enriched.message} Gave up after {attempts} attempts.",
                last.status_code,
                endpoint,
                attempts,
                last_error=last,
                suggestion=enriched.suggestion,
                example=enriched.example,
            )

        return RetryExhaustedError(
            f"Request to {endpoint} failed after {attempts} attempts: {last}",
            None,
            endpoint,
            attempts,
            last_error=last,
            suggestion="The Ensembl REST API could not be reached. Check network "
            "connectivity or try again shortly.",
        )
