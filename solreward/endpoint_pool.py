"""Multi-endpoint RPC failover with per-endpoint exponential backoff.

An :class:`EndpointPool` owns an ordered list of provider URLs and a single
cursor pointing at the endpoint new requests start on.  ``execute`` runs one
logical request:

* retryable failures (rate limiting, transient network errors) are retried on
  the current endpoint with ``base_delay * 2**attempt`` backoff;
* once an endpoint has used up its attempts the shared cursor moves to the
  next endpoint, so concurrent callers converge on a working provider instead
  of rediscovering it independently;
* anything else propagates immediately and leaves the cursor alone;
* when every endpoint has been exhausted :class:`ExhaustedError` is raised
  with the last observed cause.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, Set, TypeVar
from urllib.parse import urlsplit

from .errors import ExhaustedError, RetryableProviderError
from .logging_utils import redact_url
from .metrics import RPC_ATTEMPTS, RPC_RETRIES, RPC_ROTATIONS, observe

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Endpoint:
    url: str
    position: int

    @property
    def label(self) -> str:
        """Host portion of the URL, safe for logs and metric labels."""
        parts = urlsplit(self.url)
        return parts.netloc or redact_url(self.url)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"#{self.position} {self.label}"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts_per_endpoint: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    def __post_init__(self) -> None:
        if self.max_attempts_per_endpoint < 1:
            raise ValueError("max_attempts_per_endpoint must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("backoff delays must be non-negative")

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Backoff before retry number ``attempt + 1`` on the same endpoint."""
        delay = self.base_delay * (2 ** attempt)
        if retry_after is not None and retry_after > delay:
            delay = retry_after
        return min(delay, self.max_delay)


class EndpointPool:
    """Ordered RPC endpoints sharing one rotation cursor."""

    def __init__(
        self,
        urls: Sequence[str],
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        cleaned = [u.strip() for u in urls if u and u.strip()]
        if not cleaned:
            raise ValueError("EndpointPool requires at least one endpoint URL")
        self._endpoints: tuple[Endpoint, ...] = tuple(
            Endpoint(url, idx) for idx, url in enumerate(cleaned)
        )
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._cursor = 0
        self._lock = asyncio.Lock()

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        return self._endpoints

    @property
    def current(self) -> Endpoint:
        return self._endpoints[self._cursor]

    def __len__(self) -> int:
        return len(self._endpoints)

    async def _advance(self, failed: int, exhausted: Set[int]) -> int | None:
        """Move the shared cursor past ``failed`` and pick the next endpoint to try."""
        count = len(self._endpoints)
        async with self._lock:
            if self._cursor == failed:
                self._cursor = (failed + 1) % count
                observe(RPC_ROTATIONS, endpoint=self._endpoints[failed].label)
                logger.warning(
                    "Rotating RPC endpoint %s -> %s",
                    self._endpoints[failed],
                    self._endpoints[self._cursor],
                )
            start = self._cursor
        for step in range(count):
            idx = (start + step) % count
            if idx not in exhausted:
                return idx
        return None

    async def execute(
        self,
        request: Callable[[Endpoint], Awaitable[T]],
        *,
        op: str = "request",
    ) -> T:
        """Run ``request`` against the pool until it succeeds or all endpoints are exhausted."""

        async with self._lock:
            index: int | None = self._cursor
        exhausted: Set[int] = set()
        last_error: RetryableProviderError | None = None
        attempts = 0
        max_attempts = self.policy.max_attempts_per_endpoint

        while index is not None:
            endpoint = self._endpoints[index]
            for attempt in range(max_attempts):
                attempts += 1
                started = time.monotonic()
                try:
                    result = await request(endpoint)
                except RetryableProviderError as exc:
                    last_error = exc
                    observe(RPC_ATTEMPTS, op=op, endpoint=endpoint.label, outcome="retryable")
                    if attempt + 1 >= max_attempts:
                        logger.warning(
                            "%s failed on %s after %d attempt(s): %s",
                            op,
                            endpoint,
                            attempt + 1,
                            exc,
                        )
                        break
                    delay = self.policy.delay_for(attempt, exc.retry_after)
                    observe(RPC_RETRIES, op=op, endpoint=endpoint.label)
                    logger.info(
                        "Retrying %s on %s in %.2fs (attempt %d/%d): %s",
                        op,
                        endpoint,
                        delay,
                        attempt + 1,
                        max_attempts,
                        exc,
                        extra={"op": op, "endpoint": endpoint.label, "delay": delay},
                    )
                    await self._sleep(delay)
                    continue
                except Exception:
                    observe(RPC_ATTEMPTS, op=op, endpoint=endpoint.label, outcome="error")
                    raise
                observe(RPC_ATTEMPTS, op=op, endpoint=endpoint.label, outcome="ok")
                logger.debug(
                    "%s succeeded on %s in %.3fs", op, endpoint, time.monotonic() - started
                )
                return result
            exhausted.add(index)
            index = await self._advance(index, exhausted)

        raise ExhaustedError(
            f"{op} failed on all {len(self._endpoints)} endpoint(s) after {attempts} attempt(s): "
            f"{last_error}",
            last_error=last_error,
            attempts=attempts,
            method=op,
        ) from last_error


__all__ = ["Endpoint", "RetryPolicy", "EndpointPool"]
