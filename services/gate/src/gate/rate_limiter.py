"""
Sliding-window rate limiting for PlanTrust.

Every write (and, through the browse middleware, every read) is admitted
against a per-client sliding window log rather than fixed buckets, so a
client cannot double its budget by straddling a bucket boundary.

Implementation
--------------
* **Decision rule**: for a key, timestamps ``<= now - window`` are dropped;
  with ``count`` timestamps remaining the request is admitted iff
  ``count < limit`` and ``now`` is recorded.  A denied request is not
  recorded and gets ``retry_after = ceil(oldest + window - now)`` (min 1).
  Both stores share :func:`_decide`, so they cannot drift apart at the
  boundary.
* **MemoryWindowStore**: ``dict[str, deque[float]]`` behind an
  ``asyncio.Lock``; a background sweeper drops idle keys.  State is local
  to the process: N instances behind a load balancer give each client N
  times the configured budget.
* **RedisWindowStore**: one sorted set per key, updated in a single
  MULTI/EXEC pipeline.  The new member is inserted optimistically and
  removed again when the post-insert cardinality exceeds the limit.
  Redis failures fail open.
"""

from __future__ import annotations

import asyncio
import contextlib
import math
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from redis.exceptions import RedisError

from pt_common.config import Settings
from pt_common.metrics import rate_limit_decisions_total
from pt_common.models.enums import EndpointClass

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateDecision:
    """Outcome of one admission attempt.

    Attributes:
        allowed: Whether the request was admitted (and recorded).
        limit: Budget of the window.
        remaining: Requests still admissible in the window after this one.
        retry_after: Seconds until a denied client may retry (0 when allowed).
        reset_at: Epoch seconds at which the oldest counted request leaves
            the window.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reset_at: float

    def headers(self, prefix: str = "X-RateLimit") -> dict[str, str]:
        """Render the decision as ``X-RateLimit-*`` response headers."""
        return {
            f"{prefix}-Limit": str(self.limit),
            f"{prefix}-Remaining": str(self.remaining),
            f"{prefix}-Reset": str(math.ceil(self.reset_at)),
        }


def _decide(prior_count: int, oldest: float | None, limit: int, window_s: float, now: float) -> RateDecision:
    """Apply the single admission rule shared by every store."""
    reset_at = (oldest if oldest is not None else now) + window_s
    if prior_count < limit:
        return RateDecision(
            allowed=True,
            limit=limit,
            remaining=limit - prior_count - 1,
            retry_after=0,
            reset_at=reset_at,
        )
    return RateDecision(
        allowed=False,
        limit=limit,
        remaining=0,
        retry_after=max(1, math.ceil(reset_at - now)),
        reset_at=reset_at,
    )


# ── Store capability interface ──


class RateWindowStore(ABC):
    """Backing store for sliding-window logs.

    Implementations atomically prune, check and record in :meth:`admit`.
    """

    name: str = "base"

    @abstractmethod
    async def admit(self, key: str, limit: int, window_s: float, now: float) -> RateDecision:
        """Admit or deny one request for *key* at time *now*."""

    async def start(self) -> None:
        """Acquire background resources (override if needed)."""

    async def close(self) -> None:
        """Release any resources held by the store (override if needed)."""


class MemoryWindowStore(RateWindowStore):
    """Process-local window store.

    Args:
        sweep_interval_s: Seconds between idle-key sweeps once started.
        clock: Source of epoch seconds for the sweeper.
    """

    name = "memory"

    def __init__(
        self,
        *,
        sweep_interval_s: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._windows: dict[str, deque[float]] = {}
        self._spans: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._windows)

    async def admit(self, key: str, limit: int, window_s: float, now: float) -> RateDecision:
        async with self._lock:
            stamps = self._windows.setdefault(key, deque())
            self._spans[key] = window_s
            cutoff = now - window_s
            while stamps and stamps[0] <= cutoff:
                stamps.popleft()
            prior_count = len(stamps)
            oldest = stamps[0] if stamps else None
            decision = _decide(prior_count, oldest, limit, window_s, now)
            if decision.allowed:
                stamps.append(now)
            return decision

    async def sweep(self, now: float | None = None) -> int:
        """Drop keys whose every timestamp has left the window.

        Returns:
            Number of keys removed.
        """
        now = self._clock() if now is None else now
        removed = 0
        async with self._lock:
            for key in list(self._windows):
                stamps = self._windows[key]
                if not stamps or stamps[-1] <= now - self._spans.get(key, 0.0):
                    del self._windows[key]
                    self._spans.pop(key, None)
                    removed += 1
        if removed:
            logger.debug("rate_window_swept", removed=removed, remaining=len(self._windows))
        return removed

    async def start(self) -> None:
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self._windows.clear()
        self._spans.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            await self.sweep()


class RedisWindowStore(RateWindowStore):
    """Window store shared by all instances through Redis sorted sets.

    Args:
        redis: An async Redis connection (the raw ``redis.asyncio.Redis``
               instance, **not** the ``RedisClient`` wrapper).
    """

    name = "redis"

    def __init__(self, redis: Any) -> None:
        self._redis = redis

    async def admit(self, key: str, limit: int, window_s: float, now: float) -> RateDecision:
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            pipe = self._redis.pipeline(transaction=True)
            # Inclusive bound matches the memory store's ``<= cutoff``.
            pipe.zremrangebyscore(key, "-inf", now - window_s)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, math.ceil(window_s))
            results = await pipe.execute()
        except (RedisError, OSError) as exc:
            logger.warning("rate_limit_store_unavailable", key=key, error=str(exc))
            return RateDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - 1),
                retry_after=0,
                reset_at=now + window_s,
            )

        card: int = results[2]
        head = results[3]
        oldest = float(head[0][1]) if head else None
        decision = _decide(card - 1, oldest, limit, window_s, now)
        if not decision.allowed:
            # Denied requests do not occupy the window.
            try:
                await self._redis.zrem(key, member)
            except (RedisError, OSError) as exc:
                logger.warning("rate_limit_rollback_failed", key=key, error=str(exc))
        return decision


# ── Limiter ──

_DENY_MESSAGES: dict[EndpointClass, str] = {
    EndpointClass.VERIFY: "You've submitted too many verifications. Please try again in 1 hour.",
    EndpointClass.VOTE: "You've submitted too many votes. Please try again in 1 hour.",
    EndpointClass.SEARCH: "Too many search requests. Please try again in 1 hour.",
    EndpointClass.DEFAULT: "Too many requests. Please try again in 1 hour.",
}


class SlidingWindowRateLimiter:
    """Per-client, per-endpoint-class admission on top of a window store.

    Args:
        store: The backing :class:`RateWindowStore`.
        limits: Budget per endpoint class.
        window_s: Window length shared by all classes.
        clock: Source of epoch seconds.
    """

    def __init__(
        self,
        store: RateWindowStore,
        limits: Mapping[EndpointClass, int],
        *,
        window_s: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self._limits = dict(limits)
        self._window_s = window_s
        self._clock = clock

    @classmethod
    def from_settings(cls, store: RateWindowStore, settings: Settings) -> SlidingWindowRateLimiter:
        return cls(
            store,
            {
                EndpointClass.VERIFY: settings.rate_limit_verify,
                EndpointClass.VOTE: settings.rate_limit_vote,
                EndpointClass.SEARCH: settings.rate_limit_search,
                EndpointClass.DEFAULT: settings.rate_limit_default,
            },
            window_s=settings.rate_limit_window_s,
        )

    def limit_for(self, endpoint_class: EndpointClass) -> int:
        return self._limits[endpoint_class]

    @staticmethod
    def deny_message(endpoint_class: EndpointClass) -> str:
        return _DENY_MESSAGES[endpoint_class]

    async def admit(self, client_key: str, endpoint_class: EndpointClass) -> RateDecision:
        """Admit or deny a request from *client_key* for *endpoint_class*."""
        decision = await self.store.admit(
            f"rate:{endpoint_class.value}:{client_key}",
            self._limits[endpoint_class],
            self._window_s,
            self._clock(),
        )
        rate_limit_decisions_total.labels(
            endpoint_class=endpoint_class.value,
            decision="allow" if decision.allowed else "deny",
        ).inc()
        if not decision.allowed:
            logger.info(
                "rate_limit_exceeded",
                client=client_key,
                endpoint_class=endpoint_class.value,
                limit=decision.limit,
                retry_after=decision.retry_after,
            )
        return decision

    async def admit_key(self, key: str, limit: int, window_s: float) -> RateDecision:
        """Admit against an arbitrary key namespace with its own budget."""
        return await self.store.admit(key, limit, window_s, self._clock())


def build_window_store(settings: Settings, redis: Any | None = None) -> RateWindowStore:
    """Pick the window store once at startup.

    ``PT_RATE_LIMIT_STORE=auto`` selects Redis when ``PT_REDIS_URL`` is set.
    Without a Redis connection the in-process store is used and the
    weakened multi-instance guarantee is logged.
    """
    if settings.uses_redis_store:
        if redis is not None:
            logger.info("rate_limit_store_selected", store=RedisWindowStore.name)
            return RedisWindowStore(redis)
        logger.warning(
            "rate_limit_store_fallback",
            requested=settings.rate_limit_store,
            reason="no redis connection",
        )
    logger.warning(
        "rate_limit_store_local",
        store=MemoryWindowStore.name,
        note="limits are per process; N instances allow N times each budget",
    )
    return MemoryWindowStore(sweep_interval_s=settings.rate_limit_sweep_interval_s)
