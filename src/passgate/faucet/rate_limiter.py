"""Claim Rate Limiter for PASSGATE faucet.

Features:
- One successful claim per identity per cooldown window (24h default)
- Per-identity mutual exclusion around check-and-record
- Redis-backed shared store, with in-memory fallback for development
"""

import asyncio
import logging
import math
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from passgate.errors import ClaimStoreError

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


def round_up_hours(seconds: float) -> int:
    """Round a duration up to whole hours for display."""
    return max(1, math.ceil(seconds / SECONDS_PER_HOUR))


def _format_cooldown(seconds: float) -> str:
    """Format cooldown duration for user display."""
    hours = round_up_hours(seconds)
    if hours == 1:
        return "You can claim again in 1 hour"
    return f"You can claim again in {hours} hours"


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    retry_after_seconds: float | None  # Full precision, None if allowed
    next_claim_at: float | None  # Epoch seconds when the identity may claim again
    reason: str | None  # Rejection reason if not allowed

    @property
    def retry_after_hours(self) -> int | None:
        """Retry delay rounded up to whole hours, for display only."""
        if self.retry_after_seconds is None:
            return None
        return round_up_hours(self.retry_after_seconds)


class ClaimRateLimiter:
    """Rate limiter for faucet claims.

    Uses Redis for persistence in production so that the cooldown holds
    across restarts and across service instances, with an in-memory
    fallback for development/testing.

    Callers must hold ``claim_lock(identity)`` around the sequence
    ``try_claim`` -> mint -> ``record_claim`` so that two concurrent
    claims for the same identity cannot both be allowed.

    Parameters
    ----------
    cooldown_hours : float
        Minimum time between two successful claims for one identity.
    redis_url : str | None
        Redis connection URL. If None, uses in-memory storage.
    lock_timeout : float
        Seconds a Redis claim lock may be held or waited for.
    """

    def __init__(
        self,
        cooldown_hours: float = 24,
        redis_url: str | None = None,
        lock_timeout: float = 120.0,
    ):
        self._cooldown_seconds = cooldown_hours * SECONDS_PER_HOUR
        self._redis_url = redis_url
        self._lock_timeout = lock_timeout
        self._redis: Redis | None = None

        # In-memory fallback storage: identity -> last claim timestamp
        self._memory_claims: dict[str, float] = {}

        # Per-identity locks, dropped once no task holds or waits on them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def cooldown(self) -> timedelta:
        """The cooldown window."""
        return timedelta(seconds=self._cooldown_seconds)

    @property
    def lock_timeout(self) -> float:
        """Seconds a claim lock may be held before it expires."""
        return self._lock_timeout

    @property
    def uses_redis(self) -> bool:
        """Whether claims are stored in Redis."""
        return self._redis is not None

    async def connect(self) -> None:
        """Connect to Redis if configured, falling back to memory on failure."""
        if not self._redis_url:
            return
        try:
            redis = Redis.from_url(self._redis_url, decode_responses=True)
            await redis.ping()
            self._redis = redis
            logger.info("Redis connected for claim records", extra={"url": self._redis_url})
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis connection failed, using in-memory claim records",
                extra={"error": str(e)},
            )
            self._redis = None

    async def close(self) -> None:
        """Close the Redis connection if open."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _get_claim_key(self, identity: str) -> str:
        """Get Redis key for the last claim timestamp."""
        return f"passgate:claim:{identity}"

    def _get_lock_key(self, identity: str) -> str:
        """Get Redis key for the claim lock."""
        return f"passgate:claim-lock:{identity}"

    @asynccontextmanager
    async def claim_lock(self, identity: str) -> AsyncIterator[None]:
        """Serialize claim attempts for one identity.

        Claims for different identities never contend.

        Raises
        ------
        ClaimStoreError
            If the shared Redis lock cannot be acquired.
        """
        lock = self._locks.setdefault(identity, asyncio.Lock())
        self._lock_users[identity] = self._lock_users.get(identity, 0) + 1
        try:
            async with lock:
                if self._redis is None:
                    yield
                    return
                redis_lock = self._redis.lock(
                    self._get_lock_key(identity),
                    timeout=self._lock_timeout,
                    blocking_timeout=self._lock_timeout,
                )
                try:
                    acquired = await redis_lock.acquire()
                except RedisError as e:
                    raise ClaimStoreError(f"Claim lock unavailable: {e}") from e
                if not acquired:
                    raise ClaimStoreError("Another claim for this wallet is in progress")
                try:
                    yield
                finally:
                    try:
                        await redis_lock.release()
                    except LockError:
                        logger.warning(
                            "Claim lock expired before release",
                            extra={"identity": identity},
                        )
        finally:
            self._lock_users[identity] -= 1
            if self._lock_users[identity] == 0:
                del self._lock_users[identity]
                del self._locks[identity]

    async def _last_claim(self, identity: str) -> float | None:
        if self._redis is None:
            return self._memory_claims.get(identity)
        try:
            value = await self._redis.get(self._get_claim_key(identity))
        except RedisError as e:
            raise ClaimStoreError(f"Claim store unavailable: {e}") from e
        return float(value) if value is not None else None

    async def try_claim(self, identity: str, now: float | None = None) -> RateLimitResult:
        """Check whether an identity may claim now.

        Parameters
        ----------
        identity : str
            Wallet address (rate limiter key).
        now : float | None
            Current epoch seconds; defaults to ``time.time()``.

        Returns
        -------
        RateLimitResult
            Whether the claim is allowed, and when to retry if not.
        """
        now = time.time() if now is None else now
        last_claim = await self._last_claim(identity)

        if last_claim is not None:
            elapsed = now - last_claim
            if elapsed < self._cooldown_seconds:
                retry_after = self._cooldown_seconds - elapsed
                return RateLimitResult(
                    allowed=False,
                    retry_after_seconds=retry_after,
                    next_claim_at=last_claim + self._cooldown_seconds,
                    reason=_format_cooldown(retry_after),
                )

        return RateLimitResult(
            allowed=True,
            retry_after_seconds=None,
            next_claim_at=None,
            reason=None,
        )

    async def record_claim(self, identity: str, now: float | None = None) -> None:
        """Record a confirmed claim for an identity.

        Must only be called after the mint transaction is confirmed.

        Parameters
        ----------
        identity : str
            Wallet address.
        now : float | None
            Claim time in epoch seconds; defaults to ``time.time()``.
        """
        now = time.time() if now is None else now
        if self._redis is not None:
            try:
                await self._redis.set(
                    self._get_claim_key(identity),
                    repr(now),
                    ex=math.ceil(self._cooldown_seconds),
                )
            except RedisError as e:
                raise ClaimStoreError(f"Claim store unavailable: {e}") from e
        else:
            self._memory_claims[identity] = now
            self._evict_expired(now)

        logger.debug("Claim recorded", extra={"identity": identity})

    def _evict_expired(self, now: float) -> None:
        """Drop in-memory records older than the cooldown window."""
        cutoff = now - self._cooldown_seconds
        expired = [key for key, ts in self._memory_claims.items() if ts <= cutoff]
        for key in expired:
            del self._memory_claims[key]

    async def get_cooldown(self, identity: str) -> timedelta | None:
        """Get cooldown time remaining.

        Returns
        -------
        timedelta | None
            Time until next claim allowed, or None if no cooldown.
        """
        result = await self.try_claim(identity)
        if result.retry_after_seconds:
            return timedelta(seconds=result.retry_after_seconds)
        return None

    async def reset_claim(self, identity: str) -> None:
        """Forget the claim record for an identity (admin function)."""
        if self._redis is not None:
            try:
                await self._redis.delete(self._get_claim_key(identity))
            except RedisError as e:
                raise ClaimStoreError(f"Claim store unavailable: {e}") from e
        else:
            self._memory_claims.pop(identity, None)

        logger.info("Claim record reset", extra={"identity": identity})
