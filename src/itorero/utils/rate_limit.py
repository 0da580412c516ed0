# src/itorero/utils/rate_limit.py
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Dict, List, Optional, Protocol

from fastapi import Depends, Request
from redis import asyncio as aioredis

from src.itorero.config import settings
from src.itorero.models.user import User
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.client import get_client_ip
from src.itorero.utils.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimitStore(Protocol):
    """Sliding-window hit store: key -> timestamps inside the window."""

    async def hit(self, key: str, now: float, window: float, limit: int) -> bool:
        """Prune hits older than the window, then record ``now`` if under ``limit``.

        Returns False (and records nothing) when the key is already at the limit.
        """
        ...

    async def reset(self) -> None:
        ...


class InMemoryRateLimitStore:
    """Per-process store; state is lost on restart."""

    def __init__(self) -> None:
        self._hits: Dict[str, List[float]] = {}
        self._windows: Dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._next_sweep = 0.0

    def _sweep(self, now: float) -> None:
        # drop keys with nothing left inside their own window
        stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= now - self._windows[k]]
        for k in stale:
            del self._hits[k]
            del self._windows[k]

    def __len__(self) -> int:
        return len(self._hits)

    async def hit(self, key: str, now: float, window: float, limit: int) -> bool:
        async with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + window
            start = now - window
            self._windows[key] = window
            valid = [t for t in self._hits.get(key, []) if t > start]
            if len(valid) >= limit:
                self._hits[key] = valid
                return False
            valid.append(now)
            self._hits[key] = valid
            return True

    async def reset(self) -> None:
        async with self._lock:
            self._hits.clear()
            self._windows.clear()


class RedisRateLimitStore:
    """Shared store for multi-process deployments (one sorted set per key)."""

    def __init__(self, client: aioredis.Redis, prefix: str = "ratelimit:") -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "ratelimit:") -> "RedisRateLimitStore":
        return cls(aioredis.from_url(url, decode_responses=True), prefix=prefix)

    async def hit(self, key: str, now: float, window: float, limit: int) -> bool:
        rkey = f"{self._prefix}{key}"
        member = f"{now}:{uuid.uuid4().hex}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(rkey, 0, now - window)
            pipe.zadd(rkey, {member: now})
            pipe.zcard(rkey)
            pipe.expire(rkey, int(window) + 1)
            _, _, count, _ = await pipe.execute()
        if int(count) > limit:
            await self._redis.zrem(rkey, member)
            return False
        return True

    async def reset(self) -> None:
        async for k in self._redis.scan_iter(match=f"{self._prefix}*"):
            await self._redis.delete(k)


def build_rate_limit_store() -> RateLimitStore:
    backend = (settings.RATE_LIMIT_BACKEND or "memory").strip().lower()
    if backend == "redis":
        logger.info("Rate limiting backed by redis at %s", settings.REDIS_URL)
        return RedisRateLimitStore.from_url(settings.REDIS_URL, prefix=settings.RATE_LIMIT_PREFIX)
    return InMemoryRateLimitStore()


def rate_limit_key(request: Request, user: Optional[User] = None) -> str:
    user = user or getattr(request.state, "user", None)
    user_id = getattr(user, "id", None) or "anonymous"
    return f"{get_client_ip(request)}:{user_id}"


def rate_limit_sensitive(
    window_seconds: Optional[int] = None,
    max_requests: Optional[int] = None,
    authenticated: bool = False,
):
    """Dependency factory guarding a sensitive route with the app's store.

    With ``authenticated`` the guard resolves the current user first, so the
    key carries the user id rather than ``anonymous``.
    """
    window = float(window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS)
    limit = int(max_requests or settings.RATE_LIMIT_MAX_REQUESTS)

    async def _check(request: Request, user: Optional[User]) -> None:
        store: RateLimitStore = request.app.state.rate_limit_store
        key = rate_limit_key(request, user)
        if not await store.hit(key, time.time(), window, limit):
            logger.warning("Rate limit hit for %s on %s", key, request.url.path)
            raise RateLimitedError()

    if authenticated:
        async def _user_guard(request: Request, current_user: User = Depends(get_current_user)) -> None:
            await _check(request, current_user)

        return _user_guard

    async def _guard(request: Request) -> None:
        await _check(request, None)

    return _guard
