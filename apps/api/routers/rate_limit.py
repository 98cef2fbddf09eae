"""Per-address request quotas for the unauthenticated account endpoints.

Counters live in Redis so every API worker shares them. When Redis cannot be
reached the quota is tracked in this process instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "bonos:rate"

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _remote_address(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


async def _count_in_redis(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        count = await client.incr(key)
        if count == 1:
            await client.expire(key, window_seconds)
        return int(count)
    finally:
        await client.aclose()


async def _count_locally(key: str, window_seconds: int) -> int:
    now = time.time()
    async with _local_lock:
        expired = [name for name, (_, expires) in _local_counters.items() if now >= expires]
        for name in expired:
            del _local_counters[name]
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        count += 1
        _local_counters[key] = (count, reset_at)
        return count


def rate_limit(scope: str, limit: int, window_seconds: int) -> Callable:
    """Dependency rejecting with 429 once an address exceeds ``limit`` calls to ``scope``."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"{KEY_PREFIX}:{scope}:{_remote_address(request)}"
        try:
            count = await _count_in_redis(key, window_seconds)
        except (redis.RedisError, OSError) as exc:
            logger.warning("Rate limit store unavailable, counting in-process: %s", exc)
            count = await _count_locally(key, window_seconds)

        if count > limit:
            logger.warning("rate_limited scope=%s key=%s count=%s", scope, key, count)
            raise HTTPException(
                status_code=429,
                detail="Demasiados intentos. Inténtalo de nuevo más tarde.",
                headers={"Retry-After": str(window_seconds)},
            )

    return _dependency
