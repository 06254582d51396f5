from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis


@dataclass
class RateLimitStatus:
    limit: int
    count: int
    retry_after: int

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


async def hit_fixed_window(redis: Redis, key: str, *, limit: int, window_seconds: int) -> RateLimitStatus:
    """Count one request against ``key``; the window starts at the first hit."""
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, window_seconds)
    ttl = await redis.ttl(key)
    if ttl is None or ttl < 0:
        # key lost its expiry between INCR and EXPIRE
        await redis.expire(key, window_seconds)
        ttl = window_seconds
    return RateLimitStatus(limit=limit, count=count, retry_after=ttl)
