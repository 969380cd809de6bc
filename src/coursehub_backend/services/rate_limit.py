import logging
import time
from typing import Optional

from aiocache import SimpleMemoryCache
from fastapi import Request

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding window request counter held in an in-process cache"""

    def __init__(self, cache: Optional[SimpleMemoryCache] = None, namespace: str = "rate_limit"):
        self.cache = cache or SimpleMemoryCache()
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record one attempt. Returns False once ``limit`` attempts fall inside the window."""
        now = time.monotonic()
        cache_key = self._key(key)

        attempts = await self.cache.get(cache_key) or []
        attempts = [t for t in attempts if now - t < window_seconds]

        if len(attempts) >= limit:
            await self.cache.set(cache_key, attempts, ttl=window_seconds)
            logger.warning(f"Rate limit reached for {self.namespace}")
            return False

        attempts.append(now)
        await self.cache.set(cache_key, attempts, ttl=window_seconds)
        return True

    async def reset(self, key: Optional[str] = None):
        if key is None:
            await self.cache.clear()
        else:
            await self.cache.delete(self._key(key))


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


login_rate_limiter = RateLimiter(namespace="login")
password_reset_rate_limiter = RateLimiter(namespace="password_reset")
