import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import HTTPException, Request, status


class RateLimiter:
    def __init__(self) -> None:
        self._hits: Dict[str, Deque[float]] = {}
        self._windows: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    def _evict_idle(self, now: float) -> None:
        # A bucket whose newest hit is older than its own window holds nothing worth keeping.
        idle = [key for key, bucket in self._hits.items() if not bucket or now - bucket[-1] > self._windows[key]]
        for key in idle:
            del self._hits[key]
            del self._windows[key]

    async def hit(self, key: str, limit: int, window: int) -> Tuple[bool, float]:
        now = time.monotonic()
        async with self._lock:
            self._evict_idle(now)
            bucket = self._hits.setdefault(key, deque())
            self._windows[key] = window
            while bucket and now - bucket[0] > window:
                bucket.popleft()
            if len(bucket) >= limit:
                retry_after = max(0.0, window - (now - bucket[0]))
                return False, retry_after
            bucket.append(now)
            return True, 0.0


def rate_limit_dependency(scope: str, limit_setting: str, window_setting: str) -> Callable[[Request], None]:
    """Throttle a route per client address using limits read from the app settings."""

    async def dependency(request: Request) -> None:
        settings = request.app.state.settings
        limiter: RateLimiter = request.app.state.rate_limiter
        limit = getattr(settings, limit_setting)
        window_seconds = getattr(settings, window_setting)
        client_ip = request.client.host if request.client else "anonymous"
        key = f"{scope}:{client_ip}"
        allowed, retry_after = await limiter.hit(key, limit, window_seconds)
        if not allowed:
            headers = {"Retry-After": str(int(retry_after) or window_seconds)}
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests.", headers=headers)

    return dependency
