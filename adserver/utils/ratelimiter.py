"""In-memory fixed-window rate limiter for the public serving endpoints.

``/ads/active`` and ``/ads/{id}/track`` are unauthenticated and called from
every page view, so they are limited per client address; authenticated routes
are limited per API key. Windows live in process memory: a multi-process
deployment gets per-process limits.

    allowed, meta = await rate_limiter.check_and_increment(
        key="ip:10.0.0.1", category="track", limit=1200, window_seconds=60,
    )

meta carries ``limit``, ``remaining``, ``reset_epoch`` for the
X-RateLimit-* response headers.
"""
from __future__ import annotations

import time
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Tuple

@dataclass
class Bucket:
    window_start: int
    count: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

class InMemoryRateLimiter:
    def __init__(self):
        # (key, category) -> Bucket
        self._buckets: Dict[Tuple[str, str], Bucket] = {}
        self._global_lock = asyncio.Lock()

    def _now(self) -> int:
        return int(time.time())

    def reset(self) -> None:
        self._buckets.clear()

    async def _bucket(self, key: str, category: str, window_start: int) -> Bucket:
        bucket = self._buckets.get((key, category))
        if bucket is None:
            async with self._global_lock:
                bucket = self._buckets.setdefault((key, category), Bucket(window_start=window_start))
        return bucket

    async def check_and_increment(self, key: str, category: str, limit: int, window_seconds: int) -> Tuple[bool, dict]:
        now = self._now()
        window_start = now - (now % window_seconds)
        bucket = await self._bucket(key, category, window_start)

        async with bucket.lock:
            if bucket.window_start != window_start:
                bucket.window_start = window_start
                bucket.count = 0
            bucket.count += 1
            allowed = bucket.count <= limit
            meta = {
                "limit": limit,
                "remaining": max(0, limit - bucket.count) if allowed else 0,
                "reset_epoch": bucket.window_start + window_seconds,
                "category": category,
            }
            return allowed, meta

# Singleton instance used application-wide
rate_limiter = InMemoryRateLimiter()

__all__ = ["rate_limiter", "InMemoryRateLimiter"]
