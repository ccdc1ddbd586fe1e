"""
Cache Layer - Redis read-through cache for search and suggestions
jobmap/services/cache.py

The cache is advisory: when Redis is unconfigured or unreachable every call
returns a failure Result (treated as a miss / no-op) and nothing is raised.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import redis

from jobmap.config import settings
from jobmap.models.result import FailureKind, Result

logger = logging.getLogger(__name__)

SEARCH_PREFIX = "jobs:search"
SUGGESTIONS_PREFIX = "jobs:suggestions"


def cache_key(prefix: str, params: Dict[str, Any]) -> str:
    """Deterministic key: sorted name:json(value) pairs joined by '|'."""
    body = "|".join(
        f"{name}:{json.dumps(params[name], sort_keys=True, default=str)}"
        for name in sorted(params)
    )
    return f"{prefix}:{body}"


class CacheService:
    """Best-effort JSON cache over redis-py."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client
        if self.client is None and settings.cache_configured:
            self.client = self._connect()
        if self.client is None:
            logger.warning("⚠️ Redis not configured. Caching disabled.")

    @staticmethod
    def _connect() -> Optional[redis.Redis]:
        try:
            if settings.REDIS_URL:
                return redis.Redis.from_url(
                    settings.REDIS_URL,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    decode_responses=True,
                )
            return redis.Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                socket_connect_timeout=5,
                socket_timeout=5,
                decode_responses=True,
            )
        except Exception as e:
            logger.error(f"❌ Failed to initialize Redis: {e}")
            return None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, key: str) -> Result[Any]:
        if not self.enabled:
            return Result.failure(FailureKind.BACKEND, "cache disabled")
        try:
            raw = self.client.get(key)
        except Exception as e:
            logger.warning(f"⚠️ Cache get error for {key}: {e}")
            return Result.failure(FailureKind.BACKEND, str(e))
        if raw is None:
            return Result.failure(FailureKind.NOT_FOUND)
        try:
            return Result.success(json.loads(raw))
        except (TypeError, ValueError) as e:
            logger.warning(f"⚠️ Discarding unreadable cache entry {key}: {e}")
            return Result.failure(FailureKind.INVALID, str(e))

    def set(self, key: str, value: Any, ttl_seconds: int) -> Result[bool]:
        if not self.enabled:
            return Result.failure(FailureKind.BACKEND, "cache disabled")
        try:
            self.client.setex(key, ttl_seconds, json.dumps(value, default=str))
            return Result.success(True)
        except Exception as e:
            logger.warning(f"⚠️ Cache set error for {key}: {e}")
            return Result.failure(FailureKind.BACKEND, str(e))

    def delete(self, key: str) -> Result[int]:
        if not self.enabled:
            return Result.failure(FailureKind.BACKEND, "cache disabled")
        try:
            return Result.success(int(self.client.delete(key)))
        except Exception as e:
            logger.warning(f"⚠️ Cache delete error for {key}: {e}")
            return Result.failure(FailureKind.BACKEND, str(e))

    def delete_pattern(self, pattern: str) -> Result[int]:
        """Delete every key matching a glob pattern (SCAN, not KEYS)."""
        if not self.enabled:
            return Result.failure(FailureKind.BACKEND, "cache disabled")
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            deleted = int(self.client.delete(*keys)) if keys else 0
            logger.info(f"🧹 Invalidated {deleted} cache keys matching {pattern}")
            return Result.success(deleted)
        except Exception as e:
            logger.warning(f"⚠️ Cache delete pattern error for {pattern}: {e}")
            return Result.failure(FailureKind.BACKEND, str(e))

    def invalidate_search(self) -> Result[int]:
        return self.delete_pattern(f"{SEARCH_PREFIX}:*")

    def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.client.ping())
        except Exception as e:
            logger.warning(f"⚠️ Redis ping failed: {e}")
            return False


_cache: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    global _cache
    if _cache is None:
        _cache = CacheService()
    return _cache
