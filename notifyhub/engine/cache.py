"""
notifyhub Cache Layer — Key/value store with per-entry TTL.

Two interchangeable backends:
  - RedisCache:  shared store for multi-instance deployments, with a circuit
                 breaker that degrades to "cache miss" when Redis misbehaves.
  - MemoryCache: in-process dict, the default for single-instance deployments
                 (the legacy service used an in-memory cache manager).

Both store strings only. All cached data is reconstructible: losing it just
forces a token refresh or re-authentication.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from notifyhub.engine.config import CacheConfig

logger = logging.getLogger("notifyhub.engine.cache")


class RedisCache:
    """
    Redis cache wrapper with prefixed keys and circuit breaker.

    Falls back to miss/no-op behaviour on Redis failure (circuit breaker pattern).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "notifyhub:",
        default_ttl: int = 300,
        db: int = 0,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._db = db
        self._client = None
        self._available = False

        # Circuit breaker state
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # seconds
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        """Initialize Redis connection."""
        try:
            import redis
            # Parse base URL and override DB
            self._client = redis.Redis.from_url(
                self._redis_url,
                db=self._db,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info(f"Redis connected: DB {self._db} ({self._prefix})")
            return True
        except Exception as e:
            logger.warning(f"Redis connection failed (DB {self._db}): {e}")
            self._available = False
            return False

    def _check_circuit(self) -> bool:
        """Check circuit breaker state."""
        if self._circuit_open:
            # Try to recover after window
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        """Record a Redis failure for circuit breaker."""
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now

        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )

    def _make_key(self, key: str) -> str:
        """Build prefixed key."""
        return f"{self._prefix}{key}"

    # ── Core Operations ──

    def get(self, key: str) -> Optional[str]:
        """Get a value from cache. Returns None on miss or failure."""
        if not self._check_circuit():
            return None
        try:
            return self._client.get(self._make_key(key))
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value with optional TTL (seconds). Returns False on failure."""
        if not self._check_circuit():
            return False
        try:
            self._client.set(
                self._make_key(key),
                value,
                ex=ttl or self._default_ttl,
            )
            return True
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis SET failed: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete a key."""
        if not self._check_circuit():
            return False
        try:
            self._client.delete(self._make_key(key))
            return True
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis DELETE failed: {e}")
            return False

    def ping(self) -> bool:
        """Health check."""
        if not self._client:
            return False
        try:
            return bool(self._client.ping())
        except Exception:
            return False

    def close(self) -> None:
        """Close the Redis connection and release resources."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Redis close failed: {e}")
            self._client = None
        self._available = False
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


class MemoryCache:
    """
    In-process cache with per-key expiry.

    ``clock`` returns seconds (defaults to time.time) and is injectable so
    expiry can be exercised deterministically in tests.
    """

    def __init__(
        self,
        default_ttl: int = 300,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._default_ttl = default_ttl
        self._clock = clock or time.time
        self._entries: Dict[str, Tuple[str, float]] = {}

    def connect(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        self._entries[key] = (value, self._clock() + (ttl or self._default_ttl))
        return True

    def delete(self, key: str) -> bool:
        self._entries.pop(key, None)
        return True

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self._entries.clear()

    @property
    def is_available(self) -> bool:
        return True


def create_cache(config: CacheConfig, clock: Optional[Callable[[], float]] = None):
    """Create and connect the cache backend selected in config."""
    if config.backend == "redis":
        cache = RedisCache(
            redis_url=config.redis_url,
            prefix=config.prefix,
            db=config.redis_db,
        )
    else:
        cache = MemoryCache(clock=clock)
    cache.connect()
    return cache
