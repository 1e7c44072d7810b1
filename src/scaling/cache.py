"""
Cache backends for short-lived ceremony state.

Provides cache backends for pending ceremony requests and session tokens:
- LocalCache: Bounded in-memory LRU cache with expire-after-access
- RedisCache: Distributed cache using Redis for multi-instance deployments

Usage:
    from scaling import create_cache

    cache = create_cache("registration", max_size=100, ttl=600)

    # Basic operations
    cache.set("key", {"data": "value"})
    value = cache.get("key")
    cache.delete("key")

    # Atomic operations
    cache.add("key", value)       # only if absent
    value = cache.take("key")     # read and remove in one step
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A cache entry with value and sliding expiration."""
    value: Any
    ttl: float | None = None
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return now > self.expires_at

    def touch(self, now: float) -> None:
        """Restart the retention window after an access."""
        if self.ttl is not None:
            self.expires_at = now + self.ttl


class Cache(ABC):
    """
    Abstract base class for cache backends.

    All cache implementations must provide get/set/delete operations
    plus the two atomic primitives the ceremony stores rely on:
    add (insert only if absent) and take (read and remove).
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value from the cache.

        Args:
            key: Cache key
            default: Value to return if key not found

        Returns:
            Cached value or default
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """
        Set a value in the cache.

        Args:
            key: Cache key
            value: Value to cache (must be JSON-serializable for Redis)
            ttl: Retention window in seconds (None = backend default)

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def add(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """
        Set a value only if the key is not already present.

        Returns:
            True if stored, False if the key already existed
        """
        pass

    @abstractmethod
    def take(self, key: str, default: Any = None) -> Any:
        """
        Atomically get and remove a value.

        Of any number of concurrent callers for the same key, at most
        one receives the stored value; the others receive default.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete a value from the cache.

        Args:
            key: Cache key

        Returns:
            True if key existed and was deleted
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if a key exists in the cache."""
        pass

    def clear(self) -> None:
        """Clear all cached values."""
        pass

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {}


class LocalCache(Cache):
    """
    In-memory cache for single-instance deployments.

    Thread-safe. Entries expire a fixed time after their last access and
    the least-recently-accessed entries are evicted once max_size is reached.
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float | None = 600.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize local cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Retention window after last access (None = no expiry)
            clock: Time source in seconds, injectable for tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _cleanup(self, now: float) -> None:
        """Remove expired entries."""
        expired = [k for k, v in self._cache.items() if v.is_expired(now)]
        for key in expired:
            del self._cache[key]
            self._evictions += 1

    def _evict_if_needed(self, now: float) -> None:
        """Evict least-recently-accessed entries if cache is full."""
        if len(self._cache) < self._max_size:
            return

        # Remove expired first
        self._cleanup(now)

        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)
            self._evictions += 1

    def _live_entry(self, key: str, now: float) -> CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._cache[key]
            self._evictions += 1
            return None
        return entry

    def _new_entry(self, value: Any, ttl: float | None, now: float) -> CacheEntry:
        entry = CacheEntry(value=value, ttl=ttl if ttl is not None else self._default_ttl)
        entry.touch(now)
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the cache, refreshing its retention window."""
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)

            if entry is None:
                self._misses += 1
                return default

            entry.touch(now)
            self._cache.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Set a value in the cache."""
        with self._lock:
            now = self._clock()
            self._cache.pop(key, None)
            self._evict_if_needed(now)
            self._cache[key] = self._new_entry(value, ttl, now)
            return True

    def add(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Set a value only if no live entry exists for the key."""
        with self._lock:
            now = self._clock()
            if self._live_entry(key, now) is not None:
                return False
            self._evict_if_needed(now)
            self._cache[key] = self._new_entry(value, ttl, now)
            return True

    def take(self, key: str, default: Any = None) -> Any:
        """Atomic get-and-remove."""
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                self._misses += 1
                return default

            del self._cache[key]
            self._hits += 1
            return entry.value

    def delete(self, key: str) -> bool:
        """Delete a value from the cache."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def exists(self, key: str) -> bool:
        """Check if a key exists (does not count as an access)."""
        with self._lock:
            return self._live_entry(key, self._clock()) is not None

    def clear(self) -> None:
        """Clear all cached values."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            self._cleanup(self._clock())
            return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "type": "LocalCache",
                "size": len(self._cache),
                "max_size": self._max_size,
                "ttl": self._default_ttl,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total > 0 else 0,
            }


class RedisCache(Cache):
    """
    Distributed cache using Redis.

    Provides shared ceremony state across multiple API instances.
    Reads refresh the key's expiry so retention is measured from last
    access. Redis has no per-prefix size cap; configure maxmemory with an
    LRU policy on the server instead.
    Requires redis package: pip install redis
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "webauthn:cache:",
        default_ttl: float = 600.0,
    ):
        """
        Initialize Redis cache.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for cache keys
            default_ttl: Default TTL for entries without explicit TTL
        """
        try:
            import redis
        except ImportError:
            raise ImportError("redis package required: pip install redis")

        self._redis = redis.from_url(redis_url)
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl

    def _key(self, key: str) -> str:
        """Get Redis key with prefix."""
        return f"{self._key_prefix}{key}"

    def _ttl(self, ttl: float | None) -> int:
        return max(1, int(ttl if ttl is not None else self._default_ttl))

    def _serialize(self, value: Any) -> str:
        """Serialize value to JSON string."""
        return json.dumps(value)

    def _deserialize(self, data: bytes | str | None) -> Any:
        """Deserialize value from JSON string."""
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return json.loads(data)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from Redis and slide its expiry."""
        data = self._redis.getex(self._key(key), ex=self._ttl(None))
        if data is None:
            return default
        try:
            return self._deserialize(data)
        except (json.JSONDecodeError, TypeError):
            return default

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Set a value in Redis."""
        try:
            data = self._serialize(value)
        except (TypeError, ValueError):
            return False
        return bool(self._redis.set(self._key(key), data, ex=self._ttl(ttl)))

    def add(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """
        SET NX: store only if the key is absent.

        Raises:
            TypeError: If the value cannot be serialized to JSON
        """
        data = self._serialize(value)
        return bool(self._redis.set(self._key(key), data, ex=self._ttl(ttl), nx=True))

    def take(self, key: str, default: Any = None) -> Any:
        """GETDEL: atomic read and remove on the Redis server."""
        data = self._redis.getdel(self._key(key))
        if data is None:
            return default
        try:
            return self._deserialize(data)
        except (json.JSONDecodeError, TypeError):
            return default

    def delete(self, key: str) -> bool:
        """Delete a value from Redis."""
        return self._redis.delete(self._key(key)) > 0

    def exists(self, key: str) -> bool:
        """Check if a key exists in Redis."""
        return self._redis.exists(self._key(key)) > 0

    def clear(self) -> None:
        """Clear all cached values with our prefix."""
        pattern = f"{self._key_prefix}*"
        cursor = 0
        while True:
            cursor, keys = self._redis.scan(cursor, match=pattern, count=100)
            if keys:
                self._redis.delete(*keys)
            if cursor == 0:
                break

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        info = self._redis.info("stats")
        return {
            "type": "RedisCache",
            "prefix": self._key_prefix,
            "ttl": self._default_ttl,
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "connected": self._redis.ping(),
        }

    def close(self):
        """Close the Redis connection."""
        self._redis.close()
