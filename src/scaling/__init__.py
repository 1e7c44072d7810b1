"""
Scaling infrastructure for the WebAuthn ceremony server.

This package provides the building blocks behind the ceremony stores:
- Cache abstraction for short-lived state (pending requests, sessions)
- Keyed locking for serializing per-user mutations

Stores are constructed explicitly and injected; nothing here is a
process-wide singleton.

Usage:
    from scaling import create_cache, create_lock_manager

    cache = create_cache("registration", max_size=100, ttl=600)
    cache.add("key", value)
    value = cache.take("key")

    lock_manager = create_lock_manager()
    with lock_manager.lock("user:alice"):
        update_credentials()
"""

import os

from scaling.cache import Cache, LocalCache, RedisCache
from scaling.locking import LocalLockManager, LockManager

__all__ = [
    "Cache",
    "LocalCache",
    "RedisCache",
    "LockManager",
    "LocalLockManager",
    "create_cache",
    "create_lock_manager",
]


def create_cache(
    name: str,
    max_size: int = 100,
    ttl: float = 600.0,
    redis_url: str | None = None,
) -> Cache:
    """
    Create a cache backend for one ceremony store.

    Uses Redis if a URL is given (or REDIS_URL is set), otherwise a
    bounded in-memory cache.

    Args:
        name: Store name, used as the Redis key namespace
        max_size: Maximum entries (in-memory backend only)
        ttl: Retention window in seconds after last access
        redis_url: Explicit Redis URL overriding REDIS_URL
    """
    redis_url = redis_url or os.getenv("REDIS_URL")
    if redis_url:
        return RedisCache(redis_url, key_prefix=f"webauthn:{name}:", default_ttl=ttl)
    return LocalCache(max_size=max_size, default_ttl=ttl)


def create_lock_manager() -> LockManager:
    """Create the lock manager used for per-user critical sections."""
    return LocalLockManager()
