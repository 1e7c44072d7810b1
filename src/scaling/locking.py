"""
Keyed locking for ceremony state.

Provides lock managers for serializing mutations that touch the same
logical record (for example, every credential change for one username)
while leaving unrelated records free to proceed in parallel:
- LocalLockManager: Thread-based named locks for single-instance deployments

Usage:
    from scaling import create_lock_manager

    lock_manager = create_lock_manager()

    # Context manager (recommended)
    with lock_manager.lock("user:alice", timeout=30):
        update_credentials()

    # Manual acquire/release
    if lock_manager.acquire("user:alice", timeout=10):
        try:
            do_work()
        finally:
            lock_manager.release("user:alice")
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class LockInfo:
    """Information about a held lock."""

    name: str
    holder_id: str
    acquired_at: float
    depth: int = 1


class LockManager(ABC):
    """
    Abstract base class for lock managers.

    All lock managers must implement acquire/release/is_locked for
    coordinating concurrent operations.
    """

    @abstractmethod
    def acquire(self, name: str, timeout: float = 30.0) -> bool:
        """
        Acquire a named lock.

        Args:
            name: Lock identifier
            timeout: Maximum time to wait for lock (seconds)

        Returns:
            True if lock acquired, False if timeout
        """
        pass

    @abstractmethod
    def release(self, name: str) -> bool:
        """
        Release a named lock.

        Args:
            name: Lock identifier

        Returns:
            True if lock was held and released, False otherwise
        """
        pass

    @abstractmethod
    def is_locked(self, name: str) -> bool:
        """Check if a lock is currently held."""
        pass

    @contextmanager
    def lock(self, name: str, timeout: float = 30.0):
        """
        Context manager for acquiring a lock.

        Args:
            name: Lock identifier
            timeout: Maximum time to wait for lock

        Raises:
            TimeoutError: If lock cannot be acquired within timeout
        """
        if not self.acquire(name, timeout=timeout):
            raise TimeoutError(f"Could not acquire lock '{name}' within {timeout}s")
        try:
            yield
        finally:
            self.release(name)

    def get_info(self, name: str) -> LockInfo | None:
        """Get information about a lock (if held)."""
        return None


class LocalLockManager(LockManager):
    """
    Thread-based lock manager for single-instance deployments.

    Uses one threading.RLock per name, so a thread that already holds a
    name may re-enter it. Lock objects for names nobody holds or waits on
    are discarded to keep memory proportional to active contention.
    """

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._waiters: dict[str, int] = {}
        self._lock_info: dict[str, LockInfo] = {}
        self._meta_lock = threading.Lock()
        self._instance_id = str(uuid.uuid4())[:8]

    def acquire(self, name: str, timeout: float = 30.0) -> bool:
        """Acquire a named lock."""
        with self._meta_lock:
            lock = self._locks.setdefault(name, threading.RLock())
            self._waiters[name] = self._waiters.get(name, 0) + 1

        acquired = lock.acquire(timeout=timeout)

        with self._meta_lock:
            if acquired:
                info = self._lock_info.get(name)
                if info is not None:
                    info.depth += 1
                else:
                    self._lock_info[name] = LockInfo(
                        name=name,
                        holder_id=f"{self._instance_id}:{threading.current_thread().name}",
                        acquired_at=time.time(),
                    )
            else:
                self._forget(name)

        return acquired

    def release(self, name: str) -> bool:
        """Release a named lock."""
        with self._meta_lock:
            lock = self._locks.get(name)
            if lock is None:
                return False
            try:
                lock.release()
            except RuntimeError:
                # Lock not held by this thread
                return False

            info = self._lock_info.get(name)
            if info is not None:
                info.depth -= 1
                if info.depth <= 0:
                    self._lock_info.pop(name, None)
            self._forget(name)
            return True

    def _forget(self, name: str) -> None:
        """Drop one waiter reference; caller holds _meta_lock."""
        remaining = self._waiters.get(name, 0) - 1
        if remaining > 0:
            self._waiters[name] = remaining
        else:
            self._waiters.pop(name, None)
            self._locks.pop(name, None)

    def is_locked(self, name: str) -> bool:
        """Check if a lock is currently held."""
        with self._meta_lock:
            return name in self._lock_info

    def get_info(self, name: str) -> LockInfo | None:
        """Get information about a lock."""
        with self._meta_lock:
            return self._lock_info.get(name)

    def get_all_locks(self) -> list[LockInfo]:
        """Get information about all held locks."""
        with self._meta_lock:
            return list(self._lock_info.values())
