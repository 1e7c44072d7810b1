"""
Challenge cache for in-flight WebAuthn ceremonies.

Holds pending registration and assertion requests between the start and
finish steps of a ceremony, keyed by their random request id. A request is
removed in the same atomic step that retrieves it, so a response can be
completed at most once.

Usage:
    from challenges import ChallengeCache

    requests = ChallengeCache(max_size=100, ttl=600)
    requests.put(request)
    request = requests.take_and_invalidate(request_id)  # None if absent
"""

import logging
from typing import Any

from ceremony_data import PendingRequest, pending_request_from_dict
from ceremony_errors import ChallengeCollisionError
from codec import b64url_encode
from scaling.cache import Cache, LocalCache

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 100
DEFAULT_RETENTION_SECONDS = 600.0


class ChallengeCache:
    """
    Bounded, expiring store of pending ceremony requests.

    Entries are evicted after the retention window passes without access,
    or least-recently-accessed first when the store is full. An evicted
    ceremony simply has to be restarted by the client.
    """

    def __init__(
        self,
        cache: Cache | None = None,
        max_size: int = DEFAULT_MAX_PENDING,
        ttl: float = DEFAULT_RETENTION_SECONDS,
    ):
        """
        Args:
            cache: Backend to store requests in (defaults to a LocalCache)
            max_size: Capacity of the default backend
            ttl: Retention window of the default backend, in seconds
        """
        self._cache = cache if cache is not None else LocalCache(max_size=max_size, default_ttl=ttl)

    @staticmethod
    def _key(request_id: bytes) -> str:
        return b64url_encode(request_id)

    def put(self, request: PendingRequest) -> None:
        """
        Store a pending request under its request id.

        Raises:
            ChallengeCollisionError: If the id is already in use
            TypeError: If a distributed cache cannot serialize the request
        """
        if not self._cache.add(self._key(request.request_id), request.to_dict()):
            raise ChallengeCollisionError("Generated request id collides with a pending request")

    def take_and_invalidate(self, request_id: bytes) -> PendingRequest | None:
        """Retrieve and remove a pending request; None if absent or expired."""
        data = self._cache.take(self._key(request_id))
        if data is None:
            return None
        return pending_request_from_dict(data)

    def contains(self, request_id: bytes) -> bool:
        return self._cache.exists(self._key(request_id))

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()
