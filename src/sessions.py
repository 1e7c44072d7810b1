"""
Session registry.

Sessions are opaque 32-byte tokens bound to a user handle. They prove a
caller already authenticated (or started registering) as a given user, which
gates adding further credentials and removing existing ones.

Tokens stay valid until they fall out of the backing cache: by default ten
minutes after their last use, or earlier if the registry is full.
"""

import logging
import secrets
from typing import Any

from codec import b64url_decode, b64url_encode
from scaling.cache import Cache, LocalCache

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
DEFAULT_MAX_SESSIONS = 10000
DEFAULT_SESSION_TTL = 600.0


class SessionRegistry:
    """Issues session tokens and answers whether a token belongs to a user."""

    def __init__(
        self,
        cache: Cache | None = None,
        max_size: int = DEFAULT_MAX_SESSIONS,
        ttl: float = DEFAULT_SESSION_TTL,
    ):
        self._cache = cache if cache is not None else LocalCache(max_size=max_size, default_ttl=ttl)

    def create_session(self, user_handle: bytes) -> bytes:
        """Mint a fresh token for user_handle. A user may hold many tokens."""
        while True:
            token = secrets.token_bytes(TOKEN_BYTES)
            if self._cache.add(b64url_encode(token), b64url_encode(user_handle)):
                return token

    def get_session(self, token: bytes | None) -> bytes | None:
        """Resolve a token to the user handle it was issued for."""
        if not token:
            return None
        handle = self._cache.get(b64url_encode(token))
        if handle is None:
            return None
        try:
            return b64url_decode(handle)
        except ValueError:
            logger.warning("Discarding corrupt session entry")
            self._cache.delete(b64url_encode(token))
            return None

    def is_session_for_user(self, user_handle: bytes, token: bytes | None) -> bool:
        """True iff token is live and was issued for exactly user_handle."""
        if not user_handle:
            return False
        handle = self.get_session(token)
        return handle is not None and secrets.compare_digest(handle, user_handle)

    def end_session(self, token: bytes | None) -> bool:
        """Forget a token. Returns True if it was live."""
        if not token:
            return False
        return self._cache.delete(b64url_encode(token))

    def get_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()
