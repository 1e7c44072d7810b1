"""
Tests for the session registry.
"""

import os
import sys
import threading

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from codec import b64url_encode
from scaling.cache import LocalCache
from sessions import TOKEN_BYTES, SessionRegistry
from webauthn_fakes import FakeClock

ALICE = b"a" * 32
BOB = b"b" * 32


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_create_session(self):
        sessions = SessionRegistry()

        token = sessions.create_session(ALICE)

        assert len(token) == TOKEN_BYTES
        assert sessions.get_session(token) == ALICE
        assert sessions.is_session_for_user(ALICE, token)

    def test_tokens_are_unique(self):
        sessions = SessionRegistry()

        tokens = {sessions.create_session(ALICE) for _ in range(20)}

        assert len(tokens) == 20
        assert all(sessions.is_session_for_user(ALICE, t) for t in tokens)

    def test_token_bound_to_one_user(self):
        sessions = SessionRegistry()
        token = sessions.create_session(ALICE)

        assert not sessions.is_session_for_user(BOB, token)

    def test_unknown_or_missing_token(self):
        sessions = SessionRegistry()

        assert sessions.get_session(b"unknown") is None
        assert sessions.get_session(None) is None
        assert not sessions.is_session_for_user(ALICE, None)
        assert not sessions.is_session_for_user(ALICE, b"")
        assert not sessions.is_session_for_user(b"", b"unknown")

    def test_end_session(self):
        sessions = SessionRegistry()
        token = sessions.create_session(ALICE)

        assert sessions.end_session(token) is True
        assert sessions.end_session(token) is False
        assert sessions.get_session(token) is None

    def test_expires_after_idle_window(self):
        clock = FakeClock()
        sessions = SessionRegistry(LocalCache(default_ttl=600, clock=clock))
        token = sessions.create_session(ALICE)

        clock.advance(500)
        assert sessions.is_session_for_user(ALICE, token)
        clock.advance(500)
        assert sessions.is_session_for_user(ALICE, token)
        clock.advance(601)
        assert not sessions.is_session_for_user(ALICE, token)

    def test_capacity_evicts_oldest(self):
        sessions = SessionRegistry(max_size=2)
        first = sessions.create_session(ALICE)
        sessions.create_session(ALICE)
        sessions.create_session(BOB)

        assert sessions.get_session(first) is None

    def test_corrupt_entry_discarded(self):
        cache = LocalCache()
        sessions = SessionRegistry(cache)
        token = sessions.create_session(ALICE)

        cache.set(b64url_encode(token), "abcde")

        assert sessions.get_session(token) is None
        assert not cache.exists(b64url_encode(token))

    def test_concurrent_creation_visible(self):
        sessions = SessionRegistry()
        tokens = []
        lock = threading.Lock()

        def create():
            token = sessions.create_session(ALICE)
            with lock:
                tokens.append(token)

        threads = [threading.Thread(target=create) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(tokens)) == 20
        assert all(sessions.is_session_for_user(ALICE, t) for t in tokens)
