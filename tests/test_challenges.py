"""
Tests for the challenge cache of pending ceremonies.
"""

import os
import sys
import threading
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from ceremony_data import AssertionRequest, RegistrationRequest, UserIdentity, pending_request_from_dict
from ceremony_errors import ChallengeCollisionError
from challenges import ChallengeCache
from scaling.cache import LocalCache
from webauthn_fakes import FakeClock


def make_registration(request_id: bytes, token: bytes | None = b"t" * 32) -> RegistrationRequest:
    return RegistrationRequest(
        username="alice",
        request_id=request_id,
        user=UserIdentity(name="alice", display_name="Alice", id=b"h" * 32),
        creation_options={"challenge": "abc"},
        nickname="Laptop",
        session_token=token,
    )


def make_assertion(request_id: bytes, username: str | None = None) -> AssertionRequest:
    return AssertionRequest(request_id=request_id, request_options={"challenge": "xyz"}, username=username)


class TestChallengeCache:
    """Tests for ChallengeCache."""

    def test_put_and_take(self):
        requests = ChallengeCache()
        request = make_registration(b"1" * 32)
        requests.put(request)

        assert requests.contains(request.request_id)
        assert requests.take_and_invalidate(request.request_id) == request
        assert not requests.contains(request.request_id)

    def test_take_twice_yields_nothing(self):
        requests = ChallengeCache()
        requests.put(make_assertion(b"1" * 32, "alice"))

        assert requests.take_and_invalidate(b"1" * 32) is not None
        assert requests.take_and_invalidate(b"1" * 32) is None

    def test_take_unknown(self):
        assert ChallengeCache().take_and_invalidate(b"missing") is None

    def test_collision_is_an_error(self):
        requests = ChallengeCache()
        requests.put(make_registration(b"1" * 32))

        with pytest.raises(ChallengeCollisionError):
            requests.put(make_assertion(b"1" * 32))

        assert isinstance(requests.take_and_invalidate(b"1" * 32), RegistrationRequest)

    def test_unserializable_options_are_not_a_collision(self):
        pytest.importorskip("redis")
        from scaling.cache import RedisCache

        with patch("redis.from_url", return_value=MagicMock()) as from_url:
            requests = ChallengeCache(RedisCache("redis://localhost:6379/0", key_prefix="test:"))
        request = AssertionRequest(request_id=b"1" * 32, request_options={"challenge": object()})

        with pytest.raises(TypeError):
            requests.put(request)
        from_url.return_value.set.assert_not_called()

    def test_capacity(self):
        requests = ChallengeCache(max_size=3)
        ids = [bytes([i]) * 32 for i in range(4)]
        for request_id in ids:
            requests.put(make_assertion(request_id))

        assert requests.take_and_invalidate(ids[0]) is None
        assert all(requests.take_and_invalidate(i) is not None for i in ids[1:])

    def test_recent_access_protects_from_eviction(self):
        requests = ChallengeCache(max_size=2)
        requests.put(make_assertion(b"a" * 32))
        requests.put(make_assertion(b"b" * 32))

        # Lookups through the backend count as access
        requests._cache.get(ChallengeCache._key(b"a" * 32))
        requests.put(make_assertion(b"c" * 32))

        assert requests.contains(b"a" * 32)
        assert not requests.contains(b"b" * 32)

    def test_retention_window(self):
        clock = FakeClock()
        requests = ChallengeCache(LocalCache(default_ttl=600, clock=clock))
        requests.put(make_assertion(b"1" * 32))

        clock.advance(601)

        assert requests.take_and_invalidate(b"1" * 32) is None

    def test_clear(self):
        requests = ChallengeCache()
        requests.put(make_assertion(b"1" * 32))

        requests.clear()

        assert not requests.contains(b"1" * 32)

    def test_concurrent_take(self):
        requests = ChallengeCache()
        requests.put(make_registration(b"1" * 32))
        barrier = threading.Barrier(10)
        taken = []

        def take():
            barrier.wait()
            request = requests.take_and_invalidate(b"1" * 32)
            if request is not None:
                taken.append(request)

        threads = [threading.Thread(target=take) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(taken) == 1


class TestPendingRequestSerialization:
    """Pending requests survive the dict form used by distributed caches."""

    def test_registration_request(self):
        request = make_registration(b"1" * 32)

        data = request.to_dict()

        assert data["type"] == "registration"
        assert data["credentialNickname"] == "Laptop"
        assert pending_request_from_dict(data) == request

    def test_registration_request_without_session(self):
        request = make_registration(b"1" * 32, token=None)

        assert request.to_dict()["sessionToken"] is None
        assert pending_request_from_dict(request.to_dict()) == request

    def test_assertion_request(self):
        request = make_assertion(b"1" * 32, "alice")

        assert pending_request_from_dict(request.to_dict()) == request

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            pending_request_from_dict({"type": "other"})
