"""
Pytest configuration and shared fixtures for the WebAuthn ceremony tests.

This module provides shared fixtures and test configuration including:
- A controllable clock for cache expiry
- A fake verification engine bound to the credential repository
- A fully wired CeremonyOrchestrator with a private metrics collector
- Flask app and test client for the HTTP layer
"""

import os
import sys
from datetime import UTC, datetime

import pytest

# Add src and tests to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

# Keep the stores in memory regardless of the developer's environment
os.environ.pop("REDIS_URL", None)
os.environ.pop("CREDENTIAL_BACKEND", None)

from webauthn_fakes import FakeClock, FakeVerificationEngine  # noqa: E402

REGISTRATION_TIME = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)


@pytest.fixture
def clock():
    """Manually advanced time source for cache expiry."""
    return FakeClock()


@pytest.fixture
def collector():
    """A metrics collector private to one test."""
    from monitoring.metrics import MetricsCollector

    return MetricsCollector()


@pytest.fixture
def repository():
    from storage import InMemoryCredentialRepository

    return InMemoryCredentialRepository()


@pytest.fixture
def engine(repository):
    return FakeVerificationEngine(repository)


@pytest.fixture
def server(engine, repository, collector, clock):
    """Orchestrator with small in-memory stores sharing the fake clock."""
    from challenges import ChallengeCache
    from scaling.cache import LocalCache
    from sessions import SessionRegistry
    from webauthn_server import CeremonyOrchestrator

    return CeremonyOrchestrator(
        engine=engine,
        credentials=repository,
        sessions=SessionRegistry(LocalCache(max_size=100, default_ttl=600, clock=clock)),
        registration_requests=ChallengeCache(LocalCache(max_size=10, default_ttl=600, clock=clock)),
        assertion_requests=ChallengeCache(LocalCache(max_size=10, default_ttl=600, clock=clock)),
        clock=lambda: REGISTRATION_TIME,
        metrics_collector=collector,
    )


@pytest.fixture
def flask_app(server, collector):
    """Flask app serving the orchestrator."""
    from api import create_app

    app = create_app(server, collector=collector)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    """Flask test client."""
    return flask_app.test_client()
