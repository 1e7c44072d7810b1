"""
Credential storage layer for the WebAuthn ceremony server.

This package provides the credential registry behind the ceremonies:
the mapping from username to user handle to registered credentials.

- Memory (default; volatile, process lifetime)

Durable backends plug in by implementing CredentialRepository.

Usage:
    from storage import get_credential_repository

    repository = get_credential_repository()
    repository.add_registration("alice", registration)
    repository.user_exists("alice")  # True
"""

import os

from storage.base import (
    CredentialNotFoundError,
    CredentialRepository,
    DuplicateCredentialError,
    SignatureCounterError,
    StorageError,
    UserHandleMismatchError,
)
from storage.memory import InMemoryCredentialRepository

__all__ = [
    "CredentialNotFoundError",
    "CredentialRepository",
    "DuplicateCredentialError",
    "InMemoryCredentialRepository",
    "SignatureCounterError",
    "StorageError",
    "UserHandleMismatchError",
    "get_credential_repository",
]


def get_credential_repository() -> CredentialRepository:
    """
    Get the configured credential repository.

    Environment variables:
        CREDENTIAL_BACKEND: Backend type ("memory")

    Returns:
        New CredentialRepository instance
    """
    backend_type = os.getenv("CREDENTIAL_BACKEND", "memory").lower()

    if backend_type == "memory":
        return InMemoryCredentialRepository()

    raise StorageError(f"Unknown credential backend: {backend_type}")
