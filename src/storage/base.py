"""
Abstract base class for credential repositories.

This module defines the interface that all credential storage backends must
implement, and the errors they raise.
"""

from abc import ABC, abstractmethod
from typing import Any

from ceremony_data import CredentialRegistration


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class DuplicateCredentialError(StorageError):
    """Raised when a credential id is already registered to any user."""
    pass


class UserHandleMismatchError(StorageError):
    """Raised when a username is already bound to a different user handle."""
    pass


class CredentialNotFoundError(StorageError):
    """Raised when a credential id is not in the repository."""
    pass


class SignatureCounterError(StorageError):
    """Raised when a reported signature counter is lower than the stored one."""

    def __init__(self, credential_id: bytes, stored: int, reported: int):
        super().__init__(
            f"Signature counter decreased from {stored} to {reported}; "
            "the authenticator may have been cloned"
        )
        self.credential_id = credential_id
        self.stored = stored
        self.reported = reported


class CredentialRepository(ABC):
    """
    Abstract base class for credential registries.

    Maps username <-> user handle <-> registered credentials. All methods
    must be safe to call concurrently; mutations for the same username are
    serialized, mutations for different usernames are not.
    """

    @abstractmethod
    def registrations_for_username(self, username: str) -> list[CredentialRegistration]:
        """
        Get every registration for a username.

        Returns:
            List of registrations (empty for an unknown username)
        """
        pass

    @abstractmethod
    def username_for_user_handle(self, user_handle: bytes) -> str | None:
        """Resolve a user handle to its username."""
        pass

    @abstractmethod
    def registration_for_username_and_credential_id(
        self, username: str, credential_id: bytes
    ) -> CredentialRegistration | None:
        """Get one registration of a user by credential id."""
        pass

    @abstractmethod
    def add_registration(self, username: str, registration: CredentialRegistration) -> None:
        """
        Add a credential under a username.

        The first registration for a username binds it to the
        registration's user handle.

        Raises:
            DuplicateCredentialError: If the credential id is already registered
            UserHandleMismatchError: If the username is bound to another handle
        """
        pass

    @abstractmethod
    def remove_registration(self, username: str, registration: CredentialRegistration) -> bool:
        """
        Remove one credential. Removing the last one forgets the username.

        Returns:
            True if the credential was present and removed
        """
        pass

    @abstractmethod
    def remove_all_registrations(self, username: str) -> bool:
        """
        Remove every credential of a username.

        Returns:
            True if anything was removed
        """
        pass

    @abstractmethod
    def update_signature_counter(self, credential_id: bytes, new_count: int) -> None:
        """
        Record the signature counter reported by a successful assertion.

        Raises:
            CredentialNotFoundError: If the credential id is unknown
            SignatureCounterError: If new_count is lower than the stored value
        """
        pass

    def user_exists(self, username: str) -> bool:
        """Check whether a username has at least one credential."""
        return len(self.registrations_for_username(username)) > 0

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the repository.

        Returns:
            Dictionary with backend type and status
        """
        return {"backend_type": self.__class__.__name__}

    def close(self) -> None:
        """
        Release resources.

        Default implementation does nothing - backends with connections
        should override this.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
