"""
In-memory credential repository.

This backend keeps every registration in process memory, useful for:
- Unit testing
- Development
- Single-instance demo deployments

All data is lost when the process exits.
"""

import dataclasses
import threading
from typing import Any

from ceremony_data import CredentialRegistration
from scaling.locking import LocalLockManager, LockManager
from storage.base import (
    CredentialNotFoundError,
    CredentialRepository,
    DuplicateCredentialError,
    SignatureCounterError,
    UserHandleMismatchError,
)


class InMemoryCredentialRepository(CredentialRepository):
    """
    In-memory credential repository.

    Each username's credential list is only replaced while holding that
    username's lock from the lock manager, so writes for different usernames
    do not wait on each other. The two global indexes (user handle ->
    username and credential id -> username) are guarded by a short index
    lock that is only held for their lookups and updates. Lists are replaced,
    never mutated in place, so readers need no lock.
    """

    def __init__(self, lock_manager: LockManager | None = None, lock_timeout: float = 30.0):
        self._registrations: dict[str, list[CredentialRegistration]] = {}
        self._usernames_by_handle: dict[bytes, str] = {}
        self._owners_by_credential: dict[bytes, str] = {}
        self._index_lock = threading.RLock()
        self._locks = lock_manager or LocalLockManager()
        self._lock_timeout = lock_timeout

    def _user_lock(self, username: str):
        return self._locks.lock(f"user:{username}", timeout=self._lock_timeout)

    def registrations_for_username(self, username: str) -> list[CredentialRegistration]:
        return list(self._registrations.get(username, ()))

    def user_exists(self, username: str) -> bool:
        return bool(self._registrations.get(username))

    def username_for_user_handle(self, user_handle: bytes) -> str | None:
        with self._index_lock:
            return self._usernames_by_handle.get(user_handle)

    def registration_for_username_and_credential_id(
        self, username: str, credential_id: bytes
    ) -> CredentialRegistration | None:
        for registration in self.registrations_for_username(username):
            if registration.credential_id == credential_id:
                return registration
        return None

    def add_registration(self, username: str, registration: CredentialRegistration) -> None:
        handle = registration.user_identity.id
        credential_id = registration.credential_id

        with self._user_lock(username):
            existing = self._registrations.get(username, [])
            if existing and existing[0].user_identity.id != handle:
                raise UserHandleMismatchError(
                    f"Username {username!r} is bound to a different user handle"
                )

            with self._index_lock:
                bound = self._usernames_by_handle.get(handle)
                if bound is not None and bound != username:
                    raise UserHandleMismatchError("User handle is bound to a different username")
                if credential_id in self._owners_by_credential:
                    raise DuplicateCredentialError("Credential id is already registered")
                self._usernames_by_handle[handle] = username
                self._owners_by_credential[credential_id] = username

            self._registrations[username] = [*existing, registration]

    def remove_registration(self, username: str, registration: CredentialRegistration) -> bool:
        credential_id = registration.credential_id

        with self._user_lock(username):
            existing = self._registrations.get(username, [])
            remaining = [r for r in existing if r.credential_id != credential_id]
            if len(remaining) == len(existing):
                return False

            if remaining:
                self._registrations[username] = remaining
            else:
                self._registrations.pop(username, None)

            with self._index_lock:
                self._owners_by_credential.pop(credential_id, None)
                if not remaining:
                    self._unbind_handles(username, existing)
            return True

    def remove_all_registrations(self, username: str) -> bool:
        with self._user_lock(username):
            existing = self._registrations.pop(username, None)
            if not existing:
                return False

            with self._index_lock:
                for registration in existing:
                    self._owners_by_credential.pop(registration.credential_id, None)
                self._unbind_handles(username, existing)
            return True

    def _unbind_handles(self, username: str, registrations: list[CredentialRegistration]) -> None:
        """Drop the handle bindings of a removed user; caller holds the index lock."""
        for registration in registrations:
            if self._usernames_by_handle.get(registration.user_identity.id) == username:
                del self._usernames_by_handle[registration.user_identity.id]

    def update_signature_counter(self, credential_id: bytes, new_count: int) -> None:
        with self._index_lock:
            username = self._owners_by_credential.get(credential_id)
        if username is None:
            raise CredentialNotFoundError("Credential id is not registered")

        with self._user_lock(username):
            registrations = self._registrations.get(username, [])
            for index, registration in enumerate(registrations):
                if registration.credential_id != credential_id:
                    continue

                stored = registration.signature_count
                if new_count < stored:
                    raise SignatureCounterError(credential_id, stored, new_count)

                updated = dataclasses.replace(
                    registration,
                    credential=dataclasses.replace(
                        registration.credential, signature_count=new_count
                    ),
                )
                self._registrations[username] = [
                    *registrations[:index], updated, *registrations[index + 1:]
                ]
                return

        # Removed between the index lookup and taking the user lock
        raise CredentialNotFoundError("Credential id is not registered")

    def get_info(self) -> dict[str, Any]:
        """Get repository information."""
        info = super().get_info()
        with self._index_lock:
            info.update(
                {
                    "user_count": len(self._registrations),
                    "credential_count": len(self._owners_by_credential),
                }
            )
        return info

    def clear(self) -> None:
        """Clear all stored registrations."""
        with self._index_lock:
            self._registrations.clear()
            self._usernames_by_handle.clear()
            self._owners_by_credential.clear()
