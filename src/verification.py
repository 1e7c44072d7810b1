"""
External collaborators consumed by the ceremony orchestrator.

The cryptographic work of WebAuthn (attestation statement verification,
assertion signature checks, origin and challenge binding) is performed by a
pluggable VerificationEngine. The orchestrator only decides when to call it
and what state to consume and produce around the call.

Attestation trust metadata is looked up through a MetadataService.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ceremony_data import AuthenticatorSelection, UserIdentity
from codec import AssertionResponse, RegistrationResponse


class VerificationError(Exception):
    """Raised by an engine when a ceremony response does not verify."""


@dataclass(frozen=True)
class RegistrationResult:
    """Verified output of a registration ceremony."""

    credential_id: bytes
    public_key_cose: bytes
    signature_count: int = 0
    transports: frozenset[str] = frozenset()
    attestation_trusted: bool = False
    attestation_certificate: bytes | None = None  # DER, first x5c entry


@dataclass(frozen=True)
class AssertionResult:
    """Verified output of an authentication ceremony."""

    success: bool
    credential_id: bytes
    user_handle: bytes
    username: str
    signature_count: int = 0


class VerificationEngine(ABC):
    """
    Relying party verification engine.

    Implementations produce ceremony options for the browser and verify
    the browser's responses against them. Any verification failure must
    be raised as VerificationError.
    """

    @abstractmethod
    def begin_registration(
        self, user: UserIdentity, authenticator_selection: AuthenticatorSelection
    ) -> Any:
        """
        Produce PublicKeyCredentialCreationOptions for a user.

        The returned options are stored verbatim with the pending request
        and handed back to complete_registration. They must be
        JSON-serializable when a distributed challenge cache is used.
        """
        pass

    @abstractmethod
    def complete_registration(
        self, options: Any, response: RegistrationResponse
    ) -> RegistrationResult:
        """
        Verify an attestation response against the stored options.

        Raises:
            VerificationError: If the response does not verify
        """
        pass

    @abstractmethod
    def begin_assertion(self, username: str | None = None) -> Any:
        """
        Produce PublicKeyCredentialRequestOptions.

        A missing username means a discoverable-credential flow.
        """
        pass

    @abstractmethod
    def complete_assertion(self, options: Any, response: AssertionResponse) -> AssertionResult:
        """
        Verify an assertion response against the stored options.

        Raises:
            VerificationError: If the response does not verify
        """
        pass


class MetadataService(ABC):
    """Attestation metadata lookup."""

    @abstractmethod
    def find_entries(self, result: RegistrationResult) -> list[Any]:
        """Return zero or more metadata entries describing the authenticator."""
        pass


class EmptyMetadataService(MetadataService):
    """Metadata service that knows no authenticators."""

    def find_entries(self, result: RegistrationResult) -> list[Any]:
        return []


@dataclass
class CompositeMetadataService(MetadataService):
    """Queries several metadata services and concatenates their entries."""

    services: list[MetadataService] = field(default_factory=list)

    def find_entries(self, result: RegistrationResult) -> list[Any]:
        entries = []
        for service in self.services:
            entries.extend(service.find_entries(result))
        return entries
