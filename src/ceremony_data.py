"""
WebAuthn Ceremony Server - Data Model

Immutable records for users, credentials, pending ceremony requests and
ceremony outcomes. Binary identifiers are raw bytes in memory and unpadded
base64url in every to_dict() form.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from codec import b64url_decode, b64url_encode


class ResidentKeyRequirement(Enum):
    """Whether the authenticator should create a discoverable credential."""

    DISCOURAGED = "discouraged"
    PREFERRED = "preferred"
    REQUIRED = "required"

    @classmethod
    def parse(cls, value: "ResidentKeyRequirement | str | bool | None") -> "ResidentKeyRequirement":
        """
        Parse a requirement from an enum, its string value, or the legacy
        requireResidentKey boolean.

        Raises:
            ValueError: If the value is not recognized
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.DISCOURAGED
        if isinstance(value, bool):
            return cls.REQUIRED if value else cls.DISCOURAGED
        return cls(str(value).lower())


@dataclass(frozen=True)
class AuthenticatorSelection:
    """Authenticator selection criteria passed to the verification engine."""

    resident_key: ResidentKeyRequirement = ResidentKeyRequirement.DISCOURAGED

    def __post_init__(self):
        if not isinstance(self.resident_key, ResidentKeyRequirement):
            raise TypeError("resident_key must be a ResidentKeyRequirement")

    def to_dict(self) -> dict[str, Any]:
        return {
            "residentKey": self.resident_key.value,
            "requireResidentKey": self.resident_key is ResidentKeyRequirement.REQUIRED,
        }


@dataclass(frozen=True)
class UserIdentity:
    """A relying-party user: human-chosen name plus stable opaque handle."""

    name: str
    display_name: str
    id: bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "id": b64url_encode(self.id),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserIdentity":
        return cls(
            name=data["name"],
            display_name=data["displayName"],
            id=b64url_decode(data["id"]),
        )


@dataclass(frozen=True)
class RegisteredCredential:
    """Public key credential as stored after a successful registration."""

    credential_id: bytes
    user_handle: bytes
    public_key_cose: bytes
    signature_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "credentialId": b64url_encode(self.credential_id),
            "userHandle": b64url_encode(self.user_handle),
            "publicKeyCose": b64url_encode(self.public_key_cose),
            "signatureCount": self.signature_count,
        }


@dataclass(frozen=True)
class CredentialRegistration:
    """One registered credential and the user it belongs to."""

    user_identity: UserIdentity
    credential: RegisteredCredential
    registration_time: datetime
    transports: frozenset[str] = frozenset()
    nickname: str | None = None
    attestation_metadata: Any | None = None

    @property
    def username(self) -> str:
        return self.user_identity.name

    @property
    def credential_id(self) -> bytes:
        return self.credential.credential_id

    @property
    def signature_count(self) -> int:
        return self.credential.signature_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "userIdentity": self.user_identity.to_dict(),
            "credentialNickname": self.nickname,
            "transports": sorted(self.transports),
            "registrationTime": self.registration_time.isoformat(),
            "credential": self.credential.to_dict(),
            "attestationMetadata": self.attestation_metadata,
        }


@dataclass(frozen=True)
class RegistrationRequest:
    """Pending registration ceremony, held in the challenge cache."""

    username: str
    request_id: bytes
    user: UserIdentity
    creation_options: Any
    nickname: str | None = None
    session_token: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "registration",
            "username": self.username,
            "credentialNickname": self.nickname,
            "requestId": b64url_encode(self.request_id),
            "user": self.user.to_dict(),
            "publicKeyCredentialCreationOptions": self.creation_options,
            "sessionToken": b64url_encode(self.session_token) if self.session_token else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegistrationRequest":
        token = data.get("sessionToken")
        return cls(
            username=data["username"],
            nickname=data.get("credentialNickname"),
            request_id=b64url_decode(data["requestId"]),
            user=UserIdentity.from_dict(data["user"]),
            creation_options=data["publicKeyCredentialCreationOptions"],
            session_token=b64url_decode(token) if token else None,
        )


@dataclass(frozen=True)
class AssertionRequest:
    """Pending authentication ceremony, held in the challenge cache."""

    request_id: bytes
    request_options: Any
    username: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "assertion",
            "requestId": b64url_encode(self.request_id),
            "username": self.username,
            "publicKeyCredentialRequestOptions": self.request_options,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssertionRequest":
        return cls(
            request_id=b64url_decode(data["requestId"]),
            username=data.get("username"),
            request_options=data["publicKeyCredentialRequestOptions"],
        )


PendingRequest = RegistrationRequest | AssertionRequest


def pending_request_from_dict(data: dict[str, Any]) -> PendingRequest:
    """Rebuild either pending-request variant from its to_dict() form."""
    if data.get("type") == "registration":
        return RegistrationRequest.from_dict(data)
    if data.get("type") == "assertion":
        return AssertionRequest.from_dict(data)
    raise ValueError(f"Unknown pending request type: {data.get('type')!r}")


@dataclass(frozen=True)
class RegistrationOutcome:
    """Result of a successful finish_registration."""

    request: RegistrationRequest
    registration: CredentialRegistration
    attestation_trusted: bool
    session_token: bytes
    attestation_cert: Any | None = None
    success: bool = True

    @property
    def username(self) -> str:
        return self.request.username

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "request": self.request.to_dict(),
            "registration": self.registration.to_dict(),
            "attestationTrusted": self.attestation_trusted,
            "attestationCert": self.attestation_cert.to_dict() if self.attestation_cert else None,
            "username": self.username,
            "sessionToken": b64url_encode(self.session_token),
        }


@dataclass(frozen=True)
class AuthenticationOutcome:
    """Result of a successful finish_authentication."""

    request: AssertionRequest
    registrations: list[CredentialRegistration]
    username: str
    session_token: bytes
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "request": self.request.to_dict(),
            "registrations": [r.to_dict() for r in self.registrations],
            "username": self.username,
            "sessionToken": b64url_encode(self.session_token),
        }


@dataclass(frozen=True)
class DeregisterOutcome:
    """Result of a successful deregister_credential."""

    dropped_registration: CredentialRegistration
    account_deleted: bool
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "droppedRegistration": self.dropped_registration.to_dict(),
            "accountDeleted": self.account_deleted,
        }
