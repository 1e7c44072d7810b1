"""
Test doubles for the WebAuthn ceremony tests.

FakeVerificationEngine stands in for the cryptographic verification engine.
A simulated browser response is a dict whose "credential" echoes the
challenge from the stored options; the engine rejects any response whose
echoed challenge does not match, and resolves assertions against the
credential repository like a real relying party would.
"""

import secrets
from typing import Any

from ceremony_data import AssertionRequest, AuthenticatorSelection, RegistrationRequest, UserIdentity
from codec import AssertionResponse, RegistrationResponse, b64url_decode, b64url_encode
from verification import AssertionResult, RegistrationResult, VerificationEngine, VerificationError

RP_ID = "example.com"


class FakeClock:
    """Time source advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVerificationEngine(VerificationEngine):
    """Verification engine that checks challenge echoes instead of signatures."""

    def __init__(self, repository):
        self.repository = repository
        self.registration_calls = 0
        self.assertion_calls = 0

    def begin_registration(self, user: UserIdentity, authenticator_selection: AuthenticatorSelection) -> dict:
        return {
            "challenge": b64url_encode(secrets.token_bytes(32)),
            "rp": {"id": RP_ID, "name": "Example"},
            "user": user.to_dict(),
            "authenticatorSelection": authenticator_selection.to_dict(),
        }

    def complete_registration(self, options: dict, response: RegistrationResponse) -> RegistrationResult:
        self.registration_calls += 1
        credential = response.credential
        if credential.get("challenge") != options["challenge"]:
            raise VerificationError("Challenge mismatch")

        credential_id = b64url_decode(credential["id"])
        certificate = credential.get("x5c")
        return RegistrationResult(
            credential_id=credential_id,
            public_key_cose=b"cose:" + credential_id,
            signature_count=credential.get("signCount", 0),
            transports=frozenset(credential.get("transports", ())),
            attestation_trusted=credential.get("trusted", False),
            attestation_certificate=b64url_decode(certificate) if certificate else None,
        )

    def begin_assertion(self, username: str | None = None) -> dict:
        return {
            "challenge": b64url_encode(secrets.token_bytes(32)),
            "rpId": RP_ID,
            "username": username,
        }

    def complete_assertion(self, options: dict, response: AssertionResponse) -> AssertionResult:
        self.assertion_calls += 1
        credential = response.credential
        if credential.get("challenge") != options["challenge"]:
            raise VerificationError("Challenge mismatch")

        credential_id = b64url_decode(credential["id"])
        user_handle = b64url_decode(credential["userHandle"])
        username = self.repository.username_for_user_handle(user_handle)
        if username is None:
            raise VerificationError("Unknown user handle")
        if options.get("username") and options["username"] != username:
            raise VerificationError("Credential belongs to another user")
        if self.repository.registration_for_username_and_credential_id(username, credential_id) is None:
            raise VerificationError("Unknown credential")

        return AssertionResult(
            success=not credential.get("badSignature", False),
            credential_id=credential_id,
            user_handle=user_handle,
            username=username,
            signature_count=credential.get("signCount", 0),
        )


def registration_payload(
    request: RegistrationRequest, credential_id: bytes, sign_count: int = 0, **credential: Any
) -> dict:
    """Simulated browser response to a pending registration."""
    return {
        "requestId": b64url_encode(request.request_id),
        "credential": {
            "id": b64url_encode(credential_id),
            "challenge": request.creation_options["challenge"],
            "signCount": sign_count,
            **credential,
        },
    }


def assertion_payload(
    request: AssertionRequest, credential_id: bytes, user_handle: bytes, sign_count: int = 0, **credential: Any
) -> dict:
    """Simulated browser response to a pending assertion."""
    return {
        "requestId": b64url_encode(request.request_id),
        "credential": {
            "id": b64url_encode(credential_id),
            "userHandle": b64url_encode(user_handle),
            "challenge": request.request_options["challenge"],
            "signCount": sign_count,
            **credential,
        },
    }


def register(server, username: str, credential_id: bytes, session_token: bytes | None = None, **credential: Any):
    """Run a full registration ceremony and return the finish result."""
    started = server.start_registration(username, username.title(), session_token=session_token)
    assert started.success, started.messages
    return server.finish_registration(registration_payload(started.value, credential_id, **credential))


def authenticate(server, username: str | None, credential_id: bytes, user_handle: bytes, sign_count: int = 0):
    """Run a full authentication ceremony and return the finish result."""
    started = server.start_authentication(username)
    assert started.success, started.messages
    return server.finish_authentication(
        assertion_payload(started.value, credential_id, user_handle, sign_count=sign_count)
    )
