"""
Ceremony payload codec.

Decodes the JSON bodies posted by the browser at the end of a ceremony
into typed responses, and provides the base64url helpers used wherever
binary identifiers cross the transport boundary.

Payload shape (both ceremonies):
    {
        "requestId": "<base64url>",
        "credential": { ...PublicKeyCredential as JSON... },
        "sessionToken": "<base64url>"     // optional
    }
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

from ceremony_errors import DecodeError

MAX_PAYLOAD_BYTES = 64 * 1024


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """
    Decode unpadded (or padded) base64url.

    Raises:
        ValueError: If the input is not valid base64url
    """
    if not isinstance(data, str):
        raise ValueError("base64url value must be a string")
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url value: {e}") from e


@dataclass(frozen=True)
class RegistrationResponse:
    """Decoded finish-registration payload."""

    request_id: bytes
    credential: dict[str, Any] = field(default_factory=dict)
    session_token: bytes | None = None


@dataclass(frozen=True)
class AssertionResponse:
    """Decoded finish-authentication payload."""

    request_id: bytes
    credential: dict[str, Any] = field(default_factory=dict)


def _load(payload: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload, dict):
        return payload

    if isinstance(payload, bytes):
        if len(payload) > MAX_PAYLOAD_BYTES:
            raise DecodeError("Failed to decode response object.", ["Payload too large."])
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("Failed to decode response object.", [str(e)], cause=e)

    if not isinstance(payload, str):
        raise DecodeError("Failed to decode response object.", ["Payload must be JSON text."])
    if len(payload) > MAX_PAYLOAD_BYTES:
        raise DecodeError("Failed to decode response object.", ["Payload too large."])

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError("Failed to decode response object.", [str(e)], cause=e)

    if not isinstance(data, dict):
        raise DecodeError("Failed to decode response object.", ["Payload must be a JSON object."])
    return data


def _binary_field(data: dict[str, Any], name: str, required: bool = True) -> bytes | None:
    value = data.get(name)
    if value is None:
        if required:
            raise DecodeError("Failed to decode response object.", [f"Missing field: {name}"])
        return None
    try:
        decoded = b64url_decode(value)
    except ValueError as e:
        raise DecodeError("Failed to decode response object.", [f"Field '{name}': {e}"], cause=e)
    if required and not decoded:
        raise DecodeError("Failed to decode response object.", [f"Field '{name}' must not be empty"])
    return decoded


def _credential_field(data: dict[str, Any]) -> dict[str, Any]:
    credential = data.get("credential")
    if not isinstance(credential, dict):
        raise DecodeError("Failed to decode response object.", ["Field 'credential' must be an object"])
    return credential


def decode_registration_response(payload: str | bytes | dict[str, Any]) -> RegistrationResponse:
    """
    Decode a finish-registration payload.

    Raises:
        DecodeError: If the payload is malformed
    """
    data = _load(payload)
    return RegistrationResponse(
        request_id=_binary_field(data, "requestId"),
        credential=_credential_field(data),
        session_token=_binary_field(data, "sessionToken", required=False),
    )


def decode_assertion_response(payload: str | bytes | dict[str, Any]) -> AssertionResponse:
    """
    Decode a finish-authentication payload.

    Raises:
        DecodeError: If the payload is malformed
    """
    data = _load(payload)
    return AssertionResponse(
        request_id=_binary_field(data, "requestId"),
        credential=_credential_field(data),
    )
