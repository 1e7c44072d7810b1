"""
Shared utilities for the WebAuthn ceremony API.

This module contains the helpers used across the API blueprints: access to
the orchestrator bound to the app, request parameter parsing, and the
mapping of ceremony errors to HTTP responses.
"""

from typing import Any

from flask import current_app, jsonify, request

from ceremony_errors import (
    CeremonyError,
    CeremonyResult,
    CredentialAlreadyRegistered,
    CredentialNotFound,
    DecodeError,
    InvalidRequest,
    NoSuchPendingRequest,
    PermissionDenied,
    UnexpectedFailure,
    UsernameAlreadyRegistered,
    UsernameNotRegistered,
    VerificationFailed,
)
from codec import b64url_decode
from monitoring.metrics import MetricsCollector, metrics

SERVER_EXTENSION = "webauthn_server"
METRICS_EXTENSION = "webauthn_metrics"

# Most specific classes first
ERROR_STATUS_CODES: list[tuple[type[CeremonyError], int]] = [
    (UsernameAlreadyRegistered, 409),
    (CredentialAlreadyRegistered, 409),
    (PermissionDenied, 403),
    (VerificationFailed, 400),
    (DecodeError, 400),
    (InvalidRequest, 400),
    (NoSuchPendingRequest, 404),
    (UsernameNotRegistered, 404),
    (CredentialNotFound, 404),
    (UnexpectedFailure, 500),
]


def get_server():
    """The CeremonyOrchestrator bound to the current app."""
    return current_app.extensions[SERVER_EXTENSION]


def get_metrics() -> MetricsCollector:
    return current_app.extensions.get(METRICS_EXTENSION, metrics)


def status_for_error(error: CeremonyError) -> int:
    """HTTP status code for a ceremony error."""
    for error_type, status in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def error_response(error: CeremonyError):
    """Flask response for a failed ceremony operation."""
    return jsonify({"success": False, "messages": error.messages}), status_for_error(error)


def result_response(result: CeremonyResult, status: int = 200):
    """
    Flask response for a ceremony result.

    Success values with a to_dict() are serialized as-is; anything else is
    wrapped in {"success": true, "value": ...}.
    """
    if not result.success:
        return error_response(result.error)

    value = result.value
    if hasattr(value, "to_dict"):
        return jsonify(value.to_dict()), status
    return jsonify({"success": True, "value": value}), status


def request_params() -> dict[str, Any]:
    """
    Request parameters from a JSON body, falling back to form fields and
    the query string.
    """
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    params = request.args.to_dict()
    params.update(request.form.to_dict())
    return params


def string_param(params: dict[str, Any], name: str, default: str | None = None) -> str | None:
    """
    Read an optional text parameter.

    Raises:
        InvalidRequest: If the value is present but not a string
    """
    value = params.get(name)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidRequest(f"{name} must be a string.")
    return value


def optional_binary_param(params: dict[str, Any], name: str) -> bytes | None:
    """
    Decode an optional base64url parameter.

    Raises:
        InvalidRequest: If the value is present but not valid base64url
    """
    value = params.get(name)
    if value in (None, ""):
        return None
    try:
        return b64url_decode(value)
    except ValueError as e:
        raise InvalidRequest(f"Invalid {name}.", [str(e)], cause=e)


def parse_bool(value: Any) -> bool:
    """Interpret a form or JSON flag."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")
