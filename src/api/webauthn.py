"""
WebAuthn Ceremony Server - Ceremony API Blueprint

REST API endpoints for the WebAuthn ceremonies.
Provides access to:
- Registration start/finish
- Authentication start/finish
- Credential deregistration
- Account deletion

Binary values (request ids, session tokens, credential ids) are unpadded
base64url strings on the wire. Failures return
{"success": false, "messages": [...]} with a status code matching the
error category.
"""

from flask import Blueprint, jsonify, request

from ceremony_errors import InvalidRequest, PermissionDenied
from api.utils import (
    error_response,
    get_server,
    optional_binary_param,
    parse_bool,
    request_params,
    result_response,
    string_param,
)

webauthn_bp = Blueprint("webauthn", __name__)


# =============================================================================
# Registration Endpoints
# =============================================================================


@webauthn_bp.route("/register", methods=["POST"])
def start_registration():
    """
    Start registering a credential.

    Request body (JSON or form):
        {
            "username": "alice",
            "displayName": "Alice",
            "credentialNickname": "My YubiKey",       // Optional
            "residentKeyRequirement": "preferred",    // Optional
            "requireResidentKey": false,              // Optional, legacy flag
            "sessionToken": "<base64url>"             // Required for existing users
        }

    Returns:
        Pending registration request including creation options
    """
    params = request_params()

    if params.get("residentKeyRequirement") not in (None, ""):
        requirement = params["residentKeyRequirement"]
    elif "requireResidentKey" in params:
        requirement = parse_bool(params["requireResidentKey"])
    else:
        requirement = None

    try:
        username = string_param(params, "username", "")
        display_name = string_param(params, "displayName", "")
        nickname = string_param(params, "credentialNickname")
        session_token = optional_binary_param(params, "sessionToken")
    except InvalidRequest as e:
        return error_response(e)

    result = get_server().start_registration(
        username=username,
        display_name=display_name,
        credential_nickname=nickname or None,
        resident_key_requirement=requirement,
        session_token=session_token,
    )
    if not result.success:
        return error_response(result.error)
    return jsonify({"success": True, "request": result.value.to_dict()})


@webauthn_bp.route("/register/finish", methods=["POST"])
def finish_registration():
    """
    Finish a registration ceremony.

    Request body:
        {
            "requestId": "<base64url>",
            "credential": { ...PublicKeyCredential... }
        }

    Returns:
        Registration outcome with a fresh session token
    """
    return result_response(get_server().finish_registration(request.get_data()))


# =============================================================================
# Authentication Endpoints
# =============================================================================


@webauthn_bp.route("/authenticate", methods=["POST"])
def start_authentication():
    """
    Start an authentication ceremony.

    Request body (JSON or form):
        {
            "username": "alice"     // Optional; omit for discoverable credentials
        }

    Returns:
        Pending assertion request including request options
    """
    try:
        username = string_param(request_params(), "username")
    except InvalidRequest as e:
        return error_response(e)

    result = get_server().start_authentication(username or None)
    if not result.success:
        return error_response(result.error)
    return jsonify({"success": True, "request": result.value.to_dict()})


@webauthn_bp.route("/authenticate/finish", methods=["POST"])
def finish_authentication():
    """
    Finish an authentication ceremony.

    Returns:
        Authentication outcome with the user's credentials and a session token
    """
    return result_response(get_server().finish_authentication(request.get_data()))


# =============================================================================
# Credential and Account Management
# =============================================================================


@webauthn_bp.route("/action/deregister", methods=["POST"])
def deregister_credential():
    """
    Remove one credential of the authenticated user.

    Request body (JSON or form):
        {
            "sessionToken": "<base64url>",
            "credentialId": "<base64url>"
        }
    """
    params = request_params()
    try:
        session_token = optional_binary_param(params, "sessionToken")
        credential_id = optional_binary_param(params, "credentialId")
    except InvalidRequest as e:
        return error_response(e)

    return result_response(get_server().deregister_credential(session_token, credential_id))


@webauthn_bp.route("/delete-account", methods=["DELETE"])
def delete_account():
    """
    Delete every credential of an account and end the caller's session.

    Request body (JSON or form):
        {
            "username": "alice",
            "sessionToken": "<base64url>"
        }

    The session must belong to the account being deleted.
    """
    params = request_params()
    try:
        username = string_param(params, "username", "")
        session_token = optional_binary_param(params, "sessionToken")
    except InvalidRequest as e:
        return error_response(e)

    server = get_server()

    registrations = server.credentials.registrations_for_username(username) if username else []
    if registrations:
        user_handle = registrations[0].user_identity.id
        if not server.sessions.is_session_for_user(user_handle, session_token):
            return error_response(PermissionDenied("Invalid session"))

    def end_session():
        server.sessions.end_session(session_token)
        return {"success": True, "deletedAccount": username}

    result = server.delete_account(username, on_success=end_session)
    if not result.success:
        return error_response(result.error)
    return jsonify(result.value)
