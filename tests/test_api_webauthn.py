"""
Tests for the HTTP transport of the ceremony server.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from ceremony_data import pending_request_from_dict
from codec import b64url_decode, b64url_encode
from webauthn_fakes import assertion_payload, registration_payload


def start_registration(client, username, **params):
    response = client.post("/api/v1/register", json={"username": username, "displayName": username, **params})
    return response


def register(client, username, credential_id, **params):
    started = start_registration(client, username, **params)
    assert started.status_code == 200, started.get_json()
    request = pending_request_from_dict(started.get_json()["request"])
    finished = client.post("/api/v1/register/finish", json=registration_payload(request, credential_id))
    assert finished.status_code == 200, finished.get_json()
    return finished.get_json()


class TestRegistrationEndpoints:
    """Tests for /api/v1/register and /api/v1/register/finish."""

    def test_start_registration(self, client):
        response = start_registration(client, "bob", credentialNickname="Key")

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["request"]["username"] == "bob"
        assert body["request"]["credentialNickname"] == "Key"
        assert len(b64url_decode(body["request"]["requestId"])) == 32
        assert body["request"]["sessionToken"]

    def test_start_registration_form_encoded(self, client):
        response = client.post(
            "/api/v1/register",
            data={"username": "bob", "displayName": "Bob", "requireResidentKey": "true"},
        )

        assert response.status_code == 200
        options = response.get_json()["request"]["publicKeyCredentialCreationOptions"]
        assert options["authenticatorSelection"]["residentKey"] == "required"

    def test_start_registration_resident_key_requirement(self, client):
        response = start_registration(client, "bob", residentKeyRequirement="preferred")

        options = response.get_json()["request"]["publicKeyCredentialCreationOptions"]
        assert options["authenticatorSelection"]["residentKey"] == "preferred"

    def test_missing_username(self, client):
        response = client.post("/api/v1/register", json={})

        assert response.status_code == 400
        assert response.get_json() == {"success": False, "messages": ["Username must not be empty."]}

    def test_invalid_session_token_encoding(self, client):
        response = start_registration(client, "bob", sessionToken="abcde")

        assert response.status_code == 400

    def test_full_registration(self, client):
        body = register(client, "bob", b"cred-1")

        assert body["success"] is True
        assert body["username"] == "bob"
        assert body["registration"]["credential"]["credentialId"] == b64url_encode(b"cred-1")
        assert body["sessionToken"]

    def test_existing_username_conflict(self, client):
        register(client, "alice", b"cred-1")

        response = start_registration(client, "alice")

        assert response.status_code == 409
        assert response.get_json()["messages"] == ['The username "alice" is already registered.']

    def test_second_credential_with_session(self, client):
        first = register(client, "alice", b"cred-1")

        second = register(client, "alice", b"cred-2", sessionToken=first["sessionToken"])

        assert second["registration"]["userIdentity"]["id"] == first["registration"]["userIdentity"]["id"]

    def test_replay_is_not_found(self, client):
        started = start_registration(client, "bob").get_json()
        request = pending_request_from_dict(started["request"])
        payload = registration_payload(request, b"cred-1")

        assert client.post("/api/v1/register/finish", json=payload).status_code == 200
        replay = client.post("/api/v1/register/finish", json=payload)

        assert replay.status_code == 404
        assert replay.get_json()["messages"] == ["Registration failed!", "No such registration in progress."]

    def test_malformed_finish(self, client):
        response = client.post("/api/v1/register/finish", data="not json", content_type="application/json")

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_verification_failure(self, client):
        started = start_registration(client, "bob").get_json()
        request = pending_request_from_dict(started["request"])

        response = client.post(
            "/api/v1/register/finish", json=registration_payload(request, b"cred-1", challenge="forged")
        )

        assert response.status_code == 400


class TestAuthenticationEndpoints:
    """Tests for /api/v1/authenticate and /api/v1/authenticate/finish."""

    def test_unknown_username(self, client):
        response = client.post("/api/v1/authenticate", json={"username": "nobody"})

        assert response.status_code == 404

    def test_full_authentication(self, client):
        registered = register(client, "alice", b"cred-1")
        handle = b64url_decode(registered["registration"]["userIdentity"]["id"])

        started = client.post("/api/v1/authenticate", json={"username": "alice"})
        assert started.status_code == 200
        request = pending_request_from_dict(started.get_json()["request"])

        response = client.post(
            "/api/v1/authenticate/finish", json=assertion_payload(request, b"cred-1", handle, sign_count=1)
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["username"] == "alice"
        assert len(body["registrations"]) == 1
        assert body["sessionToken"]

    def test_discoverable_start(self, client):
        response = client.post("/api/v1/authenticate")

        assert response.status_code == 200
        assert response.get_json()["request"]["username"] is None


class TestAccountEndpoints:
    """Tests for deregistration and account deletion."""

    def test_deregister(self, client):
        registered = register(client, "alice", b"cred-1")

        response = client.post(
            "/api/v1/action/deregister",
            json={"sessionToken": registered["sessionToken"], "credentialId": b64url_encode(b"cred-1")},
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["accountDeleted"] is True
        assert body["droppedRegistration"]["credential"]["credentialId"] == b64url_encode(b"cred-1")

    def test_deregister_invalid_session(self, client):
        register(client, "alice", b"cred-1")

        response = client.post(
            "/api/v1/action/deregister",
            json={"sessionToken": b64url_encode(b"bogus"), "credentialId": b64url_encode(b"cred-1")},
        )

        assert response.status_code == 403
        assert response.get_json()["messages"] == ["Invalid session"]

    def test_deregister_missing_credential_id(self, client):
        registered = register(client, "alice", b"cred-1")

        response = client.post("/api/v1/action/deregister", json={"sessionToken": registered["sessionToken"]})

        assert response.status_code == 400

    def test_deregister_unknown_credential(self, client):
        registered = register(client, "alice", b"cred-1")

        response = client.post(
            "/api/v1/action/deregister",
            json={"sessionToken": registered["sessionToken"], "credentialId": b64url_encode(b"other")},
        )

        assert response.status_code == 404

    def test_delete_account(self, client, server):
        registered = register(client, "alice", b"cred-1")
        token = registered["sessionToken"]

        response = client.delete("/api/v1/delete-account", json={"username": "alice", "sessionToken": token})

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "deletedAccount": "alice"}
        assert not server.credentials.user_exists("alice")
        assert server.sessions.get_session(b64url_decode(token)) is None

    def test_delete_account_requires_session(self, client, server):
        register(client, "alice", b"cred-1")

        response = client.delete("/api/v1/delete-account", json={"username": "alice"})

        assert response.status_code == 403
        assert server.credentials.user_exists("alice")

    def test_delete_unknown_account(self, client):
        response = client.delete("/api/v1/delete-account", json={"username": "nobody"})

        assert response.status_code == 404
        assert response.get_json()["messages"] == ["Username not registered: nobody"]


class TestMalformedParameters:
    """Tests for parameters of the wrong JSON type."""

    def test_register_list_username(self, client):
        response = client.post("/api/v1/register", json={"username": ["alice"]})

        assert response.status_code == 400
        assert response.get_json() == {"success": False, "messages": ["username must be a string."]}

    def test_register_non_string_display_name(self, client):
        response = client.post("/api/v1/register", json={"username": "bob", "displayName": 7})

        assert response.status_code == 400
        assert response.get_json()["messages"] == ["displayName must be a string."]

    def test_authenticate_list_username(self, client):
        response = client.post("/api/v1/authenticate", json={"username": ["alice"]})

        assert response.status_code == 400
        assert response.get_json()["messages"] == ["username must be a string."]

    def test_deregister_non_string_credential_id(self, client):
        registered = register(client, "alice", b"cred-1")

        response = client.post(
            "/api/v1/action/deregister",
            json={"sessionToken": registered["sessionToken"], "credentialId": ["cred-1"]},
        )

        assert response.status_code == 400

    def test_delete_account_list_username(self, client, server):
        register(client, "alice", b"cred-1")

        response = client.delete("/api/v1/delete-account", json={"username": ["alice"]})

        assert response.status_code == 400
        assert response.get_json()["messages"] == ["username must be a string."]
        assert server.credentials.user_exists("alice")


class TestMonitoringEndpoints:
    """Tests for /health and /metrics."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["stores"]["credentials"]["backend_type"] == "InMemoryCredentialRepository"

    def test_metrics(self, client):
        register(client, "alice", b"cred-1")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.mimetype == "text/plain"
        text = response.get_data(as_text=True)
        assert 'webauthn_ceremony_operations_total{operation="finish_registration",outcome="success"} 1' in text
        assert "webauthn_http_requests_total" in text

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
