"""
Tests for attestation certificate summaries.
"""

import os
import sys
from datetime import UTC, datetime, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from attestation import AttestationCertInfo
from codec import b64url_decode, b64url_encode
from webauthn_fakes import registration_payload


@pytest.fixture(scope="module")
def attestation_der():
    """A self-signed certificate shaped like an authenticator attestation cert."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "SE"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Authenticators"),
            x509.NameAttribute(NameOID.COMMON_NAME, "Example Attestation"),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(0x1234ABCD)
        .not_valid_before(datetime(2024, 1, 1, tzinfo=UTC))
        .not_valid_after(datetime(2024, 1, 1, tzinfo=UTC) + timedelta(days=3650))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


class TestAttestationCertInfo:
    """Tests for AttestationCertInfo."""

    def test_describes_certificate(self, attestation_der):
        info = AttestationCertInfo.from_der(attestation_der)

        assert info.der == attestation_der
        assert "CN=Example Attestation" in info.text
        assert "O=Example Authenticators" in info.text
        assert "Serial: 1234abcd" in info.text
        assert "Not before: 2024-01-01T00:00:00+00:00" in info.text
        assert "SHA-256: " in info.text

    def test_unparseable_certificate(self, caplog):
        info = AttestationCertInfo.from_der(b"garbage")

        assert info.der == b"garbage"
        assert info.text is None
        assert "Failed to parse attestation certificate" in caplog.text

    def test_to_dict(self, attestation_der):
        data = AttestationCertInfo.from_der(attestation_der).to_dict()

        assert b64url_decode(data["der"]) == attestation_der
        assert data["text"].startswith("Subject: ")

    def test_registration_outcome_carries_certificate(self, server, attestation_der):
        request = server.start_registration("bob", "Bob").value

        outcome = server.finish_registration(
            registration_payload(request, b"cred", x5c=b64url_encode(attestation_der))
        ).value

        assert outcome.attestation_cert.der == attestation_der
        assert outcome.to_dict()["attestationCert"]["text"] == outcome.attestation_cert.text
