"""
Attestation certificate summaries.

When a registration carries an x5c attestation chain, the first (leaf)
certificate is returned to the client alongside the registration, both as
DER and as a short human-readable description.
"""

import logging
from dataclasses import dataclass
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from codec import b64url_encode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttestationCertInfo:
    """Leaf attestation certificate as DER plus a text description."""

    der: bytes
    text: str | None = None

    @classmethod
    def from_der(cls, der: bytes) -> "AttestationCertInfo":
        """
        Parse a DER certificate.

        A certificate that cannot be parsed still yields an info object
        carrying the raw DER, with text set to None.
        """
        try:
            cert = x509.load_der_x509_certificate(der)
        except ValueError:
            logger.error("Failed to parse attestation certificate")
            return cls(der=der, text=None)
        return cls(der=der, text=describe_certificate(cert))

    def to_dict(self) -> dict[str, Any]:
        return {"der": b64url_encode(self.der), "text": self.text}


def describe_certificate(cert: x509.Certificate) -> str:
    """Render the fields a relying party operator cares about."""
    lines = [
        f"Subject: {cert.subject.rfc4514_string()}",
        f"Issuer: {cert.issuer.rfc4514_string()}",
        f"Serial: {cert.serial_number:x}",
        f"Not before: {cert.not_valid_before_utc.isoformat()}",
        f"Not after: {cert.not_valid_after_utc.isoformat()}",
        f"SHA-256: {cert.fingerprint(hashes.SHA256()).hex()}",
    ]
    return "\n".join(lines)
