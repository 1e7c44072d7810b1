"""
WebAuthn Ceremony Server - Error Taxonomy and Result Union

Every public ceremony operation returns a CeremonyResult: either a success
value or one of the CeremonyError subclasses below. Errors carry a severity
and the list of human-readable messages returned to the client.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorSeverity(Enum):
    """Severity levels for ceremony errors."""
    LOW = "low"           # Expected rejection (bad input, unknown request)
    MEDIUM = "medium"     # Authorization or verification failure
    HIGH = "high"         # Internal fault, likely a bug


class CeremonyError(Exception):
    """
    Base exception for all ceremony errors.

    Args:
        message: Headline message ("Registration failed!")
        details: Further human-readable messages
        cause: Underlying exception, if any
    """

    severity = ErrorSeverity.LOW

    def __init__(
        self,
        message: str,
        details: list[str] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])
        self.cause = cause

        if cause:
            self.__cause__ = cause

    @property
    def messages(self) -> list[str]:
        """Headline plus details, in client-facing order."""
        return [self.message, *self.details]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "severity": self.severity.value,
            "messages": self.messages,
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        return " ".join(self.messages)


class DecodeError(CeremonyError):
    """Malformed ceremony payload."""


class InvalidRequest(CeremonyError):
    """A required argument was missing or not acceptable."""


class NoSuchPendingRequest(CeremonyError):
    """Unknown, expired, evicted or already-consumed request id."""


class PermissionDenied(CeremonyError):
    """Session proof missing or invalid for a privileged operation."""

    severity = ErrorSeverity.MEDIUM


class UsernameAlreadyRegistered(PermissionDenied):
    """Username is taken and the caller did not prove ownership of it."""


class UsernameNotRegistered(CeremonyError):
    """An operation named a username that has no credentials."""


class CredentialNotFound(CeremonyError):
    """The credential is not registered for the resolved user."""


class CredentialAlreadyRegistered(CeremonyError):
    """The credential id is already present in the registry."""

    severity = ErrorSeverity.MEDIUM


class VerificationFailed(CeremonyError):
    """The verification engine rejected the cryptographic proof."""

    severity = ErrorSeverity.MEDIUM


class UnexpectedFailure(CeremonyError):
    """Uncategorized internal fault."""

    severity = ErrorSeverity.HIGH


class ChallengeCollisionError(Exception):
    """A freshly generated request id already exists in the challenge cache."""


@dataclass(frozen=True)
class CeremonyResult(Generic[T]):
    """Tagged union of a success value or a CeremonyError."""

    success: bool
    value: T | None = None
    error: CeremonyError | None = None

    @classmethod
    def ok(cls, value: T) -> "CeremonyResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: CeremonyError) -> "CeremonyResult[T]":
        return cls(success=False, error=error)

    @property
    def messages(self) -> list[str]:
        return self.error.messages if self.error else []

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if not self.success:
            raise self.error
        return self.value
