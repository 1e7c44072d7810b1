"""
WebAuthn Ceremony Server - Ceremony Orchestration

Coordinates the two WebAuthn ceremonies for a relying party:

- Registration: start (issue creation options) -> finish (verify attestation,
  store the credential, issue a session)
- Authentication: start (issue request options) -> finish (verify assertion,
  update the signature counter, issue a session)

plus credential removal and account deletion.

The orchestrator owns no state of its own. Pending ceremonies live in two
ChallengeCaches, sessions in a SessionRegistry and credentials in a
CredentialRepository, all injected. Cryptographic verification is delegated
to a VerificationEngine.

Every public operation returns a CeremonyResult and never raises.
"""

import functools
import logging
import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from attestation import AttestationCertInfo
from ceremony_data import (
    AssertionRequest,
    AuthenticationOutcome,
    AuthenticatorSelection,
    CredentialRegistration,
    DeregisterOutcome,
    RegisteredCredential,
    RegistrationOutcome,
    RegistrationRequest,
    ResidentKeyRequirement,
    UserIdentity,
)
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
from challenges import ChallengeCache
from codec import b64url_encode, decode_assertion_response, decode_registration_response
from monitoring.logging import LoggingContext
from monitoring.metrics import MetricsCollector, metrics
from scaling import create_cache
from sessions import SessionRegistry
from storage import (
    CredentialRepository,
    DuplicateCredentialError,
    StorageError,
    UserHandleMismatchError,
    get_credential_repository,
)
from verification import (
    EmptyMetadataService,
    MetadataService,
    RegistrationResult,
    VerificationEngine,
    VerificationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ID_BYTES = 32


def generate_random(length: int = ID_BYTES) -> bytes:
    """Unguessable random identifier (request ids, user handles)."""
    return secrets.token_bytes(length)


def _ceremony_operation(name: str, unexpected_message: str):
    """
    Wrap a public operation so it always returns a CeremonyResult.

    CeremonyErrors raised inside the operation become failed results;
    anything else is logged with its traceback and reported as an
    UnexpectedFailure. Every call is timed and counted by outcome, and log
    records emitted during the call carry the operation as "ceremony".
    """

    def decorator(func: Callable[..., T]) -> Callable[..., CeremonyResult[T]]:
        @functools.wraps(func)
        def wrapper(self: "CeremonyOrchestrator", *args, **kwargs) -> CeremonyResult[T]:
            start = time.perf_counter()
            try:
                with LoggingContext(ceremony=name):
                    try:
                        result = CeremonyResult.ok(func(self, *args, **kwargs))
                    except CeremonyError as e:
                        logger.debug(f"{name} rejected: {e}")
                        result = CeremonyResult.fail(e)
                    except Exception as e:
                        logger.error(f"{name} failed unexpectedly", exc_info=True)
                        result = CeremonyResult.fail(
                            UnexpectedFailure(unexpected_message, [str(e)], cause=e)
                        )
            finally:
                self._metrics.timing(
                    "ceremony_duration_ms",
                    (time.perf_counter() - start) * 1000,
                    labels={"operation": name},
                )

            outcome = "success" if result.success else type(result.error).__name__
            self._metrics.increment(
                "ceremony_operations_total", labels={"operation": name, "outcome": outcome}
            )
            return result

        return wrapper

    return decorator


class CeremonyOrchestrator:
    """
    WebAuthn ceremony coordinator.

    Composes the pending-request caches, the session registry and the
    credential repository with an external verification engine, and
    enforces who may register, remove and delete credentials.
    """

    def __init__(
        self,
        engine: VerificationEngine,
        credentials: CredentialRepository,
        sessions: SessionRegistry,
        registration_requests: ChallengeCache,
        assertion_requests: ChallengeCache,
        metadata_service: MetadataService | None = None,
        clock: Callable[[], datetime] | None = None,
        metrics_collector: MetricsCollector | None = None,
    ):
        """
        Args:
            engine: Verifies attestations and assertions
            credentials: Username -> user handle -> credentials registry
            sessions: Session token registry
            registration_requests: Pending registration ceremonies
            assertion_requests: Pending authentication ceremonies
            metadata_service: Attestation metadata lookup (none by default)
            clock: Source of registration timestamps (UTC now by default)
            metrics_collector: Metrics sink (the global collector by default)
        """
        self.engine = engine
        self.credentials = credentials
        self.sessions = sessions
        self.registration_requests = registration_requests
        self.assertion_requests = assertion_requests
        self.metadata_service = metadata_service or EmptyMetadataService()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = metrics_collector or metrics

    @classmethod
    def from_config(
        cls,
        config,
        engine: VerificationEngine,
        metadata_service: MetadataService | None = None,
        metrics_collector: MetricsCollector | None = None,
    ) -> "CeremonyOrchestrator":
        """
        Build an orchestrator with stores sized from a ServerConfig.

        The caches are Redis-backed when config.redis_url is set.
        """
        return cls(
            engine=engine,
            credentials=get_credential_repository(),
            sessions=SessionRegistry(
                create_cache(
                    "sessions",
                    max_size=config.session_cache_size,
                    ttl=config.session_ttl_seconds,
                    redis_url=config.redis_url,
                )
            ),
            registration_requests=ChallengeCache(
                create_cache(
                    "registration",
                    max_size=config.challenge_cache_size,
                    ttl=config.challenge_ttl_seconds,
                    redis_url=config.redis_url,
                )
            ),
            assertion_requests=ChallengeCache(
                create_cache(
                    "assertion",
                    max_size=config.challenge_cache_size,
                    ttl=config.challenge_ttl_seconds,
                    redis_url=config.redis_url,
                )
            ),
            metadata_service=metadata_service,
            metrics_collector=metrics_collector,
        )

    # =========================================================================
    # Registration
    # =========================================================================

    @_ceremony_operation("start_registration", "Registration failed unexpectedly; this is likely a bug.")
    def start_registration(
        self,
        username: str,
        display_name: str,
        credential_nickname: str | None = None,
        resident_key_requirement: ResidentKeyRequirement | str | bool | None = ResidentKeyRequirement.DISCOURAGED,
        session_token: bytes | None = None,
    ) -> RegistrationRequest:
        """
        Begin registering a credential.

        A new username may be claimed by anyone. Adding a credential to an
        existing username requires a live session for that user.

        Args:
            username: Account name
            display_name: Human-friendly name for a new account
            credential_nickname: Label for the new credential
            resident_key_requirement: Discoverable credential preference
            session_token: Proof of an existing session for the username

        Returns:
            Pending RegistrationRequest for the client
        """
        if not isinstance(username, str) or not username:
            raise InvalidRequest("Username must not be empty.")

        try:
            requirement = ResidentKeyRequirement.parse(resident_key_requirement)
        except ValueError as e:
            raise InvalidRequest(
                "Registration failed!", [f"Invalid resident key requirement: {resident_key_requirement}"], cause=e
            )

        registrations = self.credentials.registrations_for_username(username)
        if registrations:
            existing_user = registrations[0].user_identity
            if not self.sessions.is_session_for_user(existing_user.id, session_token):
                raise UsernameAlreadyRegistered(f'The username "{username}" is already registered.')
            user = existing_user
        else:
            user = UserIdentity(name=username, display_name=display_name or username, id=generate_random())

        options = self.engine.begin_registration(user, AuthenticatorSelection(resident_key=requirement))

        request = RegistrationRequest(
            username=username,
            request_id=generate_random(),
            user=user,
            creation_options=options,
            nickname=credential_nickname,
            session_token=self.sessions.create_session(user.id),
        )
        self.registration_requests.put(request)

        logger.debug(
            "Registration started",
            extra={"username": username, "existing_user": bool(registrations)},
        )
        return request

    @_ceremony_operation("finish_registration", "Registration failed unexpectedly; this is likely a bug.")
    def finish_registration(self, payload: str | bytes | dict[str, Any]) -> RegistrationOutcome:
        """
        Complete a registration ceremony.

        The pending request is consumed before verification, so a response
        can be submitted at most once whatever the outcome.

        Args:
            payload: Browser response as JSON text or a decoded dict

        Returns:
            RegistrationOutcome with the stored registration and a new session
        """
        try:
            response = decode_registration_response(payload)
        except DecodeError as e:
            raise DecodeError("Registration failed!", e.messages, cause=e)

        request = self.registration_requests.take_and_invalidate(response.request_id)
        if not isinstance(request, RegistrationRequest):
            raise NoSuchPendingRequest("Registration failed!", ["No such registration in progress."])

        try:
            result = self.engine.complete_registration(request.creation_options, response)
        except VerificationError as e:
            raise VerificationFailed("Registration failed!", [str(e)], cause=e)

        if self.credentials.user_exists(request.username):
            # Ownership is re-confirmed at commit time, not only at start
            if not self.sessions.is_session_for_user(request.user.id, request.session_token):
                raise UsernameAlreadyRegistered(
                    "Registration failed!", [f"User {request.username} already exists"]
                )
            logger.info("Session token accepted for additional credential", extra={"username": request.username})

        registration = self._add_registration(request, result)

        attestation_cert = None
        if result.attestation_certificate:
            attestation_cert = AttestationCertInfo.from_der(result.attestation_certificate)

        logger.info(
            "Registration finished",
            extra={
                "username": request.username,
                "attestation_trusted": result.attestation_trusted,
            },
        )
        return RegistrationOutcome(
            request=request,
            registration=registration,
            attestation_trusted=result.attestation_trusted,
            session_token=self.sessions.create_session(request.user.id),
            attestation_cert=attestation_cert,
        )

    def _add_registration(
        self, request: RegistrationRequest, result: RegistrationResult
    ) -> CredentialRegistration:
        entries = self.metadata_service.find_entries(result)

        registration = CredentialRegistration(
            user_identity=request.user,
            credential=RegisteredCredential(
                credential_id=result.credential_id,
                user_handle=request.user.id,
                public_key_cose=result.public_key_cose,
                signature_count=result.signature_count,
            ),
            registration_time=self._clock(),
            transports=frozenset(result.transports),
            nickname=request.nickname,
            attestation_metadata=entries[0] if entries else None,
        )

        try:
            self.credentials.add_registration(request.username, registration)
        except DuplicateCredentialError as e:
            raise CredentialAlreadyRegistered("Registration failed!", [str(e)], cause=e)
        except UserHandleMismatchError as e:
            raise UsernameAlreadyRegistered(
                "Registration failed!", [f"User {request.username} already exists"], cause=e
            )
        return registration

    # =========================================================================
    # Authentication
    # =========================================================================

    @_ceremony_operation("start_authentication", "Assertion failed unexpectedly; this is likely a bug.")
    def start_authentication(self, username: str | None = None) -> AssertionRequest:
        """
        Begin an authentication ceremony.

        Without a username the client is expected to use a discoverable
        credential. A supplied username that has no credentials is rejected
        outright, which reveals whether the username exists.

        Returns:
            Pending AssertionRequest for the client
        """
        if username is not None and not isinstance(username, str):
            raise InvalidRequest("Username must be a string.")
        if username and not self.credentials.user_exists(username):
            raise UsernameNotRegistered(f'The username "{username}" is not registered.')

        request = AssertionRequest(
            request_id=generate_random(),
            request_options=self.engine.begin_assertion(username or None),
            username=username or None,
        )
        self.assertion_requests.put(request)
        return request

    @_ceremony_operation("finish_authentication", "Assertion failed unexpectedly; this is likely a bug.")
    def finish_authentication(self, payload: str | bytes | dict[str, Any]) -> AuthenticationOutcome:
        """
        Complete an authentication ceremony.

        A signature counter that cannot be recorded (for example because it
        went backwards) is logged and counted but does not fail the
        ceremony.

        Args:
            payload: Browser response as JSON text or a decoded dict

        Returns:
            AuthenticationOutcome with the user's registrations and a new session
        """
        try:
            response = decode_assertion_response(payload)
        except DecodeError as e:
            raise DecodeError("Assertion failed!", e.messages, cause=e)

        request = self.assertion_requests.take_and_invalidate(response.request_id)
        if not isinstance(request, AssertionRequest):
            raise NoSuchPendingRequest("Assertion failed!", ["No such assertion in progress."])

        try:
            result = self.engine.complete_assertion(request.request_options, response)
        except VerificationError as e:
            raise VerificationFailed("Assertion failed!", [str(e)], cause=e)

        if not result.success:
            raise VerificationFailed("Assertion failed: Invalid assertion.")

        try:
            self.credentials.update_signature_counter(result.credential_id, result.signature_count)
        except StorageError:
            self._metrics.increment("signature_counter_failures_total")
            logger.error(
                f'Failed to update signature count for user "{result.username}", '
                f'credential "{b64url_encode(result.credential_id)}"',
                exc_info=True,
            )

        logger.info("Authentication finished", extra={"username": result.username})
        return AuthenticationOutcome(
            request=request,
            registrations=self.credentials.registrations_for_username(result.username),
            username=result.username,
            session_token=self.sessions.create_session(result.user_handle),
        )

    # =========================================================================
    # Credential and Account Removal
    # =========================================================================

    @_ceremony_operation("deregister_credential", "Deregistration failed unexpectedly; this is likely a bug.")
    def deregister_credential(
        self, session_token: bytes | None, credential_id: bytes | None
    ) -> DeregisterOutcome:
        """
        Remove one credential of the session's user.

        Returns:
            DeregisterOutcome; account_deleted is True when the user has no
            credentials left
        """
        if not credential_id:
            raise InvalidRequest("Credential ID must not be empty.")

        user_handle = self.sessions.get_session(session_token)
        if user_handle is None:
            raise PermissionDenied("Invalid session")

        username = self.credentials.username_for_user_handle(user_handle)
        if username is None:
            raise PermissionDenied("Invalid user handle")

        registration = self.credentials.registration_for_username_and_credential_id(
            username, credential_id
        )
        if registration is None:
            raise CredentialNotFound(f"Credential ID not registered: {b64url_encode(credential_id)}")

        if not self.credentials.remove_registration(username, registration):
            # Removed concurrently by another request
            raise CredentialNotFound(f"Credential ID not registered: {b64url_encode(credential_id)}")

        account_deleted = not self.credentials.user_exists(username)
        logger.info(
            "Credential deregistered",
            extra={"username": username, "account_deleted": account_deleted},
        )
        return DeregisterOutcome(dropped_registration=registration, account_deleted=account_deleted)

    @_ceremony_operation("delete_account", "Account deletion failed unexpectedly; this is likely a bug.")
    def delete_account(self, username: str, on_success: Callable[[], T] | None = None) -> T | str:
        """
        Remove every credential of a username.

        Args:
            username: Account to delete
            on_success: Continuation run after a successful deletion; its
                return value becomes the result value

        Returns:
            The continuation's value, or the username when none is given
        """
        if not isinstance(username, str) or not username:
            raise InvalidRequest("Username must not be empty.")

        if not self.credentials.remove_all_registrations(username):
            raise UsernameNotRegistered(f"Username not registered: {username}")

        logger.info("Account deleted", extra={"username": username})
        return on_success() if on_success is not None else username

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Store sizes and backends, for health reporting."""
        return {
            "credentials": self.credentials.get_info(),
            "sessions": self.sessions.get_stats(),
            "pending_registrations": self.registration_requests.get_stats(),
            "pending_assertions": self.assertion_requests.get_stats(),
        }
