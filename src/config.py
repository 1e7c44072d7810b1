"""
WebAuthn Ceremony Server - Configuration

Server settings are read from environment variables (optionally loaded from
a .env file by the CLI). The verification engine is an external component;
WEBAUTHN_VERIFIER names a "module:factory" callable that builds one from the
config. Attestation metadata services are plugged in the same way through
WEBAUTHN_METADATA_SERVICES, a comma-separated list of such callables.

Environment Variables:
    WEBAUTHN_RP_ID=localhost
    WEBAUTHN_RP_NAME="WebAuthn Ceremony Server"
    WEBAUTHN_ORIGINS=https://localhost:8443
    WEBAUTHN_CHALLENGE_CACHE_SIZE=100
    WEBAUTHN_CHALLENGE_TTL=600
    WEBAUTHN_SESSION_CACHE_SIZE=10000
    WEBAUTHN_SESSION_TTL=600
    WEBAUTHN_VERIFIER=mypackage.engine:create_engine
    WEBAUTHN_METADATA_SERVICES=mypackage.mds:json_file,mypackage.mds:fido_mds
    REDIS_URL=redis://localhost:6379/0
    LOG_LEVEL=INFO
"""

import importlib
import os
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when server settings are missing or invalid."""


@dataclass(frozen=True)
class ServerConfig:
    """Relying party identity plus store sizing and retention."""

    rp_id: str = "localhost"
    rp_name: str = "WebAuthn Ceremony Server"
    origins: tuple[str, ...] = field(default_factory=lambda: ("https://localhost:8443",))

    # Pending ceremonies
    challenge_cache_size: int = 100
    challenge_ttl_seconds: float = 600.0

    # Sessions
    session_cache_size: int = 10000
    session_ttl_seconds: float = 600.0

    redis_url: str | None = None
    verifier: str | None = None
    metadata_services: tuple[str, ...] = ()
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        try:
            config = cls(
                rp_id=os.getenv("WEBAUTHN_RP_ID", "localhost"),
                rp_name=os.getenv("WEBAUTHN_RP_NAME", "WebAuthn Ceremony Server"),
                origins=tuple(
                    o.strip()
                    for o in os.getenv("WEBAUTHN_ORIGINS", "https://localhost:8443").split(",")
                    if o.strip()
                ),
                challenge_cache_size=int(os.getenv("WEBAUTHN_CHALLENGE_CACHE_SIZE", "100")),
                challenge_ttl_seconds=float(os.getenv("WEBAUTHN_CHALLENGE_TTL", "600")),
                session_cache_size=int(os.getenv("WEBAUTHN_SESSION_CACHE_SIZE", "10000")),
                session_ttl_seconds=float(os.getenv("WEBAUTHN_SESSION_TTL", "600")),
                redis_url=os.getenv("REDIS_URL") or None,
                verifier=os.getenv("WEBAUTHN_VERIFIER") or None,
                metadata_services=tuple(
                    s.strip()
                    for s in os.getenv("WEBAUTHN_METADATA_SERVICES", "").split(",")
                    if s.strip()
                ),
                log_level=os.getenv("LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check settings for consistency.

        Raises:
            ConfigurationError: If any setting is out of range
        """
        if not self.rp_id:
            raise ConfigurationError("WEBAUTHN_RP_ID must not be empty")
        if not self.origins:
            raise ConfigurationError("At least one origin is required")
        for origin in self.origins:
            if not origin.startswith(("https://", "http://localhost")):
                raise ConfigurationError(f"Origin must use https: {origin}")
        if self.challenge_cache_size < 1 or self.session_cache_size < 1:
            raise ConfigurationError("Cache sizes must be at least 1")
        if self.challenge_ttl_seconds <= 0 or self.session_ttl_seconds <= 0:
            raise ConfigurationError("Retention windows must be positive")


def _load_factory(reference: str, setting: str):
    """Resolve a "module:attribute" reference named by a setting."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"{setting} entries must look like 'module:factory': {reference}")

    try:
        module = importlib.import_module(module_name)
        return getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load {reference} from {setting}: {e}") from e


def load_verification_engine(config: ServerConfig):
    """
    Build the configured verification engine.

    config.verifier names a callable as "module:attribute"; it is called
    with the config and must return a VerificationEngine.

    Raises:
        ConfigurationError: If no engine is configured or it cannot be loaded
    """
    if not config.verifier:
        raise ConfigurationError("WEBAUTHN_VERIFIER is not set")

    factory = _load_factory(config.verifier, "WEBAUTHN_VERIFIER")
    return factory(config)


def load_metadata_service(config: ServerConfig):
    """
    Build the attestation metadata service.

    Each entry of config.metadata_services is a "module:attribute" callable
    taking the config and returning a MetadataService. Several services are
    queried in the configured order and their entries concatenated.

    Returns:
        EmptyMetadataService when none is configured, the single service
        when one is, otherwise a CompositeMetadataService

    Raises:
        ConfigurationError: If a service cannot be loaded
    """
    from verification import CompositeMetadataService, EmptyMetadataService

    services = [
        _load_factory(reference, "WEBAUTHN_METADATA_SERVICES")(config)
        for reference in config.metadata_services
    ]
    if not services:
        return EmptyMetadataService()
    if len(services) == 1:
        return services[0]
    return CompositeMetadataService(services)
