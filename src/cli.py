#!/usr/bin/env python3
"""
WebAuthn Ceremony Server Command Line Interface.

Provides commands for running and managing the ceremony server:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system information

Usage:
    webauthn-server serve [--host HOST] [--port PORT] [--debug]
    webauthn-server check
    webauthn-server info
    webauthn-server --version
"""

import argparse
import os
import sys

__version__ = "0.1.0"


def cmd_serve(args):
    """Start the WebAuthn ceremony API server."""
    from dotenv import load_dotenv

    load_dotenv()

    from config import ConfigurationError

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = args.port or int(os.getenv("PORT", 8080))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    try:
        flask_app = create_flask_app()
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    print(f"Starting WebAuthn ceremony server on {host}:{port}")

    if args.production:
        # Use gunicorn for production
        try:
            import gunicorn.app.base

            class StandaloneApplication(gunicorn.app.base.BaseApplication):
                """Gunicorn WSGI application wrapper for production deployment."""

                def __init__(self, app, options=None):
                    self.options = options or {}
                    self.application = app
                    super().__init__()

                def load_config(self):
                    for key, value in self.options.items():
                        if key in self.cfg.settings and value is not None:
                            self.cfg.set(key.lower(), value)

                def load(self):
                    return self.application

            options = {
                "bind": f"{host}:{port}",
                "workers": args.workers or int(os.getenv("WORKERS", 1)),
                "worker_class": "gthread",
                "threads": int(os.getenv("THREADS", 8)),
                "timeout": 120,
                "accesslog": "-",
                "errorlog": "-",
            }
            StandaloneApplication(flask_app, options).run()

        except ImportError as e:
            if "gunicorn" in str(e):
                print(
                    "Error: gunicorn not installed. Install with: pip install webauthn-ceremony-server[production]"
                )
            else:
                print(f"Error: {e}")
            sys.exit(1)
    else:
        # Use Flask development server
        flask_app.run(host=host, port=port, debug=debug, threaded=True)


def create_flask_app():
    """
    Build the Flask application from environment configuration.

    Raises:
        ConfigurationError: If the configuration is invalid or no
            verification engine can be loaded
    """
    from api import create_app
    from config import ServerConfig, load_metadata_service, load_verification_engine
    from monitoring import configure_logging
    from webauthn_server import CeremonyOrchestrator

    config = ServerConfig.from_env()
    configure_logging(level=config.log_level)

    engine = load_verification_engine(config)
    server = CeremonyOrchestrator.from_config(
        config, engine, metadata_service=load_metadata_service(config)
    )
    return create_app(server, config=config)


def cmd_check(args):
    """Check installation and configuration."""
    from dotenv import load_dotenv

    load_dotenv()

    print("WebAuthn Ceremony Server Installation Check")
    print("=" * 40)

    checks = []

    # Check configuration
    config = None
    try:
        from config import ConfigurationError, ServerConfig

        config = ServerConfig.from_env()
        checks.append((f"Configuration (RP ID: {config.rp_id})", "OK"))
    except ConfigurationError as e:
        checks.append(("Configuration", f"FAIL: {e}"))

    # Check verification engine
    if config is not None:
        if not config.verifier:
            checks.append(("Verification engine", "FAIL: WEBAUTHN_VERIFIER is not set"))
        else:
            try:
                from config import load_verification_engine

                engine = load_verification_engine(config)
                checks.append((f"Verification engine ({engine.__class__.__name__})", "OK"))
            except ConfigurationError as e:
                checks.append(("Verification engine", f"FAIL: {e}"))

        try:
            from config import load_metadata_service

            service = load_metadata_service(config)
            checks.append((f"Attestation metadata ({service.__class__.__name__})", "OK"))
        except ConfigurationError as e:
            checks.append(("Attestation metadata", f"FAIL: {e}"))

    # Check API
    try:
        import flask  # noqa: F401

        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    # Check attestation parsing
    try:
        import cryptography  # noqa: F401

        checks.append(("Attestation certificates", "OK"))
    except ImportError as e:
        checks.append(("Attestation certificates", f"FAIL: {e}"))

    # Check storage
    try:
        from storage import StorageError, get_credential_repository

        repository = get_credential_repository()
        checks.append((f"Credential storage ({repository.__class__.__name__})", "OK"))
    except StorageError as e:
        checks.append(("Credential storage", f"FAIL: {e}"))

    # Check caches
    redis_url = config.redis_url if config else os.getenv("REDIS_URL")
    if redis_url:
        try:
            import redis

            client = redis.from_url(redis_url)
            client.ping()
            checks.append(("Challenge/session cache (Redis)", "OK"))
        except ImportError:
            checks.append(("Challenge/session cache (Redis)", "FAIL: redis not installed"))
        except redis.RedisError as e:
            checks.append(("Challenge/session cache (Redis)", f"FAIL: {e}"))
    else:
        checks.append(("Challenge/session cache (in-memory)", "OK"))

    try:
        import gunicorn  # noqa: F401

        checks.append(("Production server", "OK"))
    except ImportError:
        checks.append(("Production server", "SKIP (gunicorn not installed)"))

    # Print results
    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    else:
        print("Some checks failed. See above for details.")
        return 1


def cmd_info(args):
    """Display system information."""
    import platform

    from dotenv import load_dotenv

    load_dotenv()

    print("WebAuthn Ceremony Server System Information")
    print("=" * 40)

    print(f"Version: {__version__}")

    # Python
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    # Environment
    print()
    print("Configuration:")
    print(f"  WEBAUTHN_RP_ID: {os.getenv('WEBAUTHN_RP_ID', 'localhost (default)')}")
    print(f"  WEBAUTHN_ORIGINS: {os.getenv('WEBAUTHN_ORIGINS', 'https://localhost:8443 (default)')}")
    print(f"  WEBAUTHN_VERIFIER: {os.getenv('WEBAUTHN_VERIFIER', 'not set')}")
    print(f"  WEBAUTHN_METADATA_SERVICES: {os.getenv('WEBAUTHN_METADATA_SERVICES', 'none (default)')}")
    print(f"  CREDENTIAL_BACKEND: {os.getenv('CREDENTIAL_BACKEND', 'memory (default)')}")
    print(f"  REDIS_URL: {'configured' if os.getenv('REDIS_URL') else 'not set'}")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")

    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="webauthn-server",
        description="WebAuthn Ceremony Server - registration and authentication orchestration",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 8080)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument(
        "--production", action="store_true", help="Use gunicorn for production"
    )
    serve_parser.add_argument(
        "--workers",
        type=int,
        help="Number of workers (production mode; credentials are per-process unless stored externally)",
    )

    # check command
    subparsers.add_parser("check", help="Check installation and configuration")

    # info command
    subparsers.add_parser("info", help="Display system information")

    args = parser.parse_args()

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "check":
        sys.exit(cmd_check(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
