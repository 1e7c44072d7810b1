"""
WebAuthn Ceremony Server API Package.

This package contains the Flask blueprints serving the ceremony
orchestrator over HTTP.

Blueprints:
- webauthn: Registration, authentication, deregistration, account deletion
- monitoring: Health check and metrics
"""

from flask import Flask

from api.monitoring import monitoring_bp
from api.utils import METRICS_EXTENSION, SERVER_EXTENSION
from api.webauthn import webauthn_bp
from monitoring import metrics, setup_request_logging

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (webauthn_bp, "/api/v1"),   # Ceremony routes
    (monitoring_bp, ""),        # /health and /metrics at root
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(server, collector=None, config=None) -> Flask:
    """
    Create the Flask application for a ceremony orchestrator.

    Args:
        server: CeremonyOrchestrator handling the ceremonies
        collector: Metrics collector (defaults to the global one)
        config: Optional ServerConfig, exposed as app.config["WEBAUTHN"]
    """
    app = Flask(__name__)
    app.extensions[SERVER_EXTENSION] = server
    app.extensions[METRICS_EXTENSION] = collector or metrics
    if config is not None:
        app.config["WEBAUTHN"] = config

    setup_request_logging(app, collector)
    register_blueprints(app)
    return app
