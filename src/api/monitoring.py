"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check with store statistics
"""

import platform
import sys
import time

from flask import Blueprint, Response, jsonify

from api.utils import get_metrics, get_server

# Create the blueprint
monitoring_bp = Blueprint("monitoring", __name__)

# Track startup time
_startup_time = time.time()


@monitoring_bp.route("/metrics", methods=["GET"])
def prometheus_metrics():
    """
    Prometheus-compatible metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    return Response(get_metrics().to_prometheus(), mimetype="text/plain; charset=utf-8")


@monitoring_bp.route("/metrics/json", methods=["GET"])
def json_metrics():
    """
    JSON format metrics endpoint.

    Returns all collected metrics as JSON.
    """
    return jsonify(get_metrics().get_all())


@monitoring_bp.route("/health", methods=["GET"])
def health():
    """
    Basic health check endpoint.

    Returns service status and store statistics.
    """
    return jsonify(
        {
            "status": "healthy",
            "service": "WebAuthn Ceremony Server",
            "uptime_seconds": round(time.time() - _startup_time, 2),
            "python_version": sys.version.split()[0],
            "platform": platform.system(),
            "stores": get_server().get_stats(),
        }
    )
