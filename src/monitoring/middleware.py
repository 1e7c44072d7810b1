"""
Flask middleware for request logging and metrics.

Provides:
- Request/response logging with timing
- Automatic metrics collection for all requests
- Request ID tracking for distributed tracing
"""

import logging
import time
import uuid

from flask import Flask, Response, g, request

from monitoring.logging import clear_request_context, set_request_context
from monitoring.metrics import MetricsCollector, metrics

logger = logging.getLogger("webauthn.request")


def setup_request_logging(app: Flask, collector: MetricsCollector | None = None) -> None:
    """
    Set up request logging middleware for a Flask app.

    Adds:
    - Request ID generation and tracking
    - Request timing
    - Structured logging of requests/responses
    - Metrics collection

    Args:
        app: Flask application instance
        collector: Metrics collector (defaults to the global one)
    """
    collector = collector or metrics

    @app.before_request
    def before_request():
        g.request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        g.start_time = time.perf_counter()

        set_request_context(
            request_id=g.request_id,
            method=request.method,
            path=request.path,
        )
        collector.increment_gauge("http_requests_active")

    @app.after_request
    def after_request(response: Response) -> Response:
        _record_request_metrics(collector, response.status_code)

        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id

        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_request_context()
        collector.decrement_gauge("http_requests_active")

        if exception:
            logger.error(
                "Request failed with exception",
                exc_info=exception,
                extra={
                    "request_id": getattr(g, "request_id", "unknown"),
                    "path": request.path,
                    "method": request.method,
                },
            )


def _record_request_metrics(collector: MetricsCollector, status_code: int) -> None:
    """Record metrics for a completed request."""
    duration_ms = 0.0
    if hasattr(g, "start_time"):
        duration_ms = (time.perf_counter() - g.start_time) * 1000

    endpoint = request.url_rule.rule if request.url_rule else "unmatched"

    collector.increment(
        "http_requests_total",
        labels={"method": request.method, "path": endpoint, "status": str(status_code)},
    )
    collector.timing(
        "http_request_duration_ms",
        duration_ms,
        labels={"method": request.method, "path": endpoint},
    )

    if status_code >= 500:
        log = logger.error
    elif status_code >= 400:
        log = logger.warning
    else:
        log = logger.info

    log(
        f"{request.method} {request.path} -> {status_code}",
        extra={
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "request_id": getattr(g, "request_id", "unknown"),
        },
    )
