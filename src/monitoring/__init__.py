"""
Monitoring and metrics infrastructure for the WebAuthn ceremony server.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output and secret redaction
- Request timing middleware

Usage:
    import logging

    from monitoring import LoggingContext, metrics

    # Record a metric
    metrics.increment("ceremony_operations_total", labels={"operation": "start_registration"})

    # Tag log records with the running ceremony
    logger = logging.getLogger(__name__)
    with LoggingContext(ceremony="finish_registration"):
        logger.info("Ceremony finished", extra={"username": "alice"})
"""

from monitoring.logging import LoggingContext, configure_logging
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging

__all__ = [
    "LoggingContext",
    "MetricsCollector",
    "configure_logging",
    "metrics",
    "setup_request_logging",
]
