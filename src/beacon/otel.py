"""Logging and OpenTelemetry for Beacon.

The ``beacon`` logger always writes to stderr. Export to a collector is
opt-in: set OTEL_EXPORTER_OTLP_ENDPOINT and both spans and log records are
shipped over OTLP/HTTP, the latter through a handler on the root logger.
"""

import logging
import os
import sys

from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

SERVICE = "beacon"
LOG_FORMAT = "[Beacon] %(levelname)s: %(message)s"

_logger: logging.Logger | None = None


def _install_traces(resource: Resource, endpoint: str):
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)


def _install_logs(resource: Resource, endpoint: str):
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint)))
    set_logger_provider(provider)
    logging.getLogger().addHandler(LoggingHandler(level=logging.INFO, logger_provider=provider))
    # the exporter's own chatter would otherwise loop back into itself
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)


def init_otel() -> bool:
    """Install OTLP exporters when a collector endpoint is configured.

    Returns True if export is on.
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "").rstrip("/")
    if not endpoint:
        get_logger().info("OTEL_EXPORTER_OTLP_ENDPOINT not set, telemetry stays local")
        return False

    resource = Resource.create({SERVICE_NAME: os.getenv("OTEL_SERVICE_NAME", SERVICE)})
    _install_traces(resource, f"{endpoint}/v1/traces")
    _install_logs(resource, f"{endpoint}/v1/logs")

    get_logger().info(f"Telemetry export → {endpoint}")
    return True


def get_logger() -> logging.Logger:
    """The shared ``beacon`` logger, configured on first use."""
    global _logger
    if _logger is None:
        logger = logging.getLogger(SERVICE)
        logger.setLevel(os.getenv("BEACON_LOG_LEVEL", "INFO").upper())
        logger.handlers.clear()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        _logger = logger
    return _logger


def get_tracer() -> trace.Tracer:
    # Resolved per call so spans follow a provider installed after import
    return trace.get_tracer(SERVICE)


def span(name: str, **attributes):
    """Start a span carrying ``attributes`` and make it current.

        with span("beacon.startup", port=8080):
            ...
    """
    return get_tracer().start_as_current_span(name, attributes=attributes)
