"""OpenTelemetry spans for the ingestion endpoints."""

from __future__ import annotations

import os
from collections.abc import Mapping

import structlog
from opentelemetry import propagate, trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from . import __version__
from .config import TracingSettings

logger = structlog.get_logger(__name__)

_DISABLED_EXPORTERS = {"", "none"}


def setup_tracing(settings: TracingSettings) -> bool:
    """Install the OTLP span exporter when tracing is enabled.

    ``OTEL_TRACES_EXPORTER=none`` keeps tracing off even when enabled.

    Returns:
        True if an exporter was installed, False otherwise.
    """
    if not settings.enabled:
        logger.info("tracing_disabled")
        return False

    exporter = os.getenv("OTEL_TRACES_EXPORTER", "otlp").strip().lower()
    if exporter in _DISABLED_EXPORTERS:
        logger.info("tracing_disabled", exporter=exporter)
        return False

    resource = Resource.create(
        {SERVICE_NAME: settings.service_name, SERVICE_VERSION: __version__}
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("tracing_configured", service_name=settings.service_name, version=__version__)
    return True


def extract_trace_context(headers: Mapping[str, str] | None) -> Context | None:
    """Parent context from a client's ``traceparent`` header, if it sent one.

    Header names are expected lower-cased, as Starlette delivers them.
    """
    if not headers or "traceparent" not in headers:
        return None
    return propagate.extract(headers)


def current_trace_id(span: trace.Span) -> str | None:
    """Hex trace id of ``span``, or None when tracing is a no-op."""
    context = span.get_span_context()
    if context and context.trace_id:
        return format(context.trace_id, "032x")
    return None
