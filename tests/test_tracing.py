"""Tests for tracing utilities."""

from opentelemetry import trace

from health_bridge.config import TracingSettings
from health_bridge.tracing import current_trace_id, extract_trace_context, setup_tracing


TRACEPARENT_HEADER = (
    "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"
)


def test_setup_tracing_disabled():
    """Tracing should be disabled when setting is false."""
    assert setup_tracing(TracingSettings(_env_file=None, enabled=False)) is False


def test_setup_tracing_exporter_disabled(monkeypatch):
    """Tracing should be disabled when exporter env var is none."""
    monkeypatch.setenv("OTEL_TRACES_EXPORTER", "none")

    settings = TracingSettings(_env_file=None, enabled=True, service_name="health-bridge")
    assert setup_tracing(settings) is False


def test_extract_trace_context():
    assert extract_trace_context(None) is None
    assert extract_trace_context({}) is None
    assert extract_trace_context({"traceparent": TRACEPARENT_HEADER}) is not None


def test_current_trace_id_of_remote_parent():
    """The trace id of an extracted parent is rendered as 32 hex digits."""
    context = extract_trace_context({"traceparent": TRACEPARENT_HEADER})
    span = trace.get_current_span(context)

    assert current_trace_id(span) == "4bf92f3577b34da6a3ce929d0e0e4736"


def test_current_trace_id_without_tracing():
    assert current_trace_id(trace.INVALID_SPAN) is None


def test_requests_without_traceparent_start_new_traces():
    assert extract_trace_context({"content-type": "application/json"}) is None
