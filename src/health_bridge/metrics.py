"""Prometheus metrics definitions for the weight ingestion service."""

from prometheus_client import Counter, Histogram, Info

# -- Service info --
SERVICE_INFO = Info("health_bridge", "Weight ingestion service info")

# -- Ingestion --
SAMPLES_UPSERTED = Counter(
    "health_bridge_samples_upserted_total",
    "Total samples applied to the store",
    ["kind"],
)
SAMPLES_REJECTED = Counter(
    "health_bridge_samples_rejected_total",
    "Total payloads rejected by validation",
    ["field"],
)
INGEST_FAILURES = Counter(
    "health_bridge_ingest_failures_total",
    "Total ingestion calls that failed in the store",
)

# -- Store --
STORE_OPERATIONS = Counter(
    "health_bridge_store_operations_total",
    "Total SQLite store operations",
    ["operation", "status"],
)
STORE_OPERATION_DURATION = Histogram(
    "health_bridge_store_operation_duration_seconds",
    "SQLite store operation latency",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
)

# -- Query --
READ_FALLBACKS = Counter(
    "health_bridge_read_fallbacks_total",
    "Reads answered with an empty list after a store failure",
)

# -- HTTP --
HTTP_REQUESTS_TOTAL = Counter(
    "health_bridge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
