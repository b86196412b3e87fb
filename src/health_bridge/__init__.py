"""Body-weight ingestion bridge.

A service that receives body-mass samples from health-tracking clients via a
REST API, normalizes them to kilograms, and upserts them into a SQLite store
keyed by the client-supplied sample identifier.

Modules:
    config: Configuration management using pydantic-settings
    units: Kilogram/pound conversion with fixed rounding
    samples: Payload validation and normalization into canonical samples
    store: SQLite persistence with atomic upserts
    ingest: Applies canonical samples to the store
    query: Recent-measurement projection in kilograms and pounds
    http_handler: REST API endpoints

Example:
    Run the service::

        $ uv run health-bridge

    Print the latest measurements::

        $ uv run health-bridge-admin recent --limit 10
"""

__version__ = "0.1.0"

from .config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
