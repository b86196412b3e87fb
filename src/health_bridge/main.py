"""Main entry point for the weight ingestion service."""

import asyncio
import signal
import sys
from pathlib import Path

import structlog

from . import __version__
from .config import Settings, get_settings
from .http_handler import HTTPHandler
from .ingest import IngestionEngine
from .logging import setup_logging
from .metrics import SERVICE_INFO
from .query import WeightQuery
from .samples import SampleNormalizer
from .store import SampleStore
from .tracing import setup_tracing
from .types import ServiceStatusSnapshot

logger = structlog.get_logger(__name__)


class HealthBridgeService:
    """Wires settings, store, pipeline and HTTP server together."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the service from explicit or environment settings."""
        self._settings = settings or get_settings()
        self._store = SampleStore(
            db_path=Path(self._settings.store.db_path),
            busy_timeout_ms=self._settings.store.busy_timeout_ms,
        )
        self._normalizer = SampleNormalizer(
            default_source=self._settings.app.default_source,
            strict_ids=self._settings.app.strict_sample_ids,
        )
        self._engine = IngestionEngine(self._store)
        self._query = WeightQuery(self._store)
        self._http_handler = HTTPHandler(
            settings=self._settings.http,
            normalizer=self._normalizer,
            engine=self._engine,
            query=self._query,
            status_provider=self._status_snapshot,
        )
        self._shutdown_event = asyncio.Event()

    @property
    def http_handler(self) -> HTTPHandler:
        return self._http_handler

    async def start(self) -> None:
        """Start the service."""
        setup_tracing(self._settings.tracing)
        logger.info("service_starting", version=__version__)
        SERVICE_INFO.info(
            {
                "version": __version__,
                "python": f"{sys.version_info.major}.{sys.version_info.minor}",
            }
        )

        await self._store.initialize()
        await self._http_handler.start()
        logger.info("service_started")

    async def stop(self) -> None:
        """Stop the service gracefully."""
        logger.info("service_stopping")
        await self._http_handler.stop()
        logger.info("service_stopped")

    def request_shutdown(self) -> None:
        """Signal the service to shut down."""
        self._shutdown_event.set()

    async def run_until_shutdown(self) -> None:
        """Block until shutdown is requested."""
        await self._shutdown_event.wait()

    async def _status_snapshot(self) -> ServiceStatusSnapshot:
        """Readiness snapshot used by GET /ready."""
        store_status = await self._store.health_check()
        return {
            "status": "ok" if store_status["ready"] else "degraded",
            "components": {"store": store_status},
        }


async def main() -> None:
    """Main entry point."""
    settings = get_settings()
    setup_logging(settings.app)

    service = HealthBridgeService(settings)

    # Set up signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await service.start()
        await service.run_until_shutdown()
    except Exception as e:
        logger.exception("service_error", error=str(e))
        raise
    finally:
        await service.stop()


def run() -> None:
    """Entry point for the CLI."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
