"""Applies canonical samples to the store with last-write-wins semantics."""

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from .errors import IngestionError, StoreError
from .metrics import INGEST_FAILURES, SAMPLES_UPSERTED
from .samples import Sample
from .store import SampleStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of applying a batch of samples."""

    accepted: int


class IngestionEngine:
    """Upserts samples keyed by their identifier.

    A call is all-or-nothing: the store applies every sample of the call in
    one transaction, so ``accepted`` is always the number submitted.
    """

    def __init__(self, store: SampleStore) -> None:
        self._store = store

    async def apply(self, samples: Sequence[Sample], kind: str = "single") -> IngestResult:
        """Apply samples to the store.

        Args:
            samples: Canonical samples; an empty sequence is a no-op.
            kind: Label for metrics (``single`` or ``import``).

        Returns:
            IngestResult with the accepted count.

        Raises:
            IngestionError: If the store rejects the write.
        """
        if not samples:
            logger.debug("ingest_empty_batch", kind=kind)
            return IngestResult(accepted=0)

        try:
            accepted = await self._store.upsert(samples)
        except StoreError as exc:
            INGEST_FAILURES.inc()
            logger.error(
                "ingest_failed",
                kind=kind,
                submitted=len(samples),
                error=str(exc),
            )
            raise IngestionError("Failed to store samples", submitted=len(samples)) from exc

        SAMPLES_UPSERTED.labels(kind=kind).inc(accepted)
        logger.info(
            "samples_ingested",
            kind=kind,
            accepted=accepted,
            first_id=samples[0].id,
        )
        return IngestResult(accepted=accepted)
