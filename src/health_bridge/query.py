"""Recent-measurement projection in kilograms and pounds."""

import math
from typing import Any

import structlog
from pydantic import BaseModel, Field

from .errors import StoreError
from .metrics import READ_FALLBACKS
from .store import SampleStore
from .units import to_lb

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 30
MIN_LIMIT = 1
MAX_LIMIT = 500


class WeightRow(BaseModel):
    """A measurement as returned to clients."""

    date: str = Field(
        description="Sample start time as stored", examples=["2025-08-17T12:47:05-04:00"]
    )
    kg: float = Field(description="Canonical kilograms", examples=[168.92])
    lb: float = Field(description="Pounds derived at read time", examples=[372.4])


def clamp_limit(raw: Any) -> int:
    """Resolve a caller-supplied row limit.

    Missing, blank, non-numeric and non-finite values fall back to
    ``DEFAULT_LIMIT``; numeric values are truncated and clamped to
    ``[MIN_LIMIT, MAX_LIMIT]``.
    """
    if raw is None or isinstance(raw, bool):
        return DEFAULT_LIMIT
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if not math.isfinite(value):
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, int(value)))


class WeightQuery:
    """Reads stored samples for display."""

    def __init__(self, store: SampleStore) -> None:
        self._store = store

    async def list_recent(self, limit: Any = None) -> list[WeightRow]:
        """Return the most recent measurements, newest first.

        Store failures are logged and answered with an empty list.
        """
        resolved = clamp_limit(limit)
        try:
            rows = await self._store.list_recent(resolved)
        except StoreError as exc:
            READ_FALLBACKS.inc()
            logger.warning("store_read_failed", limit=resolved, error=str(exc))
            return []

        return [
            WeightRow(date=row["startDate"], kg=row["kg"], lb=to_lb(row["kg"]))
            for row in rows
        ]
