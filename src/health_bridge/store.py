"""SQLite persistence for canonical weight samples."""

import asyncio
import sqlite3
import time
from collections.abc import Callable, Sequence
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

import structlog

from .errors import StoreError
from .metrics import STORE_OPERATION_DURATION, STORE_OPERATIONS
from .samples import Sample
from .types import StoredRow, StoreStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS weight (
        uuid           TEXT PRIMARY KEY,
        startDate      TEXT NOT NULL,
        endDate        TEXT NOT NULL,
        kg             REAL NOT NULL,
        sourceBundleId TEXT NOT NULL,
        createdAt      TEXT NOT NULL DEFAULT (datetime('now')),
        updatedAt      TEXT NOT NULL DEFAULT (datetime('now'))
    )
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_weight_start ON weight(startDate)"

# createdAt is only written by the INSERT branch.
_UPSERT = """
    INSERT INTO weight (uuid, startDate, endDate, kg, sourceBundleId, createdAt, updatedAt)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(uuid) DO UPDATE SET
        startDate = excluded.startDate,
        endDate = excluded.endDate,
        kg = excluded.kg,
        sourceBundleId = excluded.sourceBundleId,
        updatedAt = excluded.updatedAt
"""

# julianday() folds UTC offsets so mixed-offset timestamps sort chronologically.
_SELECT_RECENT = """
    SELECT uuid, startDate, endDate, kg, sourceBundleId, createdAt, updatedAt
    FROM weight
    ORDER BY julianday(startDate) DESC, startDate DESC
    LIMIT ?
"""

_SELECT_ONE = """
    SELECT uuid, startDate, endDate, kg, sourceBundleId, createdAt, updatedAt
    FROM weight
    WHERE uuid = ?
"""


def utc_now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SampleStore:
    """Stores weight samples in a single SQLite table.

    Every operation opens its own connection on the default executor, so
    concurrent requests never share a connection. Writers of the same
    ``uuid`` are serialized by SQLite's upsert inside a transaction.
    """

    def __init__(
        self,
        db_path: Path | str,
        busy_timeout_ms: int = 5000,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            busy_timeout_ms: How long to wait on a locked database.
            clock: Source of createdAt/updatedAt values.
        """
        self._db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms
        self._clock = clock
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        """Open a SQLite connection with safer concurrency settings."""
        conn = sqlite3.connect(self._db_path, timeout=self._busy_timeout_ms / 1000)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` inside a transaction on the executor, mapping sqlite errors."""
        loop = asyncio.get_running_loop()

        def call() -> T:
            with closing(self._connect()) as conn:
                with conn:
                    return fn(conn)

        started = time.perf_counter()
        try:
            result = await loop.run_in_executor(None, call)
        except sqlite3.Error as exc:
            STORE_OPERATIONS.labels(operation=operation, status="error").inc()
            logger.error(
                "store_operation_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError(f"{operation} failed: {exc}") from exc
        finally:
            STORE_OPERATION_DURATION.labels(operation=operation).observe(
                time.perf_counter() - started
            )
        STORE_OPERATIONS.labels(operation=operation, status="ok").inc()
        return result

    async def initialize(self) -> None:
        """Create the database file and schema if missing."""
        if self._initialized:
            return

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("store_directory_failed", path=str(self._db_path), error=str(exc))
            raise StoreError(f"initialize failed: {exc}") from exc

        def create(conn: sqlite3.Connection) -> None:
            conn.execute(_SCHEMA)
            conn.execute(_INDEX)

        await self._run("initialize", create)
        self._initialized = True
        logger.info("store_initialized", path=str(self._db_path))

    async def upsert(self, samples: Sequence[Sample]) -> int:
        """Insert or update samples in one transaction.

        A failure rolls back every row of the call.

        Returns:
            Number of rows submitted.
        """
        if not samples:
            return 0
        await self.initialize()

        now = self._clock()
        params = [
            (s.id, s.start_time, s.end_time, s.mass_kg, s.source_id, now, now)
            for s in samples
        ]

        def write(conn: sqlite3.Connection) -> int:
            conn.executemany(_UPSERT, params)
            return len(params)

        written = await self._run("upsert", write)
        logger.debug("samples_upserted", count=written)
        return written

    async def list_recent(self, limit: int) -> list[StoredRow]:
        """Return up to ``limit`` rows, most recent start time first."""
        await self.initialize()

        def read(conn: sqlite3.Connection) -> list[StoredRow]:
            rows = conn.execute(_SELECT_RECENT, (limit,)).fetchall()
            return [StoredRow(**dict(row)) for row in rows]

        return await self._run("list_recent", read)

    async def get(self, sample_id: str) -> StoredRow | None:
        """Return the row stored under ``sample_id``, if any."""
        await self.initialize()

        def read(conn: sqlite3.Connection) -> StoredRow | None:
            row = conn.execute(_SELECT_ONE, (sample_id,)).fetchone()
            return StoredRow(**dict(row)) if row else None

        return await self._run("get", read)

    async def count(self) -> int:
        """Return the number of stored rows."""
        await self.initialize()

        def read(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM weight").fetchone()[0]

        return await self._run("count", read)

    async def health_check(self) -> StoreStatus:
        """Report whether the database answers queries."""
        try:
            rows = await self.count()
        except StoreError:
            return {"ready": False, "path": str(self._db_path), "rows": None}
        return {"ready": True, "path": str(self._db_path), "rows": rows}
