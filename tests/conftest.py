"""Pytest configuration and fixtures."""

from collections.abc import Callable
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from health_bridge.ingest import IngestionEngine  # noqa: E402
from health_bridge.query import WeightQuery  # noqa: E402
from health_bridge.samples import SampleNormalizer  # noqa: E402
from health_bridge.store import SampleStore  # noqa: E402


class TickingClock:
    """Deterministic createdAt/updatedAt source advancing one second per call."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return f"2025-01-01T00:00:{self.calls:02d}.000Z"


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "weight.db"


@pytest.fixture
def store(db_path: Path, clock: Callable[[], str]) -> SampleStore:
    return SampleStore(db_path, busy_timeout_ms=1000, clock=clock)


@pytest.fixture
def normalizer() -> SampleNormalizer:
    return SampleNormalizer()


@pytest.fixture
def engine(store: SampleStore) -> IngestionEngine:
    return IngestionEngine(store)


@pytest.fixture
def query(store: SampleStore) -> WeightQuery:
    return WeightQuery(store)


@pytest.fixture
def sample_weight_payload():
    """Legacy single-sample body from an iOS Shortcut."""
    return {
        "weight": 372.4,
        "unit": "lb",
        "timestamp": "2025-08-17T12:47:05-04:00",
    }


@pytest.fixture
def sample_healthkit_payload():
    """Single-sample body carrying the HealthKit identifier and interval."""
    return {
        "weight": 80.25,
        "unit": "kg",
        "timestamp": "2025-08-18T07:30:00Z",
        "uuid": "6F9619FF-8B86-4D11-B42D-00C04FC964FF",
        "startDate": "2025-08-18T07:30:00Z",
        "endDate": "2025-08-18T07:30:00Z",
        "sourceBundleId": "com.withings.wiScaleNG",
    }


@pytest.fixture
def sample_import_payload():
    """Batch import of three HealthKit body-mass samples."""
    return {
        "bodyMass": [
            {
                "uuid": "11111111-1111-4111-8111-111111111111",
                "startDate": "2025-08-15T07:00:00Z",
                "endDate": "2025-08-15T07:00:00Z",
                "unit": "kg",
                "value": 81.0,
                "sourceBundleId": "com.apple.Health",
            },
            {
                "uuid": "22222222-2222-4222-8222-222222222222",
                "startDate": "2025-08-16T07:00:00Z",
                "endDate": "2025-08-16T07:00:00Z",
                "unit": "lb",
                "value": 178.2,
                "sourceBundleId": "com.apple.Health",
            },
            {
                "uuid": "33333333-3333-4333-8333-333333333333",
                "startDate": "2025-08-17T07:00:00Z",
                "endDate": "2025-08-17T07:00:00Z",
                "unit": "kg",
                "value": 80.5,
                "sourceBundleId": "com.apple.Health",
            },
        ]
    }
