"""Payload validation and normalization into canonical weight samples."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal, TypeAlias

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .types import WeightUnit
from .units import to_kg

PayloadKind: TypeAlias = Literal["single", "import"]

# Regex to normalize Health Auto Export date format:
# "2022-06-12 23:59:00 +0400" -> "2022-06-12T23:59:00+04:00"
_DATE_SPACE_TZ_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s(\d{2}:\d{2}:\d{2})\s([+-])(\d{2})(\d{2})$")

# Extended ISO-8601 with a colon offset or Z, the only forms SQLite's julianday() reads.
_EXTENDED_ISO_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})$"
)

# Magnitudes must be JSON numbers: strict rejects numeric strings and booleans.
Magnitude = Annotated[float, Field(strict=True, gt=0, allow_inf_nan=False)]

# Upper bound on a stored body mass.
MAX_MASS_KG = 1000.0


def _normalize_unit(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class WeightPayload(BaseModel):
    """Single-sample body accepted by ``POST /health/weight``.

    The legacy form carries only ``weight``, ``unit`` and ``timestamp``; newer
    clients add the HealthKit sample identifier, interval and source bundle.
    """

    model_config = ConfigDict(extra="ignore")

    weight: Magnitude
    unit: WeightUnit
    timestamp: str
    uuid: str | None = None
    startDate: str | None = None
    endDate: str | None = None
    sourceBundleId: str | None = None

    @field_validator("unit", mode="before")
    @classmethod
    def normalize_unit(cls, v: Any) -> Any:
        return _normalize_unit(v)


class BodyMassEntry(BaseModel):
    """One HealthKit body-mass sample inside a batch import."""

    model_config = ConfigDict(extra="ignore")

    uuid: str
    startDate: str
    endDate: str
    unit: WeightUnit
    value: Magnitude
    sourceBundleId: str | None = None

    @field_validator("unit", mode="before")
    @classmethod
    def normalize_unit(cls, v: Any) -> Any:
        return _normalize_unit(v)


class BodyMassImport(BaseModel):
    """Batch body accepted by ``POST /health/import``."""

    model_config = ConfigDict(extra="ignore")

    bodyMass: list[BodyMassEntry]


def _payload_kind(value: Any) -> PayloadKind:
    if isinstance(value, dict) and "bodyMass" in value:
        return "import"
    return "single"


IngestPayload: TypeAlias = Annotated[
    Annotated[WeightPayload, Tag("single")] | Annotated[BodyMassImport, Tag("import")],
    Discriminator(_payload_kind),
]

_PAYLOAD_ADAPTER: TypeAdapter[WeightPayload | BodyMassImport] = TypeAdapter(IngestPayload)
_MODELS: dict[PayloadKind, type[BaseModel]] = {
    "single": WeightPayload,
    "import": BodyMassImport,
}


@dataclass(frozen=True)
class Sample:
    """Canonical weight measurement, keyed by ``id``."""

    id: str
    start_time: str
    end_time: str
    mass_kg: float
    source_id: str


def generate_sample_id() -> str:
    """Return a random version-4 UUID string (OS CSPRNG)."""
    return str(uuid.uuid4())


def _first_error(exc: PydanticValidationError, prefix: tuple[str, ...] = ()) -> ValidationError:
    """Convert the first pydantic error into a field-naming ValidationError."""
    err = exc.errors()[0]
    loc = [str(part) for part in err.get("loc", ())]
    # Discriminated unions prefix the location with the tag name.
    if loc and loc[0] in _MODELS:
        loc = loc[1:]
    field = ".".join([*prefix, *loc]) or "body"
    if err.get("type") == "missing":
        return ValidationError(field, "is required")
    return ValidationError(field, err.get("msg", "invalid value"))


class SampleNormalizer:
    """Turns client payloads into canonical samples.

    All accepted payload shapes go through :meth:`normalize`; the shape is
    picked by the presence of ``bodyMass`` unless the caller pins it.
    """

    def __init__(self, default_source: str = "manual-entry", strict_ids: bool = True) -> None:
        self._default_source = default_source
        self._strict_ids = strict_ids

    def parse(
        self, payload: Any, kind: PayloadKind | None = None
    ) -> WeightPayload | BodyMassImport:
        """Validate payload structure and field types.

        Args:
            payload: Decoded JSON body.
            kind: Expected shape, or None to detect it.

        Raises:
            ValidationError: If the body is not an object or a field is invalid.
        """
        if not isinstance(payload, dict):
            raise ValidationError("body", "must be a JSON object")
        try:
            if kind is None:
                return _PAYLOAD_ADAPTER.validate_python(payload)
            return _MODELS[kind].model_validate(payload)
        except PydanticValidationError as exc:
            raise _first_error(exc) from exc

    def normalize(self, payload: Any, kind: PayloadKind | None = None) -> list[Sample]:
        """Validate a payload and return its canonical samples.

        Args:
            payload: Decoded JSON body.
            kind: Expected shape, or None to detect it.

        Returns:
            One sample for the single form, one per element for imports.

        Raises:
            ValidationError: Naming the first offending field.
        """
        parsed = self.parse(payload, kind)
        if isinstance(parsed, BodyMassImport):
            return [
                self._from_entry(entry, f"bodyMass.{index}")
                for index, entry in enumerate(parsed.bodyMass)
            ]
        return [self._from_single(parsed)]

    def _from_single(self, body: WeightPayload) -> Sample:
        timestamp = self._timestamp("timestamp", body.timestamp)
        start = (
            self._timestamp("startDate", body.startDate) if _present(body.startDate) else timestamp
        )
        end = self._timestamp("endDate", body.endDate) if _present(body.endDate) else timestamp
        _check_interval("endDate", start, end)

        if _present(body.uuid):
            sample_id = self._sample_id("uuid", body.uuid)
        else:
            sample_id = generate_sample_id()

        return Sample(
            id=sample_id,
            start_time=start,
            end_time=end,
            mass_kg=_mass("weight", body.weight, body.unit),
            source_id=self._source(body.sourceBundleId),
        )

    def _from_entry(self, entry: BodyMassEntry, prefix: str) -> Sample:
        start = self._timestamp(f"{prefix}.startDate", entry.startDate)
        end = self._timestamp(f"{prefix}.endDate", entry.endDate)
        _check_interval(f"{prefix}.endDate", start, end)

        return Sample(
            id=self._sample_id(f"{prefix}.uuid", entry.uuid),
            start_time=start,
            end_time=end,
            mass_kg=_mass(f"{prefix}.value", entry.value, entry.unit),
            source_id=self._source(entry.sourceBundleId),
        )

    def _sample_id(self, field: str, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValidationError(field, "must not be empty")
        if not self._strict_ids:
            return trimmed
        try:
            parsed = uuid.UUID(trimmed)
        except ValueError as exc:
            raise ValidationError(field, "is not a valid UUID") from exc
        # Braced, urn: and bare-hex spellings share one row, in HealthKit's uppercase form.
        return str(parsed).upper()

    def _source(self, value: str | None) -> str:
        if _present(value):
            return value.strip()
        return self._default_source

    @staticmethod
    def _timestamp(field: str, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValidationError(field, "must not be empty")
        m = _DATE_SPACE_TZ_RE.match(trimmed)
        if m:
            trimmed = f"{m[1]}T{m[2]}{m[3]}{m[4]}:{m[5]}"
        try:
            parsed = datetime.fromisoformat(trimmed)
        except ValueError as exc:
            raise ValidationError(field, "is not an ISO-8601 timestamp") from exc
        offset = parsed.utcoffset()
        if offset is None:
            raise ValidationError(field, "must include a UTC offset")
        if offset.total_seconds() % 60:
            raise ValidationError(field, "must have a whole-minute UTC offset")
        if _EXTENDED_ISO_RE.match(trimmed):
            return trimmed
        # Compact and other accepted forms are stored in extended form.
        return parsed.isoformat()


def _present(value: str | None) -> bool:
    return value is not None and bool(value.strip())


def _mass(field: str, value: float, unit: WeightUnit) -> float:
    mass_kg = to_kg(value, unit)
    if mass_kg <= 0:
        raise ValidationError(field, "rounds to zero kilograms")
    if mass_kg > MAX_MASS_KG:
        raise ValidationError(field, f"exceeds {MAX_MASS_KG:g} kilograms")
    return mass_kg


def _check_interval(field: str, start: str, end: str) -> None:
    if datetime.fromisoformat(end) < datetime.fromisoformat(start):
        raise ValidationError(field, "must not be before the start time")
