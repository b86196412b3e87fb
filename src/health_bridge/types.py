"""Shared type aliases and typed dictionaries."""

from __future__ import annotations

from typing import Literal, TypeAlias, TypedDict

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
JSONObject: TypeAlias = dict[str, JSONValue]
TraceContextCarrier: TypeAlias = dict[str, str]

WeightUnit: TypeAlias = Literal["kg", "lb"]


class StoredRow(TypedDict):
    """A row of the ``weight`` table as read back from SQLite."""

    uuid: str
    startDate: str
    endDate: str
    kg: float
    sourceBundleId: str
    createdAt: str
    updatedAt: str


class StoreStatus(TypedDict):
    """Store readiness status payload."""

    ready: bool
    path: str
    rows: int | None


class ServiceStatusSnapshot(TypedDict):
    """Service readiness snapshot payload."""

    status: str
    components: dict[str, StoreStatus | str]
