"""Documents persisted by the catalog and the search result envelope."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReadingStatus(str, Enum):
    """Classification of a reading against its sensor's ranges."""

    ok = "ok"
    out_of_range = "outOfRange"
    error = "error"


class _WireModel(BaseModel):
    # Attributes are snake_case; stored and returned field names are camelCase.
    # Properties unknown to the model are kept as-is.
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        protected_namespaces=(),
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Range(_WireModel):
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class Document(_WireModel):
    """Base for everything stored in a collection; ``id`` is the key."""

    id: str


class SensorType(Document):
    manufacturer: str
    model_number: str
    quantity: str
    unit: str
    limits: Range


class Sensor(Document):
    model: str
    period: int
    expected: Range


class Reading(Document):
    sensor_id: str
    timestamp: int
    value: float

    @staticmethod
    def key_for(sensor_id: str, timestamp: int) -> str:
        return f"{sensor_id}-{timestamp}"


class Envelope(Document):
    """Known timestamp range of the readings stored for one sensor."""

    earliest: int
    latest: int

    def widen(self, timestamp: int) -> bool:
        """Stretch the range to cover ``timestamp``; report whether it moved."""
        changed = False
        if timestamp < self.earliest:
            self.earliest = timestamp
            changed = True
        if timestamp > self.latest:
            self.latest = timestamp
            changed = True
        return changed


class SearchResult(BaseModel):
    """One page of results from a find operation."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    data: List[Dict[str, Any]] = Field(default_factory=list)
    next_index: Optional[int] = None
    previous_index: Optional[int] = None
    sensor: Optional[Dict[str, Any]] = None
    sensor_type: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready mapping; properties that do not apply are omitted."""
        payload = self.model_dump(by_alias=True)
        return {key: value for key, value in payload.items() if value is not None}
