"""
Flight schedule models for the flight board service.

A FlightRecord is one scheduled flight leg as observed from the upstream
schedules API. Identity is directional: a departure observation is keyed by
(flight code, scheduled departure time), an arrival observation by
(flight code, scheduled arrival time).
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .enums import Direction

logger = logging.getLogger(__name__)


# Fields upstream may change for an existing leg without touching its identity
MUTABLE_FIELDS: Tuple[str, ...] = (
    "dep_gate",
    "dep_actual",
    "arr_gate",
    "arr_actual",
    "status",
    "delayed",
)

_STRING_FIELDS: Tuple[str, ...] = (
    "flight_iata",
    "flight_number",
    "airline_iata",
    "dep_iata",
    "dep_terminal",
    "dep_gate",
    "dep_time",
    "dep_actual",
    "arr_iata",
    "arr_terminal",
    "arr_gate",
    "arr_time",
    "arr_actual",
    "status",
)


def _as_minutes(value: Any) -> Optional[int]:
    """Coerce an upstream minute count to int; raises ValueError if unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a minute count: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    return int(float(str(value)))


class FlightRecord(BaseModel):
    """
    One scheduled flight leg observation.

    Field names follow the upstream schedules API so raw records map
    one-to-one. Times are kept as the upstream's local time strings.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = Field(None, description="Store-assigned identifier")

    # Flight info
    flight_iata: str = Field(..., description="Airline + number code (e.g., 'UA123')")
    flight_number: Optional[str] = Field(None, description="Numeric part of the flight code")
    airline_iata: Optional[str] = Field(None, description="Operating airline code")

    # Departure
    dep_iata: str = Field(..., description="Departure airport code")
    dep_terminal: Optional[str] = None
    dep_gate: Optional[str] = None
    dep_time: Optional[str] = Field(None, description="Scheduled departure time")
    dep_actual: Optional[str] = Field(None, description="Actual departure time")

    # Arrival
    arr_iata: str = Field(..., description="Arrival airport code")
    arr_terminal: Optional[str] = None
    arr_gate: Optional[str] = None
    arr_time: Optional[str] = Field(None, description="Scheduled arrival time")
    arr_actual: Optional[str] = Field(None, description="Actual arrival time")

    # Other
    status: Optional[str] = None
    duration: Optional[int] = Field(None, description="Block time in minutes")
    delayed: Optional[int] = Field(None, description="Delay in minutes")

    @classmethod
    def from_upstream(cls, raw: Dict[str, Any]) -> Optional["FlightRecord"]:
        """
        Map a raw upstream record to a FlightRecord.

        Returns None for malformed records: missing flight code, departure
        airport or arrival airport, or minute counts that are not numbers.
        """
        if not isinstance(raw, dict):
            return None

        if not raw.get("flight_iata") or not raw.get("dep_iata") or not raw.get("arr_iata"):
            return None

        values: Dict[str, Any] = {}
        for name in _STRING_FIELDS:
            value = raw.get(name)
            values[name] = str(value) if value is not None else None

        try:
            values["duration"] = _as_minutes(raw.get("duration"))
            values["delayed"] = _as_minutes(raw.get("delayed"))
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropping record {raw.get('flight_iata')}: {e}")
            return None

        return cls(**values)

    def unique_key(self, direction: Direction) -> str:
        """Directional identity of this observation."""
        if direction is Direction.DEPARTURES:
            return f"{direction.key_prefix}:{self.flight_iata}_{self.dep_time}"
        return f"{direction.key_prefix}:{self.flight_iata}_{self.arr_time}"

    def mutable_state(self) -> Tuple[Any, ...]:
        """Values of the fields that may change for an existing key."""
        return tuple(getattr(self, name) for name in MUTABLE_FIELDS)

    def differs_from(self, other: "FlightRecord") -> bool:
        return self.mutable_state() != other.mutable_state()

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class FlightBoard(BaseModel):
    """Departures and arrivals for one airport, as cached and returned."""

    departures: List[FlightRecord] = Field(default_factory=list)
    arrivals: List[FlightRecord] = Field(default_factory=list)

    def for_direction(self, direction: Direction) -> List[FlightRecord]:
        return getattr(self, direction.payload_field)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation stored in the cache."""
        return {
            "departures": [f.to_payload() for f in self.departures],
            "arrivals": [f.to_payload() for f in self.arrivals],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FlightBoard":
        return cls.model_validate(payload)
