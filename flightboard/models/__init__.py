"""
Flight board data models.

Pydantic models for flight records and cached boards, plus the small
dataclasses used to report cache and reconciliation state.
"""

from .enums import Direction, FreshnessTier
from .flight import MUTABLE_FIELDS, FlightRecord, FlightBoard
from .cache import CacheEntry, SyncResult

__all__ = [
    # Enums
    "Direction",
    "FreshnessTier",

    # Flight models
    "MUTABLE_FIELDS",
    "FlightRecord",
    "FlightBoard",

    # Cache and sync models
    "CacheEntry",
    "SyncResult",
]
