"""
Flight board service.

Keeps a local store of flight schedules in step with the AirLabs API and
serves airport boards through a freshness-tiered Valkey cache with
single-flight background refreshes.
"""

__version__ = "0.1.0"

from .exceptions import FlightBoardError, UpstreamError, ConstraintConflict
from .models import Direction, FreshnessTier, FlightRecord, FlightBoard, CacheEntry, SyncResult

__all__ = [
    "FlightBoardError",
    "UpstreamError",
    "ConstraintConflict",
    "Direction",
    "FreshnessTier",
    "FlightRecord",
    "FlightBoard",
    "CacheEntry",
    "SyncResult",
]
