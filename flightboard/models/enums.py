"""
Enums for the flight board service.

This module contains the enumeration types shared by the cache gateway,
the reconciliation engine and the persisted store.
"""

from enum import Enum


class Direction(str, Enum):
    """The two independent schedules a single airport participates in."""
    DEPARTURES = "departures"
    ARRIVALS = "arrivals"

    @property
    def filter_key(self) -> str:
        """Upstream query parameter selecting this direction."""
        return "dep_iata" if self is Direction.DEPARTURES else "arr_iata"

    @property
    def key_prefix(self) -> str:
        """Prefix used in directional unique keys."""
        return "DEP" if self is Direction.DEPARTURES else "ARR"

    @property
    def payload_field(self) -> str:
        """Field name of this direction in a cached flight board."""
        return self.value


class FreshnessTier(str, Enum):
    """Cache-age tiers driving the read policy."""
    MISS = "miss"
    FRESH = "fresh"        # younger than the fresh threshold
    STALE = "stale"        # served, refreshed in the background
    EXPIRED = "expired"    # evicted, refreshed synchronously
