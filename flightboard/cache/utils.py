"""
Cache key naming and TTL presets for the flight board cache.
"""

from enum import Enum
from typing import Any, Union


class CacheKeyPrefix(str, Enum):
    """Key namespaces used in Valkey."""

    FLIGHTS = "FLIGHTS"
    LOCK = "LOCK"


class TTLPreset(int, Enum):
    """Freshness tiers and expiry times, in seconds."""

    FRESH_THRESHOLD = 30   # younger entries are served without side effects
    FLIGHT_BOARD = 120     # cache TTL; older entries are evicted
    REFRESH_LOCK = 60      # upper bound on one background refresh


class CacheKeyBuilder:
    """Builds colon-separated cache keys."""

    @staticmethod
    def build_key(prefix: Union[CacheKeyPrefix, str], *parts: Any) -> str:
        """
        Join a prefix and key parts with colons, skipping None parts.

        Example:
            build_key(CacheKeyPrefix.LOCK, "FLIGHTS", "SFO")
            # Returns: "LOCK:FLIGHTS:SFO"
        """
        prefix_str = prefix.value if isinstance(prefix, CacheKeyPrefix) else str(prefix)
        key_parts = [prefix_str]
        for part in parts:
            if part is not None:
                key_parts.append(str(part))
        return ":".join(key_parts)

    @staticmethod
    def build_pattern(prefix: Union[CacheKeyPrefix, str], *parts: Any) -> str:
        """Key pattern for SCAN; defaults to everything under the prefix."""
        return CacheKeyBuilder.build_key(prefix, *(parts or ("*",)))


def normalize_airport(airport_code: str) -> str:
    """Upper-case and strip an airport code; rejects empty codes."""
    code = (airport_code or "").strip().upper()
    if not code:
        raise ValueError("Airport code must not be empty")
    return code


def flights_key(airport_code: str) -> str:
    """Cache key of an airport's flight board, e.g. ``FLIGHTS:SFO``."""
    return CacheKeyBuilder.build_key(CacheKeyPrefix.FLIGHTS, normalize_airport(airport_code))


def lock_key(airport_code: str) -> str:
    """Refresh lock key of an airport's flight board, e.g. ``LOCK:FLIGHTS:SFO``."""
    return CacheKeyBuilder.build_key(CacheKeyPrefix.LOCK, flights_key(airport_code))
