"""
Caching layer for the flight board service.

Valkey configuration and client, key naming, and the cache store that
holds timestamped flight boards and refresh locks.
"""

from ..exceptions import ValkeyConnectionError, ValkeyTimeoutError, ValkeyConfigurationError
from .config import ValkeyConfig
from .client import ValkeyClient
from .utils import (
    CacheKeyPrefix,
    TTLPreset,
    CacheKeyBuilder,
    normalize_airport,
    flights_key,
    lock_key,
)
from .manager import CacheManager, CacheStats

__all__ = [
    # Configuration
    "ValkeyConfig",
    "ValkeyConnectionError",
    "ValkeyTimeoutError",
    "ValkeyConfigurationError",

    # Client
    "ValkeyClient",

    # Store
    "CacheManager",
    "CacheStats",

    # Utilities
    "CacheKeyPrefix",
    "TTLPreset",
    "CacheKeyBuilder",
    "normalize_airport",
    "flights_key",
    "lock_key",
]
