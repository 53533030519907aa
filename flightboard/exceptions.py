"""
Exception types for the flight board service.

Malformed upstream records and lock contention have no exception type:
the first is a dropped record, the second is acquire() returning None.
"""

from typing import Any, Optional


class FlightBoardError(Exception):
    """Base exception for the flight board service."""
    pass


class UpstreamError(FlightBoardError):
    """Network, HTTP or parse failure talking to the upstream schedules API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConstraintConflict(FlightBoardError):
    """A concurrent writer inserted the same directional key first."""

    def __init__(self, record: Any, message: Optional[str] = None):
        super().__init__(message or f"Unique key conflict for {getattr(record, 'flight_iata', record)}")
        self.record = record


class ValkeyConnectionError(FlightBoardError):
    """The Valkey server cannot be reached."""
    pass


class ValkeyTimeoutError(FlightBoardError):
    """A Valkey operation timed out."""
    pass


class ValkeyConfigurationError(FlightBoardError):
    """Inconsistent or out-of-range Valkey settings."""
    pass
