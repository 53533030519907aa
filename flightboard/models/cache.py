"""
Cache and reconciliation report models for the flight board service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .enums import Direction


@dataclass
class CacheEntry:
    """
    A cached payload together with the time it was written.

    Both halves travel in one serialized envelope, so the age is never
    computed against a payload it does not belong to.
    """
    payload: Dict[str, Any]
    written_at: float

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.written_at)

    def to_envelope(self) -> Dict[str, Any]:
        return {"data": self.payload, "written_at": self.written_at}

    @classmethod
    def from_envelope(cls, envelope: Any) -> Optional["CacheEntry"]:
        """Parse a stored envelope; None if it is not one."""
        if not isinstance(envelope, dict):
            return None
        if "data" not in envelope or "written_at" not in envelope:
            return None
        try:
            written_at = float(envelope["written_at"])
        except (TypeError, ValueError):
            return None
        return cls(payload=envelope["data"], written_at=written_at)


@dataclass
class SyncResult:
    """Outcome of reconciling one direction of one airport."""
    direction: Direction
    airport: str
    fetched: int = 0
    malformed: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    conflicts: int = 0
    retimed: int = 0
    skipped: bool = False
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def writes(self) -> int:
        return self.inserted + self.updated + self.deleted

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "direction": self.direction.value,
            "airport": self.airport,
            "fetched": self.fetched,
            "malformed": self.malformed,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "conflicts": self.conflicts,
            "retimed": self.retimed,
            "skipped": self.skipped,
            "writes": self.writes,
            "finished_at": self.finished_at.isoformat(),
        }

    def __str__(self) -> str:
        if self.skipped:
            return f"{self.direction.value}@{self.airport}: empty snapshot, skipped"
        return (
            f"{self.direction.value}@{self.airport}: fetched={self.fetched} "
            f"+{self.inserted} ~{self.updated} -{self.deleted} "
            f"={self.unchanged} malformed={self.malformed} conflicts={self.conflicts} retimed={self.retimed}"
        )
