"""
Shared fixtures: a controllable clock, a scripted upstream, an in-memory
SQLite store and a cache manager running on its in-process store.
"""

import threading
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio

from flightboard.cache.manager import CacheManager
from flightboard.database.config import DatabaseConfig
from flightboard.database.repository import SqlAlchemyFlightRepository
from flightboard.models.enums import Direction
from flightboard.services.flight_gateway import FlightCacheGateway
from flightboard.services.lock_manager import DistributedLockManager
from flightboard.services.reconciliation import ReconciliationEngine


class FakeClock:
    """Epoch seconds that only move when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedUpstream:
    """Upstream client returning canned snapshots and recording every call."""

    def __init__(self):
        self.snapshots: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.errors: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def set_snapshot(self, direction: Direction, airport: str, records: List[Dict[str, Any]]) -> None:
        self.snapshots[(direction.filter_key, airport)] = records

    def fail(self, direction: Direction, airport: str, error: Exception) -> None:
        self.errors[(direction.filter_key, airport)] = error

    def fetch(self, direction_filter_key: str, airport_code: str) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append((direction_filter_key, airport_code))
        error = self.errors.get((direction_filter_key, airport_code))
        if error is not None:
            raise error
        return [dict(r) for r in self.snapshots.get((direction_filter_key, airport_code), [])]

    @property
    def call_count(self) -> int:
        return len(self.calls)


def make_raw(flight_iata: str, dep_iata: str, arr_iata: str, dep_time: str, arr_time: str, **overrides) -> Dict[str, Any]:
    """A raw upstream schedule record."""
    raw = {
        "airline_iata": flight_iata[:2],
        "flight_iata": flight_iata,
        "flight_number": flight_iata[2:],
        "dep_iata": dep_iata,
        "dep_terminal": "1",
        "dep_gate": "A1",
        "dep_time": dep_time,
        "dep_actual": None,
        "arr_iata": arr_iata,
        "arr_terminal": "2",
        "arr_gate": "B2",
        "arr_time": arr_time,
        "arr_actual": None,
        "status": "scheduled",
        "duration": 90,
        "delayed": None,
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheManager(client=None, clock=clock)


@pytest.fixture
def db_config():
    config = DatabaseConfig(database_url="sqlite://")
    config.initialize()
    config.create_tables()
    yield config
    config.close()


@pytest.fixture
def repository(db_config):
    return SqlAlchemyFlightRepository(db_config)


@pytest.fixture
def upstream():
    return ScriptedUpstream()


@pytest.fixture
def engine(upstream, repository):
    return ReconciliationEngine(upstream, repository)


@pytest.fixture
def lock_manager(cache):
    return DistributedLockManager(cache)


@pytest.fixture
def sfo_upstream(upstream):
    """Upstream with two departures from and two arrivals into SFO."""
    upstream.set_snapshot(Direction.DEPARTURES, "SFO", [
        make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30"),
        make_raw("DL200", "SFO", "JFK", "2024-05-01 09:15", "2024-05-01 17:45"),
    ])
    upstream.set_snapshot(Direction.ARRIVALS, "SFO", [
        make_raw("UA101", "LAX", "SFO", "2024-05-01 11:00", "2024-05-01 12:30"),
        make_raw("AA300", "ORD", "SFO", "2024-05-01 07:00", "2024-05-01 09:45"),
    ])
    return upstream


@pytest_asyncio.fixture
async def gateway(cache, lock_manager, engine, repository, clock):
    gw = FlightCacheGateway(
        cache=cache,
        lock_manager=lock_manager,
        engine=engine,
        repository=repository,
        refresh_workers=2,
        refresh_queue_size=4,
        sync_threads=4,
        clock=clock,
    )
    yield gw
    await gw.close()
