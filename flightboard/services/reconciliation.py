"""
Reconciliation of upstream schedule snapshots with the persisted store.

``ReconciliationEngine.sync`` brings the stored legs of one direction of
one airport in line with the upstream's current snapshot, using the fewest
writes: new keys are inserted, changed keys get their mutable fields
copied over, and keys that rolled out of the snapshot are deleted.

An empty snapshot means "don't know", never "nothing exists", so it leaves
the store untouched. The engine is blocking; async callers run it on an
executor. It may run concurrently for different (direction, airport)
pairs, and insert races between concurrent runs are recovered by
re-reading the winning row. A snapshot leg that collides on its other
unique key was re-timed upstream on this side: the stored row is replaced.
"""

import logging
from typing import Dict, List, Optional, Protocol, Sequence

from ..cache.utils import normalize_airport
from ..database.repository import FlightRepository
from ..models.cache import SyncResult
from ..models.enums import Direction
from ..models.flight import FlightRecord, MUTABLE_FIELDS

logger = logging.getLogger(__name__)


class UpstreamClient(Protocol):
    def fetch(self, direction_filter_key: str, airport_code: str) -> Sequence[dict]:
        ...


def _with_mutable_fields(stored: FlightRecord, observed: FlightRecord) -> FlightRecord:
    """The stored leg carrying the observed values of the mutable fields only."""
    return stored.model_copy(update={name: getattr(observed, name) for name in MUTABLE_FIELDS})


class ReconciliationEngine:
    """Diffs upstream snapshots against the repository and applies the result."""

    def __init__(self, upstream: UpstreamClient, repository: FlightRepository):
        self.upstream = upstream
        self.repository = repository

    def sync(self, direction: Direction, airport_code: str) -> SyncResult:
        """
        Reconcile one direction of one airport.

        Raises:
            UpstreamError: If the snapshot cannot be fetched
        """
        airport = normalize_airport(airport_code)
        result = SyncResult(direction=direction, airport=airport)

        raw_records = self.upstream.fetch(direction.filter_key, airport)
        result.fetched = len(raw_records)

        snapshot = self._map_snapshot(direction, raw_records, result)
        if not snapshot:
            result.skipped = True
            logger.info(f"Empty upstream snapshot for {direction.value}@{airport}, store left untouched")
            return result

        existing = self.repository.find_by_flight_codes({r.flight_iata for r in snapshot.values()})
        persisted = {r.unique_key(direction): r for r in existing}

        to_insert: List[FlightRecord] = []
        to_update: List[FlightRecord] = []
        for key, record in snapshot.items():
            stored = persisted.get(key)
            if stored is None:
                to_insert.append(record)
            elif record.differs_from(stored):
                to_update.append(_with_mutable_fields(stored, record))
            else:
                result.unchanged += 1

        to_delete = [
            stored for stored in self._stored_for_airport(direction, airport)
            if stored.unique_key(direction) not in snapshot
        ]

        # Inserts first: conflicts they report fall through to the update branch
        conflicts = self.repository.insert_all(to_insert)
        result.inserted = len(to_insert) - len(conflicts)

        kept_ids = set()
        retimed: List[FlightRecord] = []
        for record in conflicts:
            result.conflicts += 1
            recovered = self._recover_conflict(direction, record)
            if recovered is None:
                continue

            stored_key = recovered.unique_key(direction)
            if stored_key != record.unique_key(direction) and stored_key not in snapshot:
                # Same leg under its other key: upstream moved this side's scheduled time
                logger.info(f"{record.flight_iata} re-timed from {stored_key} to {record.unique_key(direction)}")
                if all(r.id != recovered.id for r in to_delete):
                    to_delete.append(recovered)
                retimed.append(record)
                continue

            kept_ids.add(recovered.id)
            if record.differs_from(recovered):
                to_update.append(_with_mutable_fields(recovered, record))
            else:
                result.unchanged += 1

        result.updated = self.repository.update_all(to_update)

        kept_ids.update(r.id for r in to_update)
        to_delete = [r for r in to_delete if r.id not in kept_ids]
        result.deleted = self.repository.delete_all(to_delete)

        if retimed:
            self._replace_retimed(retimed, result)

        logger.info(f"Synced {result}")
        return result

    def _replace_retimed(self, records: List[FlightRecord], result: SyncResult) -> None:
        """Insert re-timed legs once their old rows are gone."""
        still_conflicting = self.repository.insert_all(records)
        replaced = len(records) - len(still_conflicting)
        result.inserted += replaced
        result.retimed += replaced
        for record in still_conflicting:
            result.conflicts += 1
            logger.warning(f"Re-timed leg {record.flight_iata} still conflicts after removing its old row")

    def _map_snapshot(self, direction: Direction, raw_records: Sequence[dict],
                      result: SyncResult) -> Dict[str, FlightRecord]:
        """Directional key -> record; malformed records are counted and dropped."""
        snapshot: Dict[str, FlightRecord] = {}
        for raw in raw_records:
            record = FlightRecord.from_upstream(raw)
            if record is None:
                result.malformed += 1
                continue
            # last observation of a duplicated key wins
            snapshot[record.unique_key(direction)] = record

        if result.malformed:
            logger.warning(
                f"Dropped {result.malformed} malformed records for {direction.value}@{result.airport}"
            )
        return snapshot

    def _stored_for_airport(self, direction: Direction, airport: str) -> List[FlightRecord]:
        if direction is Direction.DEPARTURES:
            return self.repository.find_by_departure_airport(airport)
        return self.repository.find_by_arrival_airport(airport)

    def _recover_conflict(self, direction: Direction, record: FlightRecord) -> Optional[FlightRecord]:
        """
        Re-read the row that won an insert race.

        The directional key is tried first; the row may also have collided
        on the other unique key, written by the opposite direction's sync.
        """
        by_departure = (self.repository.find_by_departure_key, record.dep_time)
        by_arrival = (self.repository.find_by_arrival_key, record.arr_time)
        lookups = (by_departure, by_arrival) if direction is Direction.DEPARTURES else (by_arrival, by_departure)

        for find, scheduled in lookups:
            stored = find(record.flight_iata, scheduled)
            if stored is not None:
                logger.debug(f"Recovered insert conflict for {record.unique_key(direction)}")
                return stored

        logger.warning(f"Insert conflict for {record.unique_key(direction)} but no row found on re-read")
        return None
