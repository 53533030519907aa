"""
Flight schedule repository.

``FlightRepository`` is the interface the reconciliation engine and the
gateway depend on; ``SqlAlchemyFlightRepository`` implements it on top of
``DatabaseConfig``. Every method is blocking and is run on an executor by
its async callers.

Reads that fail on connectivity are logged and return empty results. Write
failures propagate, except unique-key conflicts on insert, which are
reported back to the caller for recovery.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, OperationalError

from ..exceptions import ConstraintConflict
from ..models.flight import FlightRecord, MUTABLE_FIELDS
from .config import DatabaseConfig
from .models import FlightSchedule

logger = logging.getLogger(__name__)

# Upper bound on bound parameters in one IN (...) clause
_IN_CHUNK = 500


class FlightRepository(ABC):
    """Persisted store of flight legs."""

    @abstractmethod
    def find_by_flight_codes(self, flight_codes: Iterable[str]) -> List[FlightRecord]:
        """All stored legs whose flight_iata is in ``flight_codes``."""

    @abstractmethod
    def find_by_departure_key(self, flight_iata: str, dep_time: Optional[str]) -> Optional[FlightRecord]:
        """The leg with departure identity (flight_iata, dep_time)."""

    @abstractmethod
    def find_by_arrival_key(self, flight_iata: str, arr_time: Optional[str]) -> Optional[FlightRecord]:
        """The leg with arrival identity (flight_iata, arr_time)."""

    @abstractmethod
    def find_by_departure_airport(self, airport_code: str) -> List[FlightRecord]:
        """Legs departing from ``airport_code``."""

    @abstractmethod
    def find_by_arrival_airport(self, airport_code: str) -> List[FlightRecord]:
        """Legs arriving at ``airport_code``."""

    @abstractmethod
    def insert_all(self, records: Sequence[FlightRecord]) -> List[FlightRecord]:
        """
        Insert new legs.

        Returns:
            The records that could not be inserted because their unique
            key already exists.
        """

    @abstractmethod
    def update_all(self, records: Sequence[FlightRecord]) -> int:
        """Copy the mutable fields of each record onto its stored row."""

    @abstractmethod
    def delete_all(self, records: Sequence[FlightRecord]) -> int:
        """Delete the stored rows of ``records`` by id."""


def _chunks(items: List, size: int = _IN_CHUNK):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class SqlAlchemyFlightRepository(FlightRepository):
    """FlightRepository on the ``airline_schedule`` table."""

    def __init__(self, db_config: DatabaseConfig):
        self.db = db_config

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_flight_codes(self, flight_codes: Iterable[str]) -> List[FlightRecord]:
        codes = sorted({c for c in flight_codes if c})
        if not codes:
            return []

        try:
            with self.db.session_scope() as session:
                rows: List[FlightSchedule] = []
                for chunk in _chunks(codes):
                    rows.extend(
                        session.query(FlightSchedule)
                        .filter(FlightSchedule.flight_iata.in_(chunk))
                        .all()
                    )
                return [row.to_record() for row in rows]
        except OperationalError as e:
            logger.warning(f"Store read by flight codes failed, treating as empty: {e}")
            return []

    def find_by_departure_key(self, flight_iata: str, dep_time: Optional[str]) -> Optional[FlightRecord]:
        return self._find_one(FlightSchedule.dep_time, flight_iata, dep_time)

    def find_by_arrival_key(self, flight_iata: str, arr_time: Optional[str]) -> Optional[FlightRecord]:
        return self._find_one(FlightSchedule.arr_time, flight_iata, arr_time)

    def _find_one(self, time_column, flight_iata: str, time_value: Optional[str]) -> Optional[FlightRecord]:
        try:
            with self.db.session_scope() as session:
                query = session.query(FlightSchedule).filter(FlightSchedule.flight_iata == flight_iata)
                if time_value is None:
                    query = query.filter(time_column.is_(None))
                else:
                    query = query.filter(time_column == time_value)
                row = query.first()
                return row.to_record() if row else None
        except OperationalError as e:
            logger.warning(f"Store read of {flight_iata} failed, treating as absent: {e}")
            return None

    def find_by_departure_airport(self, airport_code: str) -> List[FlightRecord]:
        return self._find_by_airport(FlightSchedule.dep_iata, FlightSchedule.dep_time, airport_code)

    def find_by_arrival_airport(self, airport_code: str) -> List[FlightRecord]:
        return self._find_by_airport(FlightSchedule.arr_iata, FlightSchedule.arr_time, airport_code)

    def _find_by_airport(self, airport_column, time_column, airport_code: str) -> List[FlightRecord]:
        try:
            with self.db.session_scope() as session:
                rows = (
                    session.query(FlightSchedule)
                    .filter(airport_column == airport_code)
                    .order_by(time_column, FlightSchedule.flight_iata)
                    .all()
                )
                return [row.to_record() for row in rows]
        except OperationalError as e:
            logger.warning(f"Store read for airport {airport_code} failed, treating as empty: {e}")
            return []

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_one(self, record: FlightRecord) -> FlightRecord:
        """
        Insert a single leg.

        Raises:
            ConstraintConflict: If either unique key already exists
        """
        try:
            with self.db.session_scope() as session:
                row = FlightSchedule.from_record(record)
                session.add(row)
                session.flush()
                return row.to_record()
        except IntegrityError as e:
            raise ConstraintConflict(record, f"Unique key conflict inserting {record.flight_iata}") from e

    def insert_all(self, records: Sequence[FlightRecord]) -> List[FlightRecord]:
        if not records:
            return []

        try:
            with self.db.session_scope() as session:
                session.add_all([FlightSchedule.from_record(r) for r in records])
            return []
        except IntegrityError:
            logger.info(f"Batch insert of {len(records)} legs hit a unique key, retrying row by row")

        conflicts: List[FlightRecord] = []
        for record in records:
            try:
                self.insert_one(record)
            except ConstraintConflict as conflict:
                logger.debug(str(conflict))
                conflicts.append(conflict.record)
        return conflicts

    def update_all(self, records: Sequence[FlightRecord]) -> int:
        if not records:
            return 0

        updated = 0
        with self.db.session_scope() as session:
            for record in records:
                row = session.get(FlightSchedule, record.id) if record.id else None
                if row is None:
                    logger.debug(f"Skipping update of vanished leg {record.flight_iata} ({record.id})")
                    continue
                for name in MUTABLE_FIELDS:
                    setattr(row, name, getattr(record, name))
                updated += 1
        return updated

    def delete_all(self, records: Sequence[FlightRecord]) -> int:
        ids = [r.id for r in records if r.id]
        if not ids:
            return 0

        deleted = 0
        with self.db.session_scope() as session:
            for chunk in _chunks(ids):
                deleted += (
                    session.query(FlightSchedule)
                    .filter(FlightSchedule.id.in_(chunk))
                    .delete(synchronize_session=False)
                )
        return deleted

    def count(self) -> int:
        with self.db.session_scope() as session:
            return session.query(FlightSchedule).count()
