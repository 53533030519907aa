"""
SQLAlchemy models for the flight board persisted store.

One table, ``airline_schedule``, holds every observed flight leg. A row is
shared by the departure board of its origin and the arrival board of its
destination, so it carries two unique identities:
(flight_iata, dep_time) and (flight_iata, arr_time).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

from ..models.flight import FlightRecord

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class FlightSchedule(Base):
    """
    Persisted flight leg.

    Columns mirror FlightRecord; ``id`` is a surrogate UUID string and the
    timestamps are bookkeeping only.
    """
    __tablename__ = 'airline_schedule'

    id = Column(String(36), primary_key=True, default=_new_id)

    # Flight info
    flight_iata = Column(String(16), nullable=False, index=True)
    flight_number = Column(String(16), nullable=True)
    airline_iata = Column(String(8), nullable=True)

    # Departure
    dep_iata = Column(String(8), nullable=False, index=True)
    dep_terminal = Column(String(16), nullable=True)
    dep_gate = Column(String(16), nullable=True)
    dep_time = Column(String(32), nullable=True)
    dep_actual = Column(String(32), nullable=True)

    # Arrival
    arr_iata = Column(String(8), nullable=False, index=True)
    arr_terminal = Column(String(16), nullable=True)
    arr_gate = Column(String(16), nullable=True)
    arr_time = Column(String(32), nullable=True)
    arr_actual = Column(String(32), nullable=True)

    status = Column(String(32), nullable=True)
    duration = Column(Integer, nullable=True)
    delayed = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint('flight_iata', 'dep_time', name='uq_schedule_departure'),
        UniqueConstraint('flight_iata', 'arr_time', name='uq_schedule_arrival'),
    )

    @classmethod
    def from_record(cls, record: FlightRecord) -> "FlightSchedule":
        values = record.model_dump(exclude={"id"})
        if record.id:
            values["id"] = record.id
        return cls(**values)

    def to_record(self) -> FlightRecord:
        return FlightRecord.model_validate(self)

    def __repr__(self):
        return (
            f"<FlightSchedule(id={self.id}, flight='{self.flight_iata}', "
            f"{self.dep_iata}@{self.dep_time} -> {self.arr_iata}@{self.arr_time})>"
        )


Index('idx_schedule_dep_airport_time', FlightSchedule.dep_iata, FlightSchedule.dep_time)
Index('idx_schedule_arr_airport_time', FlightSchedule.arr_iata, FlightSchedule.arr_time)


def create_all_tables(engine):
    """Create the schedule table if it does not exist."""
    Base.metadata.create_all(bind=engine)


def drop_all_tables(engine):
    Base.metadata.drop_all(bind=engine)


__all__ = [
    'Base',
    'FlightSchedule',
    'create_all_tables',
    'drop_all_tables',
]
