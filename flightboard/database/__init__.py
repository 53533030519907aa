"""
Persisted store for observed flight legs.
"""

from .models import Base, FlightSchedule, create_all_tables, drop_all_tables
from .config import DatabaseConfig, initialize_database
from .repository import FlightRepository, SqlAlchemyFlightRepository

__all__ = [
    # Models
    'Base',
    'FlightSchedule',
    'create_all_tables',
    'drop_all_tables',

    # Configuration
    'DatabaseConfig',
    'initialize_database',

    # Repository
    'FlightRepository',
    'SqlAlchemyFlightRepository',
]
