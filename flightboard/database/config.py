"""
Database configuration and connection management for the flight board store.

Supported backends:
- SQLite (default, file or in-memory)
- MySQL/MariaDB
- PostgreSQL

The URL comes from DATABASE_URL or is assembled from DB_* variables.
"""

import os
import logging
import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Optional, Dict, Any, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool
from sqlalchemy.exc import SQLAlchemyError

from .models import create_all_tables, drop_all_tables

logger = logging.getLogger(__name__)

# DB_TYPE -> (driver, default port, default user)
SERVER_BACKENDS = {
    'mysql': ('mysql+pymysql', 3306, 'root'),
    'mariadb': ('mysql+pymysql', 3306, 'root'),
    'postgresql': ('postgresql', 5432, 'postgres'),
}

# pool option -> (environment variable, default)
POOL_SETTINGS = {
    'pool_size': ('DB_POOL_SIZE', 10),
    'max_overflow': ('DB_MAX_OVERFLOW', 20),
    'pool_timeout': ('DB_POOL_TIMEOUT', 30),
    'pool_recycle': ('DB_POOL_RECYCLE', 3600),
}


def database_url_from_env() -> str:
    """
    Database URL from DATABASE_URL, or from DB_TYPE plus DB_HOST, DB_PORT,
    DB_NAME, DB_USER and DB_PASSWORD.

    Raises:
        ValueError: For an unsupported DB_TYPE
    """
    database_url = os.getenv('DATABASE_URL')
    if database_url:
        return database_url

    db_type = os.getenv('DB_TYPE', 'sqlite').lower()
    if db_type == 'sqlite':
        db_file = Path(os.getenv('DB_NAME', 'flightboard.db')).resolve()
        return f"sqlite:///{db_file}"

    if db_type not in SERVER_BACKENDS:
        raise ValueError(f"Unsupported database type: {db_type}")

    driver, default_port, default_user = SERVER_BACKENDS[db_type]
    url = URL.create(
        driver,
        username=os.getenv('DB_USER', default_user),
        password=os.getenv('DB_PASSWORD') or None,
        host=os.getenv('DB_HOST', 'localhost'),
        port=int(os.getenv('DB_PORT', default_port)),
        database=os.getenv('DB_NAME', 'flightboard'),
        query={'charset': 'utf8mb4'} if driver.startswith('mysql') else {},
    )
    return url.render_as_string(hide_password=False)


class DatabaseConfig:
    """
    Engine, session factory and table management for one database URL.

    An in-memory SQLite database lives on a single shared connection, so
    sessions against it are serialized.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or database_url_from_env()
        self.url = make_url(self.database_url)
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._is_initialized = False

        backend = self.url.get_backend_name()
        self.db_type = backend if backend in ('sqlite', 'mysql', 'postgresql') else 'unknown'
        self.is_memory = self.db_type == 'sqlite' and self.url.database in (None, '', ':memory:')
        self.engine_kwargs = self._engine_kwargs()
        self._session_lock = threading.RLock() if self.is_memory else None

        logger.info(f"Database configured: {self.safe_url}")

    @property
    def safe_url(self) -> str:
        return self.url.render_as_string(hide_password=True)

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'echo': self.echo}

        if self.db_type == 'sqlite':
            kwargs['connect_args'] = {'check_same_thread': False, 'timeout': 30}
            if self.is_memory:
                kwargs['poolclass'] = StaticPool
            return kwargs

        if self.db_type in ('mysql', 'postgresql'):
            kwargs['poolclass'] = QueuePool
            kwargs['pool_pre_ping'] = True
            for option, (env_name, default) in POOL_SETTINGS.items():
                kwargs[option] = int(os.getenv(env_name, default))
            if self.db_type == 'mysql':
                kwargs['connect_args'] = {'connect_timeout': 30}

        return kwargs

    def initialize(self) -> None:
        """
        Create the engine and session factory.

        Raises:
            SQLAlchemyError: If the database cannot be reached
        """
        if self._is_initialized:
            return

        try:
            self.engine = create_engine(self.url, **self.engine_kwargs)
            if self.db_type == 'sqlite' and not self.is_memory:
                event.listen(self.engine, "connect", _enable_wal)

            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database {self.safe_url}: {e}")
            raise

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        self._is_initialized = True
        logger.info(f"Database engine ready ({self.db_type})")

    def create_tables(self) -> None:
        self.initialize()
        create_all_tables(self.engine)
        logger.info("Database tables created")

    def drop_tables(self) -> None:
        self.initialize()
        drop_all_tables(self.engine)
        logger.info("Database tables dropped")

    def get_session(self) -> Session:
        self.initialize()
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Session with commit on success and rollback on error.

        Usage:
            with db_config.session_scope() as session:
                session.add(row)
        """
        with self._session_lock or nullcontext():
            session = self.get_session()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def health_check(self) -> bool:
        try:
            self.initialize()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def get_connection_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            'database_type': self.db_type,
            'database_url': self.safe_url,
            'is_initialized': self._is_initialized,
        }

        pool = self.engine.pool if self.engine else None
        if isinstance(pool, QueuePool):
            info['pool'] = pool.status()

        return info

    def close(self) -> None:
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")


def _enable_wal(dbapi_connection, connection_record):
    # readers keep going while a sync writes
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def initialize_database(database_url: Optional[str] = None, echo: bool = False,
                        create_tables: bool = True) -> DatabaseConfig:
    """Build, connect and optionally create tables for a DatabaseConfig."""
    db_config = DatabaseConfig(database_url=database_url, echo=echo)
    db_config.initialize()

    if create_tables:
        db_config.create_tables()

    return db_config


__all__ = [
    'DatabaseConfig',
    'database_url_from_env',
    'initialize_database',
]
