"""
Application wiring: builds every component of the flight board service
from a FlightBoardConfig.
"""

import logging
from typing import Optional

from .cache.client import ValkeyClient
from .cache.manager import CacheManager
from .database.config import DatabaseConfig
from .database.repository import SqlAlchemyFlightRepository
from .services.airlabs_client import AirLabsClient
from .services.flight_gateway import FlightCacheGateway
from .services.lock_manager import DistributedLockManager
from .services.reconciliation import ReconciliationEngine
from .utils.config import FlightBoardConfig, get_config

logger = logging.getLogger(__name__)


class FlightBoardApp:
    """
    Owns the cache, database, upstream client and gateway.

    Usage:
        async with FlightBoardApp() as app:
            board = await app.gateway.get_flights("SFO")
    """

    def __init__(self, config: Optional[FlightBoardConfig] = None):
        self.config = config or get_config()

        valkey_client = ValkeyClient(self.config.valkey_config()) if self.config.use_valkey else None
        self.cache = CacheManager(client=valkey_client)

        self.database = DatabaseConfig(database_url=self.config.database_url)
        self.repository = SqlAlchemyFlightRepository(self.database)

        self.upstream = AirLabsClient.from_config(self.config)
        self.engine = ReconciliationEngine(self.upstream, self.repository)
        self.lock_manager = DistributedLockManager(self.cache)

        self.gateway = FlightCacheGateway(
            cache=self.cache,
            lock_manager=self.lock_manager,
            engine=self.engine,
            repository=self.repository,
            fresh_threshold=self.config.fresh_threshold_seconds,
            cache_ttl=self.config.cache_ttl_seconds,
            lock_ttl=self.config.refresh_lock_ttl_seconds,
            refresh_workers=self.config.refresh_workers,
            refresh_queue_size=self.config.refresh_queue_size,
            sync_threads=self.config.sync_threads,
        )

    async def start(self) -> None:
        self.database.initialize()
        self.database.create_tables()
        await self.cache.initialize()
        logger.info("Flight board service started")

    async def close(self) -> None:
        await self.gateway.close()
        await self.cache.close()
        self.upstream.close()
        self.database.close()
        logger.info("Flight board service stopped")

    async def __aenter__(self) -> "FlightBoardApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
