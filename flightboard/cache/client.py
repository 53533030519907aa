"""
Valkey client with connection pooling, periodic health checks and
reconnection with exponential backoff.
"""

import asyncio
import logging
import time
from typing import Optional, Any, Dict

import valkey
from valkey.connection import ConnectionPool
from valkey.exceptions import ConnectionError, TimeoutError

from ..exceptions import ValkeyConnectionError
from .config import ValkeyConfig

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Pooled Valkey connection shared by the cache store and the lock manager.

    ``ensure_connection`` pings at most once per health-check interval and
    reconnects after a failed ping, so callers can invoke it before every
    command.
    """

    max_attempts = 5
    base_delay = 1.0
    max_delay = 30.0

    def __init__(self, config: Optional[ValkeyConfig] = None):
        self.config = config or ValkeyConfig.from_env()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[valkey.Valkey] = None
        self._healthy = False
        self._last_ping = 0.0

        logger.info(f"Valkey client configured: {self.config}")

    def _build_pool(self) -> ConnectionPool:
        if self.config.url:
            return ConnectionPool.from_url(
                self.config.url,
                decode_responses=True,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_connect_timeout,
            )
        return ConnectionPool(**self.config.to_connection_pool_kwargs())

    def _backoff(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    async def connect(self) -> None:
        """
        Open the pool and ping, retrying with exponential backoff.

        Raises:
            ValkeyConnectionError: If every attempt fails
        """
        if self.is_connected:
            return

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._pool = self._build_pool()
                self._client = valkey.Valkey(connection_pool=self._pool)
                self._ping()
            except (ConnectionError, TimeoutError, ValkeyConnectionError, OSError) as e:
                last_error = e
                logger.warning(f"Valkey connection attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    delay = self._backoff(attempt)
                    logger.info(f"Retrying Valkey connection in {delay:.1f}s")
                    await asyncio.sleep(delay)
                continue

            self._healthy = True
            self._last_ping = time.time()
            logger.info(f"Connected to Valkey after {attempt} attempt(s)")
            return

        message = f"Could not reach Valkey after {self.max_attempts} attempts: {last_error}"
        logger.error(message)
        raise ValkeyConnectionError(message) from last_error

    async def disconnect(self) -> None:
        """Release every pooled connection."""
        pool, self._pool = self._pool, None
        self._client = None
        self._healthy = False
        if pool is None:
            return
        try:
            pool.disconnect()
            logger.info("Disconnected from Valkey")
        except (ConnectionError, OSError) as e:
            logger.warning(f"Error while disconnecting from Valkey: {e}")

    def _ping(self) -> None:
        if self._client is None:
            raise ValkeyConnectionError("Client not initialized")
        try:
            ok = self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            raise ValkeyConnectionError(f"Ping failed: {e}") from e
        if not ok:
            raise ValkeyConnectionError("Ping returned False")

    async def health_check(self, force: bool = False) -> bool:
        """True if the connection answered a ping within the health-check interval."""
        now = time.time()
        if not force and now - self._last_ping < self.config.health_check_interval:
            return self._healthy

        self._last_ping = now
        if self._client is None:
            self._healthy = False
            return False

        try:
            self._ping()
            self._healthy = True
        except ValkeyConnectionError as e:
            logger.warning(f"Valkey health check failed: {e}")
            self._healthy = False
        return self._healthy

    async def ensure_connection(self) -> None:
        """
        Reconnect when the last health check failed.

        Raises:
            ValkeyConnectionError: If the connection cannot be re-established
        """
        if await self.health_check():
            return
        logger.info("Valkey connection unhealthy, reconnecting")
        await self.disconnect()
        await self.connect()

    @property
    def is_connected(self) -> bool:
        return self._healthy and self._client is not None

    @property
    def client(self) -> valkey.Valkey:
        """
        The underlying Valkey client.

        Raises:
            ValkeyConnectionError: If connect() has not succeeded
        """
        if not self.is_connected:
            raise ValkeyConnectionError("Client not connected. Call connect() first.")
        return self._client

    async def get_connection_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "target": str(self.config),
            "is_connected": self.is_connected,
            "last_ping": self._last_ping,
        }
        if not self.is_connected:
            return info

        try:
            server = self._client.info("server")
            clients = self._client.info("clients")
        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Could not read Valkey server info: {e}")
            info["server_info_error"] = str(e)
            return info

        info["server_version"] = server.get("valkey_version") or server.get("redis_version", "unknown")
        info["connected_clients"] = clients.get("connected_clients", 0)
        return info

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
