"""
Valkey connection settings for the flight board cache.

The same Valkey instance backs both the cached flight boards and the
single-flight refresh locks. Settings come from discrete VALKEY_* variables
or from a single ``VALKEY_URL`` (``valkey://``, ``valkeys://``, ``redis://``
or ``rediss://``), which takes precedence when set.
"""

import os
import logging
from dataclasses import dataclass, fields
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from valkey.connection import SSLConnection

from ..exceptions import ValkeyConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

TLS_SCHEMES = ("valkeys://", "rediss://")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


# field name -> environment variable
_ENV_NAMES = {
    "url": "VALKEY_URL",
    "host": "VALKEY_HOST",
    "port": "VALKEY_PORT",
    "username": "VALKEY_USERNAME",
    "password": "VALKEY_PASSWORD",
    "database": "VALKEY_DATABASE",
    "ssl": "VALKEY_SSL",
    "max_connections": "VALKEY_MAX_CONNECTIONS",
    "socket_timeout": "VALKEY_SOCKET_TIMEOUT",
    "socket_connect_timeout": "VALKEY_SOCKET_CONNECT_TIMEOUT",
    "retry_on_timeout": "VALKEY_RETRY_ON_TIMEOUT",
    "health_check_interval": "VALKEY_HEALTH_CHECK_INTERVAL",
}


@dataclass
class ValkeyConfig:
    """
    Connection settings for the Valkey server.

    Managed deployments usually need ``username`` and ``ssl``; a local
    server needs neither.

    Raises:
        ValkeyConfigurationError: On out-of-range values, or a username
            given without a password
    """

    host: str = "localhost"
    port: int = 6379
    username: Optional[str] = None
    password: Optional[str] = None
    database: int = 0
    ssl: bool = False
    max_connections: int = 10
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    retry_on_timeout: bool = True
    health_check_interval: int = 30
    url: Optional[str] = None

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValkeyConfigurationError(f"Invalid Valkey port: {self.port}")
        if self.database < 0:
            raise ValkeyConfigurationError(f"Invalid Valkey database: {self.database}")
        if self.max_connections < 1:
            raise ValkeyConfigurationError("VALKEY_MAX_CONNECTIONS must be at least 1")
        if self.username and not self.password:
            raise ValkeyConfigurationError("VALKEY_USERNAME requires VALKEY_PASSWORD")
        if self.url and self.url.startswith(TLS_SCHEMES):
            self.ssl = True

    @classmethod
    def from_env(cls) -> "ValkeyConfig":
        """Build a config from VALKEY_* environment variables; unset ones keep their defaults."""
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(_ENV_NAMES[f.name])
            if raw is None or raw == "":
                continue
            if f.type is bool:
                values[f.name] = _as_bool(raw)
            elif f.type is int:
                values[f.name] = int(raw)
            elif f.type is float:
                values[f.name] = float(raw)
            else:
                values[f.name] = raw
        return cls(**values)

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """
        Keyword arguments for a single Valkey connection.

        Responses are always decoded: lock tokens are compared as strings
        and cache envelopes are JSON text.
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.database,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "retry_on_timeout": self.retry_on_timeout,
            "decode_responses": True,
        }

        if self.username:
            kwargs["username"] = self.username
        if self.password:
            kwargs["password"] = self.password

        return kwargs

    def to_connection_pool_kwargs(self) -> Dict[str, Any]:
        """Pool keyword arguments: connection settings, pool size and TLS class."""
        kwargs = self.to_connection_kwargs()
        kwargs["max_connections"] = self.max_connections
        if self.ssl:
            kwargs["connection_class"] = SSLConnection
        return kwargs

    @property
    def display_url(self) -> str:
        scheme = "valkeys" if self.ssl else "valkey"
        credentials = ""
        if self.password:
            credentials = f"{self.username or ''}:***@"
        return f"{scheme}://{credentials}{self.host}:{self.port}/{self.database}"

    def __str__(self) -> str:
        target = "VALKEY_URL" if self.url else self.display_url
        return f"ValkeyConfig({target}, max_connections={self.max_connections})"
