"""
Environment configuration loader with validation for the flight board service.
"""

import os
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..cache.config import ValkeyConfig


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


class FlightBoardConfig(BaseModel):
    """Configuration model for the flight board service with validation."""

    # Upstream schedules API
    airlabs_api_key: str = Field(default="", description="AirLabs API key")
    airlabs_base_url: str = Field(
        default="https://airlabs.co/api/v9", description="AirLabs API base URL"
    )
    airlabs_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Upstream request timeout"
    )
    airlabs_min_interval_seconds: float = Field(
        default=0.0, ge=0, description="Minimum spacing between upstream requests"
    )

    # Persisted store
    database_url: str = Field(
        default="sqlite:///flightboard.db", description="Database connection URL"
    )

    # Valkey
    valkey_url: Optional[str] = Field(default=None, description="Valkey URL, overrides host/port/credentials")
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(default=6379, ge=1, le=65535, description="Valkey server port")
    valkey_username: Optional[str] = Field(default=None, description="Valkey ACL user")
    valkey_password: Optional[str] = Field(default=None, description="Valkey server password")
    valkey_database: int = Field(default=0, ge=0, le=15, description="Valkey database number")
    valkey_ssl: bool = Field(default=False, description="Use TLS to reach Valkey")
    valkey_max_connections: int = Field(default=10, ge=1, description="Maximum Valkey connections")
    valkey_socket_timeout: float = Field(default=5.0, gt=0, description="Valkey socket timeout")
    valkey_socket_connect_timeout: float = Field(
        default=5.0, gt=0, description="Valkey connection timeout"
    )
    use_valkey: bool = Field(
        default=True, description="Disable to keep the cache in process"
    )

    # Freshness policy
    fresh_threshold_seconds: int = Field(default=30, ge=0, description="Age below which entries are fresh")
    cache_ttl_seconds: int = Field(default=120, ge=1, description="Cache entry expiry")
    refresh_lock_ttl_seconds: int = Field(default=60, ge=1, description="Background refresh lock expiry")

    # Concurrency
    refresh_workers: int = Field(default=5, ge=1, description="Background refresh worker tasks")
    refresh_queue_size: int = Field(default=20, ge=1, description="Pending background refresh capacity")
    sync_threads: int = Field(default=10, ge=1, description="Threads for store and upstream I/O")

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("airlabs_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_freshness_window(self) -> "FlightBoardConfig":
        """Fresh entries must expire later than they turn stale."""
        if self.fresh_threshold_seconds >= self.cache_ttl_seconds:
            raise ValueError(
                "FRESH_THRESHOLD_SECONDS must be less than CACHE_TTL_SECONDS"
            )
        return self

    def valkey_config(self) -> ValkeyConfig:
        return ValkeyConfig(
            url=self.valkey_url,
            host=self.valkey_host,
            port=self.valkey_port,
            username=self.valkey_username,
            password=self.valkey_password,
            database=self.valkey_database,
            ssl=self.valkey_ssl,
            max_connections=self.valkey_max_connections,
            socket_timeout=self.valkey_socket_timeout,
            socket_connect_timeout=self.valkey_socket_connect_timeout,
        )


def load_config(env_file: Optional[str] = None) -> FlightBoardConfig:
    """
    Load configuration from environment variables and a .env file.

    Args:
        env_file: Optional path to .env file. Defaults to .env in the current directory.

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "airlabs_api_key": os.getenv("AIRLABS_API_KEY", ""),
        "airlabs_base_url": os.getenv("AIRLABS_BASE_URL", "https://airlabs.co/api/v9"),
        "airlabs_timeout_seconds": os.getenv("AIRLABS_TIMEOUT_SECONDS", "10"),
        "airlabs_min_interval_seconds": os.getenv("AIRLABS_MIN_INTERVAL_SECONDS", "0"),
        "database_url": os.getenv("DATABASE_URL", "sqlite:///flightboard.db"),
        "valkey_url": os.getenv("VALKEY_URL") or None,
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": os.getenv("VALKEY_PORT", "6379"),
        "valkey_username": os.getenv("VALKEY_USERNAME") or None,
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": os.getenv("VALKEY_DATABASE", "0"),
        "valkey_ssl": _flag("VALKEY_SSL", "false"),
        "valkey_max_connections": os.getenv("VALKEY_MAX_CONNECTIONS", "10"),
        "valkey_socket_timeout": os.getenv("VALKEY_SOCKET_TIMEOUT", "5"),
        "valkey_socket_connect_timeout": os.getenv("VALKEY_SOCKET_CONNECT_TIMEOUT", "5"),
        "use_valkey": _flag("USE_VALKEY", "true"),
        "fresh_threshold_seconds": os.getenv("FRESH_THRESHOLD_SECONDS", "30"),
        "cache_ttl_seconds": os.getenv("CACHE_TTL_SECONDS", "120"),
        "refresh_lock_ttl_seconds": os.getenv("REFRESH_LOCK_TTL_SECONDS", "60"),
        "refresh_workers": os.getenv("REFRESH_WORKERS", "5"),
        "refresh_queue_size": os.getenv("REFRESH_QUEUE_SIZE", "20"),
        "sync_threads": os.getenv("SYNC_THREADS", "10"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
    }

    try:
        return FlightBoardConfig(**config_data)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed: {e}") from e


_config: Optional[FlightBoardConfig] = None


def get_config() -> FlightBoardConfig:
    """Get the global configuration instance, loading it if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the global configuration (tests, reloads)."""
    global _config
    _config = None
