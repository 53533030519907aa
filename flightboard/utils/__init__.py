"""
Configuration and logging helpers.
"""

from .config import FlightBoardConfig, load_config, get_config, reset_config
from .logging import configure_logging

__all__ = [
    "FlightBoardConfig",
    "load_config",
    "get_config",
    "reset_config",
    "configure_logging",
]
