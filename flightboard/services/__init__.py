"""
Flight board services: upstream client, reconciliation, locking and the
freshness-tiered read gateway.
"""

from .airlabs_client import AirLabsClient
from .lock_manager import DistributedLockManager, LockInfo, LockStats
from .reconciliation import ReconciliationEngine, UpstreamClient
from .refresh_worker import RefreshWorkerPool, WorkerPoolStats
from .flight_gateway import FlightCacheGateway, GatewayStats

__all__ = [
    "AirLabsClient",
    "DistributedLockManager",
    "LockInfo",
    "LockStats",
    "ReconciliationEngine",
    "UpstreamClient",
    "RefreshWorkerPool",
    "WorkerPoolStats",
    "FlightCacheGateway",
    "GatewayStats",
]
