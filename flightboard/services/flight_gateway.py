"""
Freshness-tiered read path for airport flight boards.

``FlightCacheGateway.get_flights`` classifies the cached board by age:

- miss:               reconcile both directions synchronously, cache, return
- fresh   (< 30s):    return the cached board, no side effects
- stale   (30s-120s): return the cached board, queue one background refresh
- expired (>= 120s):  evict, then take the miss path

Background refreshes are single-flight per airport through the distributed
lock, and run on a bounded worker pool. Blocking reconciliation and store
reads run on a thread pool so the two directions proceed concurrently.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..cache.manager import CacheManager
from ..cache.utils import (
    CacheKeyBuilder,
    CacheKeyPrefix,
    TTLPreset,
    flights_key,
    lock_key,
    normalize_airport,
)
from ..database.repository import FlightRepository
from ..exceptions import UpstreamError
from ..models.cache import CacheEntry, SyncResult
from ..models.enums import Direction, FreshnessTier
from ..models.flight import FlightBoard, FlightRecord
from .lock_manager import DistributedLockManager
from .reconciliation import ReconciliationEngine
from .refresh_worker import RefreshWorkerPool

logger = logging.getLogger(__name__)


@dataclass
class GatewayStats:
    """Read-path counters."""
    fresh_hits: int = 0
    stale_hits: int = 0
    expired: int = 0
    misses: int = 0
    sync_refreshes: int = 0
    background_triggered: int = 0
    background_completed: int = 0
    background_failed: int = 0
    lock_denied: int = 0
    upstream_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class FlightCacheGateway:
    """
    Serves flight boards from the cache store, refreshing from upstream as
    the freshness policy requires.
    """

    def __init__(
        self,
        cache: CacheManager,
        lock_manager: DistributedLockManager,
        engine: ReconciliationEngine,
        repository: FlightRepository,
        executor: Optional[ThreadPoolExecutor] = None,
        fresh_threshold: int = TTLPreset.FRESH_THRESHOLD,
        cache_ttl: int = TTLPreset.FLIGHT_BOARD,
        lock_ttl: int = TTLPreset.REFRESH_LOCK,
        refresh_workers: int = 5,
        refresh_queue_size: int = 20,
        sync_threads: int = 10,
        clock: Optional[Callable[[], float]] = None,
    ):
        if fresh_threshold >= cache_ttl:
            raise ValueError("fresh_threshold must be less than cache_ttl")

        self.cache = cache
        self.lock_manager = lock_manager
        self.engine = engine
        self.repository = repository
        self.fresh_threshold = int(fresh_threshold)
        self.cache_ttl = int(cache_ttl)
        self.lock_ttl = int(lock_ttl)
        self.clock = clock or cache.clock
        self.stats = GatewayStats()

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=sync_threads, thread_name_prefix="flightboard-sync"
        )
        self.refresh_pool = RefreshWorkerPool(
            self.refresh_in_background, workers=refresh_workers, queue_size=refresh_queue_size
        )

    # ------------------------------------------------------------------
    # Freshness policy
    # ------------------------------------------------------------------

    def classify(self, entry: Optional[CacheEntry], now: float) -> FreshnessTier:
        if entry is None:
            return FreshnessTier.MISS
        age = entry.age_seconds(now)
        if age < self.fresh_threshold:
            return FreshnessTier.FRESH
        if age < self.cache_ttl:
            return FreshnessTier.STALE
        return FreshnessTier.EXPIRED

    async def get_flights_payload(self, airport_code: str) -> Dict[str, Any]:
        """
        Departures and arrivals for an airport as the cached JSON payload.

        Raises:
            UpstreamError: If a synchronous refresh cannot reach the upstream
        """
        airport = normalize_airport(airport_code)
        key = flights_key(airport)

        entry = await self.cache.get_with_timestamp(key)
        tier = self.classify(entry, self.clock())

        if tier is FreshnessTier.FRESH:
            self.stats.fresh_hits += 1
            logger.debug(f"Fresh cache hit for {airport}")
            return entry.payload

        if tier is FreshnessTier.STALE:
            self.stats.stale_hits += 1
            logger.info(f"Stale cache hit for {airport}, queueing background refresh")
            self._trigger_background_refresh(airport)
            return entry.payload

        if tier is FreshnessTier.EXPIRED:
            self.stats.expired += 1
            logger.info(f"Cache entry for {airport} expired, evicting")
            await self.cache.delete(key)
        else:
            self.stats.misses += 1
            logger.info(f"Cache miss for {airport}")

        payload = await self._refresh(airport)
        self.stats.sync_refreshes += 1
        return payload

    async def get_flights(self, airport_code: str) -> FlightBoard:
        return FlightBoard.from_payload(await self.get_flights_payload(airport_code))

    # ------------------------------------------------------------------
    # Refresh paths
    # ------------------------------------------------------------------

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    async def _reconcile_both(self, airport: str) -> List[SyncResult]:
        """Sync both directions concurrently; raises only after both finished."""
        outcomes = await asyncio.gather(
            self._run_blocking(self.engine.sync, Direction.DEPARTURES, airport),
            self._run_blocking(self.engine.sync, Direction.ARRIVALS, airport),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if isinstance(outcome, UpstreamError):
                    self.stats.upstream_failures += 1
                raise outcome
        return list(outcomes)

    async def _read_board(self, airport: str) -> FlightBoard:
        departures, arrivals = await asyncio.gather(
            self._run_blocking(self.repository.find_by_departure_airport, airport),
            self._run_blocking(self.repository.find_by_arrival_airport, airport),
        )
        return FlightBoard(departures=departures, arrivals=arrivals)

    async def _refresh(self, airport: str) -> Dict[str, Any]:
        """Reconcile, read back, cache with a fresh timestamp, return the payload."""
        await self._reconcile_both(airport)
        board = await self._read_board(airport)
        payload = board.to_payload()
        await self.cache.set_with_ttl(flights_key(airport), payload, self.cache_ttl)
        logger.info(
            f"Refreshed {airport}: {len(board.departures)} departures, {len(board.arrivals)} arrivals"
        )
        return payload

    def _trigger_background_refresh(self, airport: str) -> None:
        self.stats.background_triggered += 1
        self.refresh_pool.submit(airport)

    async def refresh_in_background(self, airport_code: str) -> None:
        """
        Single-flight refresh of one airport's board.

        Returns silently when another refresh holds the lock. Failures are
        logged and swallowed; the stale board stays in place.
        """
        airport = normalize_airport(airport_code)
        key = lock_key(airport)

        token = await self.lock_manager.acquire(key, self.lock_ttl)
        if token is None:
            self.stats.lock_denied += 1
            logger.debug(f"Refresh for {airport} already in flight")
            return

        logger.info(f"Background refresh started for {airport}")
        try:
            await self._refresh(airport)
            self.stats.background_completed += 1
            logger.info(f"Background refresh finished for {airport}")
        except Exception:
            self.stats.background_failed += 1
            logger.error(f"Background refresh failed for {airport}", exc_info=True)
        finally:
            await self.lock_manager.release(key, token)

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    async def clear_cache(self, airport_code: str) -> bool:
        """Evict one airport's cached board."""
        airport = normalize_airport(airport_code)
        deleted = await self.cache.delete(flights_key(airport))
        logger.info(f"Cleared cache for {airport}: {deleted}")
        return deleted

    async def clear_all_caches(self) -> int:
        """Evict every cached board; locks are left alone."""
        deleted = await self.cache.clear_pattern(CacheKeyBuilder.build_pattern(CacheKeyPrefix.FLIGHTS))
        logger.info(f"Cleared {deleted} cached boards")
        return deleted

    async def force_refresh(self, airport_code: str) -> FlightBoard:
        """Evict and refresh synchronously regardless of age."""
        airport = normalize_airport(airport_code)
        await self.cache.delete(flights_key(airport))
        payload = await self._refresh(airport)
        self.stats.sync_refreshes += 1
        return FlightBoard.from_payload(payload)

    async def sync_direction(self, direction: Direction, airport_code: str) -> SyncResult:
        """Reconcile one direction without touching the cache."""
        return await self._run_blocking(self.engine.sync, direction, normalize_airport(airport_code))

    async def get_departures(self, airport_code: str) -> List[FlightRecord]:
        """Sync departures, then read them from the store."""
        airport = normalize_airport(airport_code)
        await self.sync_direction(Direction.DEPARTURES, airport)
        return await self._run_blocking(self.repository.find_by_departure_airport, airport)

    async def get_arrivals(self, airport_code: str) -> List[FlightRecord]:
        """Sync arrivals, then read them from the store."""
        airport = normalize_airport(airport_code)
        await self.sync_direction(Direction.ARRIVALS, airport)
        return await self._run_blocking(self.repository.find_by_arrival_airport, airport)

    async def live_snapshot(self, airport_code: str) -> FlightBoard:
        """Both directions straight from upstream; nothing is stored or cached."""
        airport = normalize_airport(airport_code)
        upstream = self.engine.upstream

        departures_raw, arrivals_raw = await asyncio.gather(
            self._run_blocking(upstream.fetch, Direction.DEPARTURES.filter_key, airport),
            self._run_blocking(upstream.fetch, Direction.ARRIVALS.filter_key, airport),
        )

        def mapped(raw_records):
            return [r for r in (FlightRecord.from_upstream(raw) for raw in raw_records) if r is not None]

        return FlightBoard(departures=mapped(departures_raw), arrivals=mapped(arrivals_raw))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "gateway": self.stats.to_dict(),
            "refresh_pool": self.refresh_pool.stats.to_dict(),
            "locks": self.lock_manager.stats.to_dict(),
        }

    async def close(self) -> None:
        """Drain pending background refreshes and release threads."""
        await self.refresh_pool.close()
        if self._owns_executor:
            self.executor.shutdown(wait=True)
