"""
Cache store for flight boards with graceful degradation.

Wraps Valkey with the operations the flight board needs: timestamped
payload writes, timestamped reads, eviction, and the two lock primitives
(SET NX EX and an atomic compare-and-delete).

Every Valkey failure is logged, counted and turned into an "absent" or
False result, so an unavailable cache degrades to always fetching fresh
data instead of failing requests. When no client is configured the manager
keeps entries in process with the same TTL semantics.
"""

import fnmatch
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from valkey.exceptions import ConnectionError, TimeoutError, ResponseError

from ..models.cache import CacheEntry
from .client import ValkeyClient
from ..exceptions import ValkeyConnectionError, ValkeyTimeoutError

logger = logging.getLogger(__name__)

_CACHE_ERRORS = (ConnectionError, TimeoutError, ResponseError, ValkeyConnectionError, ValkeyTimeoutError)

# Delete the key only while it still holds the caller's token
COMPARE_AND_DELETE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@dataclass
class CacheStats:
    """Cache operation counters."""

    hit_count: int = 0
    miss_count: int = 0
    set_count: int = 0
    delete_count: int = 0
    error_count: int = 0
    connection_errors: int = 0
    timeout_errors: int = 0
    other_errors: int = 0
    degraded_operations: int = 0
    start_time: datetime = field(default_factory=datetime.now)

    @property
    def hit_ratio(self) -> float:
        total_reads = self.hit_count + self.miss_count
        return self.hit_count / total_reads if total_reads > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "set_count": self.set_count,
            "delete_count": self.delete_count,
            "error_count": self.error_count,
            "hit_ratio": self.hit_ratio,
            "connection_errors": self.connection_errors,
            "timeout_errors": self.timeout_errors,
            "other_errors": self.other_errors,
            "degraded_operations": self.degraded_operations,
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
        }


class CacheManager:
    """
    Cache store for timestamped flight boards and refresh locks.

    Features:
    - Payload and write timestamp stored as one envelope in a single SET
    - SET NX EX and Lua compare-and-delete for token locks
    - Circuit breaker after consecutive Valkey failures
    - In-process store when no Valkey client is configured
    """

    def __init__(
        self,
        client: Optional[ValkeyClient] = None,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Connected or connectable ValkeyClient; None keeps entries in process
            circuit_breaker_threshold: Consecutive failures before the circuit opens
            circuit_breaker_timeout: Seconds before retrying after the circuit opens
            clock: Source of epoch seconds for write timestamps and local expiry
        """
        self.client = client
        self.clock = clock
        self.stats = CacheStats()

        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_timeout = circuit_breaker_timeout
        self.consecutive_failures = 0
        self.circuit_open_time: Optional[float] = None
        self.is_circuit_open = False

        # key -> (serialized value, expires_at)
        self._local: Dict[str, Tuple[str, Optional[float]]] = {}
        self._local_lock = threading.Lock()

        logger.info("CacheManager initialized (%s)", "valkey" if client else "in-process")

    @property
    def is_local(self) -> bool:
        return self.client is None

    async def initialize(self) -> None:
        """Connect the Valkey client; a failure is logged and later reads degrade."""
        if self.client is None:
            return
        try:
            await self.client.connect()
            logger.info("CacheManager connected to Valkey")
        except ValkeyConnectionError as e:
            logger.warning(f"Failed to connect to Valkey, cache reads will miss: {e}")

    # ------------------------------------------------------------------
    # Error accounting and circuit breaker
    # ------------------------------------------------------------------

    def _record_error(self, error: Exception) -> None:
        self.stats.error_count += 1
        self.consecutive_failures += 1

        if isinstance(error, (ConnectionError, ValkeyConnectionError)):
            self.stats.connection_errors += 1
        elif isinstance(error, (TimeoutError, ValkeyTimeoutError)):
            self.stats.timeout_errors += 1
        else:
            self.stats.other_errors += 1

        if self.consecutive_failures >= self.circuit_breaker_threshold and not self.is_circuit_open:
            self.is_circuit_open = True
            self.circuit_open_time = self.clock()
            logger.warning(f"Circuit breaker opened after {self.consecutive_failures} consecutive failures")

    def _record_success(self) -> None:
        self.consecutive_failures = 0
        if self.is_circuit_open:
            self.is_circuit_open = False
            self.circuit_open_time = None
            logger.info("Circuit breaker closed after successful operation")

    def _is_circuit_breaker_open(self) -> bool:
        if not self.is_circuit_open or self.circuit_open_time is None:
            return False
        if self.clock() - self.circuit_open_time >= self.circuit_breaker_timeout:
            logger.info("Circuit breaker timeout expired, allowing retry")
            return False
        return True

    async def _execute(self, name: str, operation: Callable[[], Awaitable[Any]], default: Any) -> Any:
        """Run a Valkey operation; failures are logged and yield ``default``."""
        if self._is_circuit_breaker_open():
            self.stats.degraded_operations += 1
            logger.debug(f"Circuit breaker open, skipping cache {name}")
            return default

        try:
            result = await operation()
            self._record_success()
            return result
        except _CACHE_ERRORS as e:
            logger.warning(f"Cache {name} failed: {e}")
            self._record_error(e)
            self.stats.degraded_operations += 1
            return default

    # ------------------------------------------------------------------
    # In-process store
    # ------------------------------------------------------------------

    def _local_get(self, key: str) -> Optional[str]:
        with self._local_lock:
            item = self._local.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self.clock() >= expires_at:
                del self._local[key]
                return None
            return value

    def _local_set(self, key: str, value: str, ttl_seconds: Optional[int], only_if_absent: bool = False) -> bool:
        with self._local_lock:
            now = self.clock()
            current = self._local.get(key)
            if only_if_absent and current is not None:
                expires_at = current[1]
                if expires_at is None or now < expires_at:
                    return False
            self._local[key] = (value, now + ttl_seconds if ttl_seconds else None)
            return True

    def _local_delete(self, key: str, expected: Optional[str] = None) -> bool:
        with self._local_lock:
            item = self._local.get(key)
            if item is None:
                return False
            if expected is not None and item[0] != expected:
                return False
            del self._local[key]
            return True

    # ------------------------------------------------------------------
    # Cache store operations
    # ------------------------------------------------------------------

    async def set_with_ttl(self, key: str, payload: Dict[str, Any], ttl_seconds: int) -> bool:
        """
        Write a payload with a fresh timestamp and an expiry.

        Returns:
            True if the entry was written
        """
        entry = CacheEntry(payload=payload, written_at=self.clock())
        serialized = json.dumps(entry.to_envelope())

        if self.is_local:
            self._local_set(key, serialized, ttl_seconds)
            self.stats.set_count += 1
            return True

        async def operation():
            await self.client.ensure_connection()
            result = self.client.client.set(key, serialized, ex=int(ttl_seconds))
            self.stats.set_count += 1
            return bool(result)

        return bool(await self._execute("set", operation, False))

    async def get_with_timestamp(self, key: str) -> Optional[CacheEntry]:
        """
        Read a payload together with its write timestamp.

        Returns:
            CacheEntry, or None on a miss, an unreadable entry or a cache failure
        """
        if self.is_local:
            raw = self._local_get(key)
        else:
            async def operation():
                await self.client.ensure_connection()
                return self.client.client.get(key)

            raw = await self._execute("get", operation, None)

        if raw is None:
            self.stats.miss_count += 1
            return None

        try:
            entry = CacheEntry.from_envelope(json.loads(raw))
        except (json.JSONDecodeError, TypeError):
            entry = None

        if entry is None:
            logger.warning(f"Ignoring unreadable cache entry: {key}")
            self.stats.miss_count += 1
            return None

        self.stats.hit_count += 1
        return entry

    async def delete(self, key: str) -> bool:
        """Evict a key. Returns True if something was deleted."""
        if self.is_local:
            deleted = self._local_delete(key)
        else:
            async def operation():
                await self.client.ensure_connection()
                return bool(self.client.client.delete(key))

            deleted = bool(await self._execute("delete", operation, False))

        if deleted:
            self.stats.delete_count += 1
        return deleted

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the count."""
        if self.is_local:
            with self._local_lock:
                keys = [k for k in self._local if fnmatch.fnmatch(k, pattern)]
                for k in keys:
                    del self._local[k]
            self.stats.delete_count += len(keys)
            return len(keys)

        async def operation():
            await self.client.ensure_connection()
            keys = list(self.client.client.scan_iter(match=pattern))
            if not keys:
                return 0
            return self.client.client.delete(*keys)

        deleted = await self._execute("clear", operation, 0) or 0
        self.stats.delete_count += deleted
        return deleted

    # ------------------------------------------------------------------
    # Lock primitives
    # ------------------------------------------------------------------

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET key value NX EX ttl. False if the key exists or the cache failed."""
        if self.is_local:
            return self._local_set(key, value, ttl_seconds, only_if_absent=True)

        async def operation():
            await self.client.ensure_connection()
            return bool(self.client.client.set(key, value, nx=True, ex=int(ttl_seconds)))

        return bool(await self._execute("set-nx", operation, False))

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete ``key`` only if it still holds ``expected``."""
        if self.is_local:
            return self._local_delete(key, expected=expected)

        async def operation():
            await self.client.ensure_connection()
            return bool(self.client.client.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, expected))

        return bool(await self._execute("compare-and-delete", operation, False))

    async def get_raw(self, key: str) -> Optional[str]:
        """Current raw value of a key (used for lock status)."""
        if self.is_local:
            return self._local_get(key)

        async def operation():
            await self.client.ensure_connection()
            return self.client.client.get(key)

        return await self._execute("get", operation, None)

    # ------------------------------------------------------------------
    # Diagnostics and lifecycle
    # ------------------------------------------------------------------

    async def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "backend": "in-process" if self.is_local else "valkey",
            "circuit_breaker_open": self.is_circuit_open,
            "consecutive_failures": self.consecutive_failures,
        })
        if self.is_local:
            stats["local_entries"] = len(self._local)
        else:
            stats["connection_info"] = await self.client.get_connection_info()
        return stats

    async def health_check(self) -> Dict[str, Any]:
        """Round-trip a sentinel entry through the store."""
        check_key = "HEALTH:check"
        written = await self.set_with_ttl(check_key, {"ok": True}, 10)
        entry = await self.get_with_timestamp(check_key)
        await self.delete(check_key)

        healthy = written and entry is not None
        return {
            "status": "healthy" if healthy else "degraded",
            "backend": "in-process" if self.is_local else "valkey",
            "circuit_breaker_open": self.is_circuit_open,
        }

    async def close(self) -> None:
        if self.client:
            await self.client.disconnect()
        with self._local_lock:
            self._local.clear()
        logger.info("CacheManager closed")
