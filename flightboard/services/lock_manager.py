"""
Distributed single-flight lock for background refreshes.

A lock is a Valkey key set with SET NX EX to a token unique to the
acquirer. Release deletes the key only while it still holds that token, in
one atomic script, so an expired holder can never delete a successor's
lock. Contention is not an error: ``acquire`` returns None.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

from ..cache.manager import CacheManager
from ..cache.utils import TTLPreset

logger = logging.getLogger(__name__)


@dataclass
class LockInfo:
    """A lock currently held by this manager."""
    lock_key: str
    token: str
    acquired_at: datetime
    expires_at: datetime
    ttl_seconds: int

    @property
    def is_expired(self) -> bool:
        return datetime.now() > self.expires_at

    @property
    def remaining_ttl_seconds(self) -> float:
        return max(0.0, (self.expires_at - datetime.now()).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lock_key": self.lock_key,
            "token": self.token,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
            "is_expired": self.is_expired,
            "remaining_ttl_seconds": self.remaining_ttl_seconds,
        }


@dataclass
class LockStats:
    acquired: int = 0
    contended: int = 0
    released: int = 0
    release_mismatches: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "acquired": self.acquired,
            "contended": self.contended,
            "released": self.released,
            "release_mismatches": self.release_mismatches,
        }


class DistributedLockManager:
    """
    Token-based mutual exclusion per key, backed by the cache store.

    Features:
    - Atomic acquisition with SET NX EX, one attempt, no waiting
    - Atomic compare-and-delete release
    - Expiry bounds how long a crashed holder blocks others
    """

    def __init__(self, cache_manager: CacheManager):
        self.cache = cache_manager
        self.instance_id = str(uuid.uuid4())[:8]
        self.active_locks: Dict[str, LockInfo] = {}
        self.stats = LockStats()

        logger.info(f"DistributedLockManager initialized with instance ID: {self.instance_id}")

    def _new_token(self) -> str:
        return f"{self.instance_id}:{uuid.uuid4()}"

    async def acquire(self, lock_key: str, ttl_seconds: int = TTLPreset.REFRESH_LOCK) -> Optional[str]:
        """
        Set ``lock_key`` to a fresh token if it is absent.

        Returns:
            The token, or None if the lock is held or the store failed
        """
        ttl = int(ttl_seconds)
        token = self._new_token()

        if not await self.cache.set_if_absent(lock_key, token, ttl):
            self.stats.contended += 1
            logger.debug(f"Lock busy: {lock_key}")
            return None

        acquired_at = datetime.now()
        self.active_locks[lock_key] = LockInfo(
            lock_key=lock_key,
            token=token,
            acquired_at=acquired_at,
            expires_at=acquired_at + timedelta(seconds=ttl),
            ttl_seconds=ttl,
        )
        self.stats.acquired += 1
        logger.debug(f"Lock acquired: {lock_key} (ttl {ttl}s)")
        return token

    async def release(self, lock_key: str, token: str) -> bool:
        """
        Delete ``lock_key`` only if it still holds ``token``.

        Returns:
            True if this call removed the lock
        """
        released = await self.cache.compare_and_delete(lock_key, token)

        held = self.active_locks.get(lock_key)
        if held is not None and held.token == token:
            del self.active_locks[lock_key]

        if released:
            self.stats.released += 1
            logger.debug(f"Lock released: {lock_key}")
        else:
            self.stats.release_mismatches += 1
            logger.debug(f"Lock not released (expired or taken over): {lock_key}")
        return released

    @asynccontextmanager
    async def lock_context(self, lock_key: str, ttl_seconds: int = TTLPreset.REFRESH_LOCK) -> AsyncIterator[Optional[str]]:
        """
        Acquire for the duration of a block.

        Usage:
            async with lock_manager.lock_context(key) as token:
                if token is None:
                    return
                ...
        """
        token = await self.acquire(lock_key, ttl_seconds)
        try:
            yield token
        finally:
            if token is not None:
                await self.release(lock_key, token)

    async def get_lock_status(self, lock_key: str) -> Optional[Dict[str, Any]]:
        """Current holder of ``lock_key``, or None if it is free."""
        token = await self.cache.get_raw(lock_key)
        if token is None:
            return None

        owner_id = token.split(":")[0]
        return {
            "lock_key": lock_key,
            "token": token,
            "owner_id": owner_id,
            "is_owned_by_us": owner_id == self.instance_id,
        }

    def get_active_locks(self) -> List[Dict[str, Any]]:
        return [lock.to_dict() for lock in self.active_locks.values()]

    def cleanup_expired_locks(self) -> int:
        """Forget locally tracked locks whose expiry has passed."""
        expired = [key for key, info in self.active_locks.items() if info.is_expired]
        for key in expired:
            del self.active_locks[key]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired locks")
        return len(expired)
