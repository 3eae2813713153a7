"""
Keyed lock managers.

Balance mutations are serialized per customer and reconciliation mutations
per (truck, date). Keys are always acquired in sorted order so two units
needing overlapping key sets cannot deadlock.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Dict, Iterable, List

from redis.exceptions import LockError

from poultry_backend.app.core.config import LockBackend, Settings
from poultry_backend.app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger("poultry_pos.locks")


def customer_key(customer_id: int) -> str:
    return f"customer:{customer_id}"


def truck_day_key(truck_id: int, day: date) -> str:
    return f"truck-day:{truck_id}:{day.isoformat()}"


class KeyedLockManager:
    """
    In-process locks, one asyncio.Lock per key.

    A key's lock is dropped once no unit holds or waits for it.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def active_keys(self) -> List[str]:
        return sorted(self._locks)

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        for key in ordered:
            self._users[key] = self._users.get(key, 0) + 1
        acquired = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    raise ConcurrencyConflictError("lock acquisition", 1, key=key)
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    self._locks.pop(key, None)


class RedisLockManager:
    """Distributed locks for deployments running several worker processes."""

    def __init__(self, client, timeout: float = 10.0, lease: float = 30.0, namespace: str = "poultry-pos:lock"):
        self.client = client
        self.timeout = timeout
        self.lease = lease
        self.namespace = namespace

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        held = []
        try:
            for key in sorted(set(keys)):
                lock = self.client.lock(
                    f"{self.namespace}:{key}",
                    timeout=self.lease,
                    blocking_timeout=self.timeout,
                )
                if not await lock.acquire():
                    raise ConcurrencyConflictError("lock acquisition", 1, key=key)
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                try:
                    await lock.release()
                except LockError:
                    # Lease ran out while the unit was still running.
                    logger.warning("Lock lease expired before release", extra={"lock": lock.name})


def build_lock_manager(config: Settings):
    """Create the lock manager selected by configuration."""
    if config.lock_backend == LockBackend.REDIS:
        from poultry_backend.app.core.redis_client import redis_client
        return RedisLockManager(redis_client, timeout=config.lock_timeout_seconds, lease=config.lock_lease_seconds)
    return KeyedLockManager(timeout=config.lock_timeout_seconds)
