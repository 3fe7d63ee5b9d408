# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenant Leases - Per-key exclusivity for exports and restores.

Two implementations share one interface, hold(key), an async context
manager that releases the lease on every exit path:

- InMemoryLeaseManager: asyncio locks, for a single process
- SqliteLeaseManager: a lease table with holder ids and expiry, shared by
  every process that points at the same database file. A live holder
  renews its lease every third of the TTL; leases that outlive their TTL
  (crashed holder) are taken over.
"""

import asyncio
import time
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, Protocol

import aiosqlite
import structlog
from ulid import ULID

from tenantsnap.exceptions import LeaseUnavailable, TenantSnapError

logger = structlog.get_logger()


def tenant_lease_key(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"


FULL_BACKUP_LEASE_KEY = "full-backup"


class TenantLeaseManager(Protocol):
    """Anything that can hold an exclusive lease on a key."""

    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        ...


class InMemoryLeaseManager:
    """Per-key asyncio locks; waits up to wait_seconds for a busy key."""

    def __init__(self, wait_seconds: float = 0.0):
        self.wait_seconds = wait_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key; the lock is dropped when it reaches 0
        self._users: Dict[str, int] = {}

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await self._acquire(key, lock)
            logger.debug("lease_acquired", key=key)
            try:
                yield
            finally:
                lock.release()
                logger.debug("lease_released", key=key)
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    async def _acquire(self, key: str, lock: asyncio.Lock) -> None:
        if self.wait_seconds <= 0:
            if lock.locked():
                raise LeaseUnavailable("Lease is held by another operation", details={"key": key})
            await lock.acquire()
            return

        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
        except asyncio.TimeoutError:
            raise LeaseUnavailable(
                "Timed out waiting for lease",
                details={"key": key, "wait_seconds": self.wait_seconds},
            )


class SqliteLeaseManager:
    """Leases stored in SQLite so that several processes on one host exclude each other."""

    def __init__(
        self,
        db_path: Path,
        ttl_seconds: float = 900.0,
        wait_seconds: float = 0.0,
        poll_interval: float = 0.1,
    ):
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval

    async def init(self) -> None:
        """
        Create the lease table if it doesn't exist. This is idempotent.
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS leases (
                        key TEXT PRIMARY KEY,
                        holder TEXT NOT NULL,
                        acquired_at TEXT NOT NULL,
                        expires_at REAL NOT NULL
                    )
                """)
                await db.commit()
        except Exception as e:
            raise TenantSnapError(
                f"Failed to initialize lease database: {e}",
                details={"db_path": str(self.db_path)},
            )

    async def _try_acquire(self, key: str, holder: str) -> bool:
        now = time.time()
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                await db.execute(
                    "DELETE FROM leases WHERE key = ? AND expires_at < ?",
                    (key, now),
                )
                cursor = await db.execute(
                    """
                    INSERT OR IGNORE INTO leases (key, holder, acquired_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (key, holder, datetime.now(UTC).isoformat(), now + self.ttl_seconds),
                )
                acquired = cursor.rowcount == 1
                await db.execute("COMMIT")
            except BaseException:
                await db.execute("ROLLBACK")
                raise
        return acquired

    async def _renew(self, key: str, holder: str) -> None:
        """Push expires_at forward every third of the TTL while the lease is held."""
        interval = self.ttl_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        "UPDATE leases SET expires_at = ? WHERE key = ? AND holder = ?",
                        (time.time() + self.ttl_seconds, key, holder),
                    )
                    await db.commit()
            except Exception as e:
                logger.warning("lease_renew_failed", key=key, holder=holder, error=str(e))

    async def _release(self, key: str, holder: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM leases WHERE key = ? AND holder = ?",
                (key, holder),
            )
            await db.commit()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        holder = str(ULID())
        give_up_at = time.monotonic() + self.wait_seconds

        while not await self._try_acquire(key, holder):
            if time.monotonic() >= give_up_at:
                raise LeaseUnavailable(
                    "Lease is held by another process",
                    details={"key": key, "wait_seconds": self.wait_seconds},
                )
            await asyncio.sleep(self.poll_interval)

        logger.debug("lease_acquired", key=key, holder=holder)
        renewer = asyncio.ensure_future(self._renew(key, holder))
        try:
            yield
        finally:
            renewer.cancel()
            await self._release(key, holder)
            logger.debug("lease_released", key=key, holder=holder)
