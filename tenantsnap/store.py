# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Live Store - The tenant data that exports read and restores write.

StoreClient is the interface the exporter and restore engine depend on.
SqliteStore implements it with one table per entity kind; each row keeps
the primary key and owning tenant as columns and the full record as
canonical JSON, so "unchanged" can be decided by comparing text.
"""

import json
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Protocol

import aiosqlite
import structlog

from tenantsnap.entities import ENTITY_KINDS, EntityKind, get_entity_kind
from tenantsnap.exceptions import AccessDenied, TenantSnapError

logger = structlog.get_logger()


class UpsertOutcome(str, Enum):
    """What an upsert did to the live row."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class StoreTransaction(Protocol):
    async def upsert(self, kind: str, record: Dict[str, Any]) -> UpsertOutcome:
        ...


class StoreClient(Protocol):
    """Read tenant records; write them back inside one transaction."""

    async def fetch_tenant_records(self, kind: str, tenant_id: str) -> List[Dict[str, Any]]:
        ...

    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        ...


def canonical_json(record: Dict[str, Any]) -> str:
    return json.dumps(record, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _resolve_kind(kind: str) -> EntityKind:
    try:
        return get_entity_kind(kind)
    except KeyError as e:
        raise TenantSnapError(str(e.args[0]), details={"kind": kind})


class _SqliteTransaction:
    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def upsert(self, kind: str, record: Dict[str, Any]) -> UpsertOutcome:
        """
        Insert the record, or overwrite the row with the same primary key.

        Raises:
            AccessDenied: If the existing row belongs to another tenant
        """
        table = _resolve_kind(kind).table
        record_id = record["id"]
        tenant_id = record["tenantId"]
        data = canonical_json(record)

        async with self._db.execute(
            f"SELECT tenant_id, data FROM {table} WHERE id = ?", (record_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            await self._db.execute(
                f"INSERT INTO {table} (id, tenant_id, data) VALUES (?, ?, ?)",
                (record_id, tenant_id, data),
            )
            return UpsertOutcome.INSERTED

        if row[0] != tenant_id:
            raise AccessDenied(
                "Record id is owned by another tenant",
                details={"kind": kind, "record_id": record_id},
            )

        if row[1] == data:
            return UpsertOutcome.UNCHANGED

        await self._db.execute(
            f"UPDATE {table} SET data = ? WHERE id = ?",
            (data, record_id),
        )
        return UpsertOutcome.UPDATED


class SqliteStore:
    """StoreClient backed by a SQLite database file."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    async def init(self) -> None:
        """
        Create one table per entity kind. This is idempotent.
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                for kind in ENTITY_KINDS:
                    await db.execute(f"""
                        CREATE TABLE IF NOT EXISTS {kind.table} (
                            id TEXT PRIMARY KEY,
                            tenant_id TEXT NOT NULL,
                            data TEXT NOT NULL
                        )
                    """)
                    await db.execute(f"""
                        CREATE INDEX IF NOT EXISTS idx_{kind.table}_tenant_id
                        ON {kind.table}(tenant_id)
                    """)
                await db.commit()
        except Exception as e:
            raise TenantSnapError(
                f"Failed to initialize live store: {e}",
                details={"db_path": str(self.db_path)},
            )

        logger.info("live_store_initialized", db_path=str(self.db_path))

    async def fetch_tenant_records(self, kind: str, tenant_id: str) -> List[Dict[str, Any]]:
        table = _resolve_kind(kind).table
        records: List[Dict[str, Any]] = []
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT data FROM {table} WHERE tenant_id = ? ORDER BY id",
                (tenant_id,),
            ) as cursor:
                async for row in cursor:
                    records.append(json.loads(row[0]))
        return records

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_SqliteTransaction]:
        """
        One write transaction; commits on clean exit, rolls back on any error.
        """
        db = await aiosqlite.connect(self.db_path, isolation_level=None)
        try:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield _SqliteTransaction(db)
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")
        finally:
            await db.close()
