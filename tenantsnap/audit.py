# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Audit Log - Best-effort record of every terminal backup outcome.

One event is appended per completed/failed export, per restore outcome
and per retention sweep. Writing the audit record never decides the
outcome of the operation: sink failures are logged locally and dropped.
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Protocol, TypedDict

import aiosqlite
import structlog

from tenantsnap.exceptions import TenantSnapError
from tenantsnap.models import BackupArtifact

logger = structlog.get_logger()

SYSTEM_TENANT = "system"
BACKUP_ENTITY = "Backup"


class AuditEvent(TypedDict):
    """One audit record."""

    tenant_id: str
    action: str  # EXPORT, RESTORE, DELETE
    entity_kind: str
    entity_id: str | None
    metadata: Dict[str, Any]


class AuditSink(Protocol):
    async def append(self, event: AuditEvent) -> None:
        ...


class NullAuditSink:
    """Discards events."""

    async def append(self, event: AuditEvent) -> None:
        return None


class SqliteAuditSink:
    """
    Append-only audit table.

    Rows are only ever inserted; nothing in this package updates or
    deletes them.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path

    async def init(self) -> None:
        """
        Create the audit table if it doesn't exist. This is idempotent.
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS audit_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        tenant_id TEXT NOT NULL,
                        action TEXT NOT NULL,
                        entity TEXT NOT NULL,
                        entity_id TEXT,
                        metadata TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)

                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_audit_log_tenant_id
                    ON audit_log(tenant_id)
                """)

                await db.commit()

            logger.info("audit_db_initialized", db_path=str(self.db_path))

        except Exception as e:
            raise TenantSnapError(
                f"Failed to initialize audit database: {e}",
                details={"db_path": str(self.db_path)},
            )

    async def append(self, event: AuditEvent) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO audit_log (tenant_id, action, entity, entity_id, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event["tenant_id"],
                    event["action"],
                    event["entity_kind"],
                    event["entity_id"],
                    json.dumps(event["metadata"], default=str),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()


class BackupAuditLogger:
    """Builds audit events for backup outcomes and writes them best-effort."""

    def __init__(self, sink: AuditSink):
        self.sink = sink

    async def log(self, event: AuditEvent) -> bool:
        """
        Append one event. Returns False if the sink rejected it.
        """
        try:
            await self.sink.append(event)
            return True
        except Exception as e:
            logger.error(
                "audit_write_failed",
                action=event.get("action"),
                entity_id=event.get("entity_id"),
                error=str(e),
            )
            return False

    async def log_artifact(self, artifact: BackupArtifact) -> bool:
        return await self.log(
            AuditEvent(
                tenant_id=artifact.tenant_id or SYSTEM_TENANT,
                action="EXPORT",
                entity_kind=BACKUP_ENTITY,
                entity_id=artifact.id,
                metadata={
                    "type": artifact.scope.value,
                    "status": artifact.status.value,
                    "size": artifact.size_bytes,
                    "path": artifact.storage_path,
                    "error": artifact.error,
                },
            )
        )

    async def log_restore(
        self,
        tenant_id: str,
        storage_path: str,
        state: str,
        restore_id: str,
        counts: Dict[str, Dict[str, int]] | None = None,
        error: str | None = None,
    ) -> bool:
        return await self.log(
            AuditEvent(
                tenant_id=tenant_id,
                action="RESTORE",
                entity_kind=BACKUP_ENTITY,
                entity_id=restore_id,
                metadata={
                    "path": storage_path,
                    "state": state,
                    "counts": counts or {},
                    "error": error,
                },
            )
        )

    async def log_sweep(
        self,
        prefix: str,
        deleted: List[str],
        failed: Dict[str, str],
        error: str | None = None,
    ) -> bool:
        return await self.log(
            AuditEvent(
                tenant_id=SYSTEM_TENANT,
                action="DELETE",
                entity_kind=BACKUP_ENTITY,
                entity_id=None,
                metadata={
                    "prefix": prefix,
                    "deleted": deleted,
                    "failed": failed,
                    "error": error,
                },
            )
        )
