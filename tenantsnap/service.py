# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Service - Public backup operations for a calling tenant.

These are the operations an admin surface exposes. The caller's tenant
is authenticated elsewhere; this layer only enforces ownership:

- a tenant sees, downloads and restores its own tenant artifacts
- a tenant may also download full artifacts
- a tenant may restore only its own tenant artifacts
"""

from typing import List

import structlog

from tenantsnap.backup.exporter import SnapshotExporter
from tenantsnap.backup.restore import RestoreEngine, RestoreResult
from tenantsnap.config import SnapshotConfig
from tenantsnap.deadline import Deadline
from tenantsnap.exceptions import AccessDenied
from tenantsnap.models import (
    FULL_PREFIX,
    ArtifactSummary,
    BackupArtifact,
    RestoreRequest,
    is_full_backup_path,
    is_tagged_for,
    tenant_backup_prefix,
)
from tenantsnap.storage import ObjectStore

logger = structlog.get_logger()


class BackupService:
    """Tenant-facing backup operations with ownership checks."""

    def __init__(
        self,
        config: SnapshotConfig,
        object_store: ObjectStore,
        exporter: SnapshotExporter,
        restore_engine: RestoreEngine,
    ):
        self.config = config
        self.object_store = object_store
        self.exporter = exporter
        self.restore_engine = restore_engine

    async def list_backups(
        self,
        tenant_id: str | None = None,
        limit: int = 50,
    ) -> List[ArtifactSummary]:
        """
        Newest-first artifacts: the tenant's exports, or full backups when
        tenant_id is None.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        if tenant_id is None:
            objects = await self.object_store.list(
                prefix=FULL_PREFIX, limit=limit, sort_by="created_at", descending=True
            )
            objects = [obj for obj in objects if is_full_backup_path(obj.name)]
        else:
            objects = await self.object_store.list(
                prefix=tenant_backup_prefix(tenant_id),
                sort_by="created_at",
                descending=True,
            )
            # The prefix of tenant "a" also matches tenant "a-b"
            objects = [obj for obj in objects if is_tagged_for(obj.name, tenant_id)][:limit]

        return [
            ArtifactSummary(name=obj.name, size=obj.size, created_at=obj.created_at)
            for obj in objects
        ]

    async def create_tenant_backup(
        self,
        tenant_id: str,
        deadline: Deadline | None = None,
    ) -> BackupArtifact:
        return await self.exporter.export_tenant(tenant_id, deadline=deadline)

    async def create_full_backup(self, deadline: Deadline | None = None) -> BackupArtifact:
        return await self.exporter.export_full(deadline=deadline)

    async def get_download_url(self, tenant_id: str, path: str) -> str:
        """
        Signed URL for an artifact the tenant may read.

        Raises:
            AccessDenied: If path is neither the tenant's export nor a full backup
        """
        if not (is_tagged_for(path, tenant_id) or is_full_backup_path(path)):
            logger.warning("download_access_denied", tenant_id=tenant_id, path=path)
            raise AccessDenied(
                "Backup does not belong to this tenant",
                details={"tenant_id": tenant_id, "path": path},
            )
        return await self.object_store.create_signed_url(
            path, ttl_seconds=self.config.signed_url_ttl_seconds
        )

    async def restore_tenant_backup(
        self,
        tenant_id: str,
        path: str,
        deadline: Deadline | None = None,
    ) -> RestoreResult:
        return await self.restore_engine.restore(
            RestoreRequest(tenant_id=tenant_id, storage_path=path), deadline=deadline
        )
