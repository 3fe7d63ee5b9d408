# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Exporter - Produces full dumps and tenant exports.

Both paths follow the same lifecycle:
1. Create a RUNNING BackupArtifact
2. Produce the compressed artifact locally (temp file or memory)
3. Upload it once, only after it is complete and its size is known
4. Mark the artifact COMPLETED or FAILED and write an audit event

A failed export never leaves anything in the object store: the upload is
the last step and is a single non-overwriting write.
"""

import aiofiles
import structlog

from tenantsnap.archive.codec import ArchiveCodec, compress_payload, compression_stats
from tenantsnap.archive.envelope import build_payload, serialize_payload
from tenantsnap.audit import BackupAuditLogger
from tenantsnap.backup.dump import DumpRunner, temporary_dump_file
from tenantsnap.config import SnapshotConfig
from tenantsnap.deadline import Deadline
from tenantsnap.entities import APPLY_ORDER
from tenantsnap.errors import explain_missing_database_url
from tenantsnap.exceptions import ConfigurationError, StorageError, TenantSnapError
from tenantsnap.lease import FULL_BACKUP_LEASE_KEY, TenantLeaseManager, tenant_lease_key
from tenantsnap.models import (
    BackupArtifact,
    BackupScope,
    check_tenant_id,
    full_backup_path,
    tenant_backup_path,
)
from tenantsnap.storage import ObjectStore
from tenantsnap.store import StoreClient

logger = structlog.get_logger()


class SnapshotExporter:
    """Writes backup artifacts to the object store."""

    def __init__(
        self,
        config: SnapshotConfig,
        object_store: ObjectStore,
        store: StoreClient,
        codec: ArchiveCodec,
        audit: BackupAuditLogger,
        leases: TenantLeaseManager,
        dump_runner: DumpRunner | None = None,
    ):
        self.config = config
        self.object_store = object_store
        self.store = store
        self.codec = codec
        self.audit = audit
        self.leases = leases
        self.dump_runner = dump_runner or DumpRunner(
            config.dump_command, chunk_size=config.dump_chunk_size
        )

    async def export_full(self, deadline: Deadline | None = None) -> BackupArtifact:
        """
        Dump the whole store, compress it, and upload it.

        The dump is bounded by dump_timeout_seconds and by deadline,
        whichever expires first. The compressed dump is streamed to a temp
        file and then read back for a single PUT, so memory use is bounded by
        max_artifact_bytes (default 5 GiB, the S3 single-PUT limit).

        Returns:
            The COMPLETED artifact

        Raises:
            ConfigurationError: If no database_url is configured (before any I/O)
            ExternalToolFailure: If the dump utility fails or times out
            StorageError: If the dump exceeds max_artifact_bytes or the upload fails
        """
        deadline = (deadline or Deadline.never()).within(self.config.dump_timeout_seconds)
        artifact = BackupArtifact.begin(BackupScope.FULL)
        path = full_backup_path(self.codec.extension, artifact.started_at)

        logger.info("export_full_started", backup_id=artifact.id, path=path)

        try:
            if not self.config.database_url:
                raise ConfigurationError(explain_missing_database_url())

            async with self.leases.hold(FULL_BACKUP_LEASE_KEY):
                async with temporary_dump_file(
                    self.config.temp_dir, suffix=f".sql.{self.codec.extension}"
                ) as local_path:
                    result = await self.dump_runner.dump_to(
                        self.config.database_url, local_path, self.codec, deadline
                    )

                    if result.compressed_bytes > self.config.max_artifact_bytes:
                        raise StorageError(
                            "Compressed dump exceeds max_artifact_bytes",
                            details={
                                "path": path,
                                "size": result.compressed_bytes,
                                "max_artifact_bytes": self.config.max_artifact_bytes,
                            },
                        )

                    async with aiofiles.open(local_path, "rb") as f:
                        data = await f.read()

                    deadline.check("upload")
                    await self.object_store.upload(
                        path, data, content_type=self.codec.content_type, upsert=False
                    )

            artifact.complete(path, len(data))

        except Exception as e:
            await self._fail(artifact, e)
            raise _as_backup_error(e, path)

        logger.info(
            "export_full_completed",
            backup_id=artifact.id,
            path=path,
            **compression_stats(result.raw_bytes, result.compressed_bytes),
        )
        await self.audit.log_artifact(artifact)
        return artifact

    async def export_tenant(
        self,
        tenant_id: str,
        deadline: Deadline | None = None,
    ) -> BackupArtifact:
        """
        Export every entity collection of one tenant as a compressed envelope.

        Each collection is read with its own query; there is no snapshot
        isolation across collections beyond what the live store provides.

        Returns:
            The COMPLETED artifact

        Raises:
            AccessDenied: If tenant_id cannot be used in a storage path
            LeaseUnavailable: If another export/restore holds the tenant
            SchemaMismatch / CorruptArchive: If live records fail validation
            StorageError: If reading or uploading fails
        """
        check_tenant_id(tenant_id)
        deadline = deadline or Deadline.never()
        artifact = BackupArtifact.begin(BackupScope.TENANT, tenant_id)
        path = tenant_backup_path(tenant_id, self.codec.extension, artifact.started_at)

        logger.info("export_tenant_started", backup_id=artifact.id, tenant_id=tenant_id)

        try:
            async with self.leases.hold(tenant_lease_key(tenant_id)):
                collections = {}
                for kind in APPLY_ORDER:
                    collections[kind] = await deadline.run(
                        self.store.fetch_tenant_records(kind, tenant_id),
                        stage=f"read_{kind}",
                    )

                payload = build_payload(tenant_id, collections, artifact.started_at)
                raw = serialize_payload(payload)
                compressed = await compress_payload(self.codec, raw)

                deadline.check("upload")
                await self.object_store.upload(
                    path, compressed, content_type=self.codec.content_type, upsert=False
                )

            artifact.complete(path, len(compressed))

        except Exception as e:
            await self._fail(artifact, e)
            raise _as_backup_error(e, path)

        logger.info(
            "export_tenant_completed",
            backup_id=artifact.id,
            tenant_id=tenant_id,
            path=path,
            counts=payload.counts(),
            **compression_stats(len(raw), len(compressed)),
        )
        await self.audit.log_artifact(artifact)
        return artifact

    async def _fail(self, artifact: BackupArtifact, error: Exception) -> None:
        artifact.fail(error)
        logger.error(
            "export_failed",
            backup_id=artifact.id,
            scope=artifact.scope.value,
            tenant_id=artifact.tenant_id,
            error=str(error),
        )
        await self.audit.log_artifact(artifact)


def _as_backup_error(error: Exception, path: str) -> Exception:
    """Typed errors pass through; anything else becomes a StorageError."""
    if isinstance(error, TenantSnapError):
        return error
    wrapped = StorageError(f"Export failed: {error}", details={"path": path})
    wrapped.__cause__ = error
    return wrapped
