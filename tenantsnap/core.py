# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenantsnap Core - Wiring and lifecycle of the backup subsystem.

initialize_backup_system() builds every component from a SnapshotConfig,
creates the local state databases, and returns them in a BackupSystem.
Collaborators can be injected (tests, or an application that already
owns its live store) and are only created when not supplied.
"""

from dataclasses import dataclass

import structlog

from tenantsnap.archive.codec import ArchiveCodec
from tenantsnap.audit import AuditSink, BackupAuditLogger, SqliteAuditSink
from tenantsnap.backup.dump import DumpRunner
from tenantsnap.backup.exporter import SnapshotExporter
from tenantsnap.backup.restore import RestoreEngine
from tenantsnap.backup.retention import RetentionManager
from tenantsnap.config import SnapshotConfig
from tenantsnap.lease import InMemoryLeaseManager, SqliteLeaseManager, TenantLeaseManager
from tenantsnap.models import RetentionPolicy
from tenantsnap.scheduler import SnapshotScheduler
from tenantsnap.service import BackupService
from tenantsnap.storage import ObjectStore, S3ObjectStore
from tenantsnap.store import SqliteStore, StoreClient

logger = structlog.get_logger()


@dataclass
class BackupSystem:
    """Every component of a running backup subsystem."""

    config: SnapshotConfig
    object_store: ObjectStore
    store: StoreClient
    codec: ArchiveCodec
    audit: BackupAuditLogger
    leases: TenantLeaseManager
    exporter: SnapshotExporter
    retention: RetentionManager
    restore_engine: RestoreEngine
    scheduler: SnapshotScheduler
    service: BackupService


async def initialize_backup_system(
    config: SnapshotConfig,
    store: StoreClient | None = None,
    object_store: ObjectStore | None = None,
    audit_sink: AuditSink | None = None,
    leases: TenantLeaseManager | None = None,
) -> BackupSystem:
    """
    Initialize the backup subsystem.

    Creates config.state_path and, for every collaborator not supplied,
    its default implementation:
    - live.db: SqliteStore
    - audit.db: SqliteAuditSink
    - leases.db: SqliteLeaseManager (only with use_file_leases)
    - S3ObjectStore for config.bucket

    The scheduler is built but not started.
    """
    config.state_path.mkdir(parents=True, exist_ok=True)

    if store is None:
        sqlite_store = SqliteStore(config.state_path / "live.db")
        await sqlite_store.init()
        store = sqlite_store

    if audit_sink is None:
        sqlite_sink = SqliteAuditSink(config.state_path / "audit.db")
        await sqlite_sink.init()
        audit_sink = sqlite_sink

    if leases is None:
        if config.use_file_leases:
            file_leases = SqliteLeaseManager(
                config.state_path / "leases.db",
                ttl_seconds=config.lease_ttl_seconds,
                wait_seconds=config.lease_wait_seconds,
            )
            await file_leases.init()
            leases = file_leases
        else:
            leases = InMemoryLeaseManager(wait_seconds=config.lease_wait_seconds)

    if object_store is None:
        object_store = S3ObjectStore(
            bucket=config.bucket,
            region=config.region,
            endpoint_url=config.endpoint_url,
            page_size=config.list_page_size,
        )

    codec = ArchiveCodec(config.compression, config.compression_level)
    audit = BackupAuditLogger(audit_sink)

    exporter = SnapshotExporter(
        config=config,
        object_store=object_store,
        store=store,
        codec=codec,
        audit=audit,
        leases=leases,
        dump_runner=DumpRunner(config.dump_command, chunk_size=config.dump_chunk_size),
    )
    retention = RetentionManager(
        object_store=object_store,
        audit=audit,
        default_policy=RetentionPolicy(
            window=config.retention_window, prefix=config.retention_prefix
        ),
    )
    restore_engine = RestoreEngine(
        object_store=object_store,
        store=store,
        codec=codec,
        audit=audit,
        leases=leases,
    )
    scheduler = SnapshotScheduler(config, exporter, retention)
    service = BackupService(config, object_store, exporter, restore_engine)

    logger.info(
        "backup_system_initialized",
        bucket=config.bucket,
        compression=codec.format.value,
        state_path=str(config.state_path),
        file_leases=config.use_file_leases,
    )

    return BackupSystem(
        config=config,
        object_store=object_store,
        store=store,
        codec=codec,
        audit=audit,
        leases=leases,
        exporter=exporter,
        retention=retention,
        restore_engine=restore_engine,
        scheduler=scheduler,
        service=service,
    )


async def shutdown_backup_system(system: BackupSystem) -> None:
    """
    Stop scheduled jobs. In-flight operations are not interrupted.
    """
    await system.scheduler.shutdown(wait=False)
    logger.info("backup_system_shutdown")
