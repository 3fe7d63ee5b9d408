# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for tenantsnap tests.

Provides an in-memory object store, live store and audit fixtures, and
test configuration helpers.
"""

import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Generator, List, Sequence

import pytest
import pytest_asyncio

from tenantsnap.archive.codec import ArchiveCodec
from tenantsnap.audit import AuditEvent, BackupAuditLogger
from tenantsnap.config import SnapshotConfig
from tenantsnap.exceptions import StorageError
from tenantsnap.lease import InMemoryLeaseManager
from tenantsnap.storage import DeleteResult, StoredObject, sort_and_page
from tenantsnap.store import SqliteStore


class MemoryObjectStore:
    """
    In-memory ObjectStore.

    Every call is recorded in .calls as (operation, path-or-prefix).
    Set .fail[operation] to an exception to make that operation raise,
    and add paths to .undeletable to make individual deletes fail.
    """

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.undeletable: set = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail:
            raise self.fail[operation]

    def put(self, path: str, data: bytes = b"x", created_at: datetime | None = None) -> None:
        """Seed an object without recording a call."""
        self.objects[path] = {
            "data": data,
            "created_at": created_at or datetime.now(UTC),
            "content_type": "application/octet-stream",
        }

    async def list(
        self,
        prefix: str = "",
        limit: int | None = None,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = False,
    ) -> List[StoredObject]:
        self.calls.append(("list", prefix))
        self._maybe_fail("list")
        objects = [
            StoredObject(name=name, created_at=obj["created_at"], size=len(obj["data"]))
            for name, obj in self.objects.items()
            if name.startswith(prefix)
        ]
        return sort_and_page(objects, limit, offset, sort_by, descending)

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        self.calls.append(("upload", path))
        self._maybe_fail("upload")
        if not upsert and path in self.objects:
            raise StorageError("Object already exists", details={"path": path})
        self.objects[path] = {
            "data": bytes(data),
            "created_at": datetime.now(UTC),
            "content_type": content_type,
        }

    async def download(self, path: str) -> bytes:
        self.calls.append(("download", path))
        self._maybe_fail("download")
        if path not in self.objects:
            raise StorageError("Object not found", details={"path": path})
        return self.objects[path]["data"]

    async def delete(self, paths: Sequence[str]) -> DeleteResult:
        self.calls.append(("delete", tuple(paths)))
        self._maybe_fail("delete")
        result = DeleteResult()
        for path in paths:
            if path in self.undeletable:
                result.failed[path] = "AccessDenied: object is locked"
            else:
                self.objects.pop(path, None)
                result.deleted.append(path)
        return result

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        self.calls.append(("create_signed_url", path))
        self._maybe_fail("create_signed_url")
        return f"https://storage.test/{path}?expires_in={ttl_seconds}"

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


class MemoryAuditSink:
    """Collects audit events; raises on append when .broken is set."""

    def __init__(self):
        self.events: List[AuditEvent] = []
        self.broken = False

    async def append(self, event: AuditEvent) -> None:
        if self.broken:
            raise RuntimeError("audit sink unavailable")
        self.events.append(event)


class RecordingStore:
    """Wraps a StoreClient and counts every call made to it."""

    def __init__(self, inner):
        self.inner = inner
        self.calls: List[str] = []

    async def fetch_tenant_records(self, kind: str, tenant_id: str):
        self.calls.append("fetch_tenant_records")
        return await self.inner.fetch_tenant_records(kind, tenant_id)

    def transaction(self):
        self.calls.append("transaction")
        return self.inner.transaction()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> SnapshotConfig:
    """Create a test configuration."""
    return SnapshotConfig(
        bucket="test-bucket",
        region="us-east-1",
        database_url="postgresql://backup@localhost/clinic",
        state_path=temp_dir / "state",
        temp_dir=temp_dir / "tmp",
        retention_days=30,
    )


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest_asyncio.fixture
async def live_store(temp_dir: Path) -> SqliteStore:
    """Create an initialized live store."""
    store = SqliteStore(temp_dir / "live.db")
    await store.init()
    return store


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def audit(audit_sink: MemoryAuditSink) -> BackupAuditLogger:
    return BackupAuditLogger(audit_sink)


@pytest.fixture
def codec() -> ArchiveCodec:
    return ArchiveCodec()


@pytest.fixture
def leases() -> InMemoryLeaseManager:
    return InMemoryLeaseManager()


@pytest.fixture
def exporter(test_config, object_store, live_store, codec, audit, leases):
    from tenantsnap.backup.exporter import SnapshotExporter

    return SnapshotExporter(
        config=test_config,
        object_store=object_store,
        store=live_store,
        codec=codec,
        audit=audit,
        leases=leases,
    )


@pytest.fixture
def restore_engine(object_store, live_store, codec, audit, leases):
    from tenantsnap.backup.restore import RestoreEngine

    return RestoreEngine(
        object_store=object_store,
        store=live_store,
        codec=codec,
        audit=audit,
        leases=leases,
    )


async def seed_records(store: SqliteStore, kind: str, records: List[Dict[str, Any]]) -> None:
    """Write records straight into the live store."""
    async with store.transaction() as tx:
        for record in records:
            await tx.upsert(kind, record)


def patient(record_id: str, tenant_id: str = "t1", **extra: Any) -> Dict[str, Any]:
    return {"id": record_id, "tenantId": tenant_id, "name": f"Patient {record_id}", **extra}


def consultation(
    record_id: str,
    patient_id: str,
    tenant_id: str = "t1",
    **extra: Any,
) -> Dict[str, Any]:
    return {"id": record_id, "tenantId": tenant_id, "patientId": patient_id, **extra}


def store_export(
    object_store: MemoryObjectStore,
    tenant_id: str,
    collections: Dict[str, List[Dict[str, Any]]],
    codec: ArchiveCodec | None = None,
    path_tenant: str | None = None,
) -> str:
    """Put a tenant export into the object store and return its path."""
    from tenantsnap.archive.envelope import build_payload, serialize_payload
    from tenantsnap.models import tenant_backup_path

    codec = codec or ArchiveCodec()
    payload = build_payload(tenant_id, collections)
    path = tenant_backup_path(path_tenant or tenant_id, codec.extension)
    object_store.put(path, codec.compress(serialize_payload(payload)))
    return path
