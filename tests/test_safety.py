# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Critical Safety Tests for tenantsnap.

These tests verify the core safety guarantees:
1. Tenant isolation - A tenant never reads or writes another tenant's data
2. Atomic restore - A failed restore leaves the live store untouched
3. No partial artifacts - A failed export never leaves an object behind
4. Best-effort audit - Audit failures never change an operation's outcome

These tests MUST pass before any production deployment.
"""

from contextlib import asynccontextmanager

import pytest

from tenantsnap.backup.restore import RestoreEngine
from tenantsnap.exceptions import StorageError, TransactionFailure
from tenantsnap.lease import InMemoryLeaseManager
from tenantsnap.models import RestoreRequest
from tenantsnap.store import SqliteStore

from conftest import consultation, patient, seed_records, store_export


class FailingAfterStore:
    """Live store whose transaction raises on the Nth upsert."""

    def __init__(self, inner: SqliteStore, fail_at: int):
        self.inner = inner
        self.fail_at = fail_at

    async def fetch_tenant_records(self, kind, tenant_id):
        return await self.inner.fetch_tenant_records(kind, tenant_id)

    @asynccontextmanager
    async def transaction(self):
        async with self.inner.transaction() as tx:
            yield _FailingTransaction(tx, self.fail_at)


class _FailingTransaction:
    def __init__(self, tx, fail_at: int):
        self.tx = tx
        self.remaining = fail_at

    async def upsert(self, kind, record):
        self.remaining -= 1
        if self.remaining == 0:
            raise RuntimeError("disk I/O error")
        return await self.tx.upsert(kind, record)


# ============================================================================
# Test 1: TENANT ISOLATION
# ============================================================================

@pytest.mark.asyncio
async def test_restore_never_overwrites_another_tenants_row(
    restore_engine, object_store, live_store, audit_sink
):
    """
    CRITICAL: A record id that already belongs to another tenant must not be
    taken over by a restore, and the whole restore must roll back.
    """
    await seed_records(live_store, "consultations", [consultation("c1", "px", tenant_id="t2")])
    path = store_export(
        object_store,
        "t1",
        {"patients": [patient("p1"), patient("p2")], "consultations": [consultation("c1", "p1")]},
    )

    with pytest.raises(TransactionFailure) as exc_info:
        await restore_engine.restore(RestoreRequest("t1", path))

    assert exc_info.value.details["cause"] == "AccessDenied"
    assert await live_store.fetch_tenant_records("consultations", "t2") == [
        consultation("c1", "px", tenant_id="t2")
    ]
    assert await live_store.fetch_tenant_records("patients", "t1") == []
    assert audit_sink.events[-1]["metadata"]["state"] == "rolled_back"


@pytest.mark.asyncio
async def test_export_then_restore_moves_only_own_records(
    exporter, object_store, live_store, temp_dir, codec, audit
):
    """
    CRITICAL: Restoring a tenant's export into an empty store yields exactly
    that tenant's records and nothing of any other tenant.
    """
    await seed_records(live_store, "patients", [patient("p1"), patient("q1", "t2")])
    await seed_records(live_store, "appointments", [
        {"id": "a1", "tenantId": "t1", "patientId": "p1", "startsAt": "2026-05-01T09:00:00Z"},
        {"id": "a2", "tenantId": "t2", "patientId": "q1", "startsAt": "2026-05-01T10:00:00Z"},
    ])
    artifact = await exporter.export_tenant("t1")

    fresh = SqliteStore(temp_dir / "fresh.db")
    await fresh.init()
    engine = RestoreEngine(object_store, fresh, codec, audit, InMemoryLeaseManager())
    result = await engine.restore(RestoreRequest("t1", artifact.storage_path))

    assert result.inserted == 2
    assert await fresh.fetch_tenant_records("patients", "t2") == []
    assert await fresh.fetch_tenant_records("appointments", "t2") == []
    assert await fresh.fetch_tenant_records("appointments", "t1") == (
        await live_store.fetch_tenant_records("appointments", "t1")
    )


# ============================================================================
# Test 2: ATOMIC RESTORE
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("fail_at", [1, 2, 3])
async def test_failed_upsert_rolls_back_everything(
    fail_at, object_store, live_store, codec, audit, audit_sink
):
    """
    CRITICAL: If any upsert fails, no record of the artifact is applied.
    """
    await seed_records(live_store, "patients", [patient("p1", name="Before")])
    path = store_export(
        object_store,
        "t1",
        {"patients": [patient("p1"), patient("p2")], "consultations": [consultation("c1", "p1")]},
    )
    engine = RestoreEngine(
        object_store, FailingAfterStore(live_store, fail_at), codec, audit, InMemoryLeaseManager()
    )

    with pytest.raises(TransactionFailure):
        await engine.restore(RestoreRequest("t1", path))

    assert await live_store.fetch_tenant_records("patients", "t1") == [
        patient("p1", name="Before")
    ]
    assert await live_store.fetch_tenant_records("consultations", "t1") == []
    assert audit_sink.events[-1]["metadata"]["state"] == "rolled_back"


# ============================================================================
# Test 3: NO PARTIAL ARTIFACTS
# ============================================================================

@pytest.mark.asyncio
async def test_existing_artifact_is_never_overwritten(exporter, object_store, codec):
    """
    CRITICAL: Uploads refuse to replace an object at the same path.
    """
    artifact = await exporter.export_tenant("t1")
    original = object_store.objects[artifact.storage_path]["data"]

    with pytest.raises(StorageError):
        await object_store.upload(artifact.storage_path, b"other", codec.content_type)

    assert object_store.objects[artifact.storage_path]["data"] == original


# ============================================================================
# Test 4: BEST-EFFORT AUDIT
# ============================================================================

@pytest.mark.asyncio
async def test_restore_commits_when_audit_sink_is_down(
    restore_engine, object_store, live_store, audit_sink
):
    audit_sink.broken = True
    path = store_export(object_store, "t1", {"patients": [patient("p1")]})

    result = await restore_engine.restore(RestoreRequest("t1", path))

    assert result.inserted == 1
    assert audit_sink.events == []
