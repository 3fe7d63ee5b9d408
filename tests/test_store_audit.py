# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the SQLite live store and the audit log.
"""

import json
from pathlib import Path

import aiosqlite
import pytest

from tenantsnap.audit import BackupAuditLogger, NullAuditSink, SqliteAuditSink
from tenantsnap.exceptions import AccessDenied, TenantSnapError
from tenantsnap.models import BackupArtifact, BackupScope
from tenantsnap.store import SqliteStore, UpsertOutcome

from conftest import MemoryAuditSink, patient, seed_records


# ============================================================================
# Live store
# ============================================================================

@pytest.mark.asyncio
async def test_upsert_outcomes(live_store: SqliteStore):
    async with live_store.transaction() as tx:
        assert await tx.upsert("patients", patient("p1")) == UpsertOutcome.INSERTED
        assert await tx.upsert("patients", patient("p1")) == UpsertOutcome.UNCHANGED
        assert await tx.upsert("patients", patient("p1", phone="555")) == UpsertOutcome.UPDATED

    records = await live_store.fetch_tenant_records("patients", "t1")
    assert records == [patient("p1", phone="555")]


@pytest.mark.asyncio
async def test_key_order_does_not_count_as_change(live_store: SqliteStore):
    await seed_records(live_store, "patients", [{"id": "p1", "tenantId": "t1", "name": "A"}])

    async with live_store.transaction() as tx:
        outcome = await tx.upsert("patients", {"name": "A", "tenantId": "t1", "id": "p1"})

    assert outcome == UpsertOutcome.UNCHANGED


@pytest.mark.asyncio
async def test_fetch_is_scoped_to_tenant(live_store: SqliteStore):
    await seed_records(live_store, "patients", [patient("p2"), patient("p1"), patient("q1", "t2")])

    records = await live_store.fetch_tenant_records("patients", "t1")

    assert [r["id"] for r in records] == ["p1", "p2"]
    assert await live_store.fetch_tenant_records("appointments", "t1") == []


@pytest.mark.asyncio
async def test_foreign_row_is_never_overwritten(live_store: SqliteStore):
    await seed_records(live_store, "patients", [patient("p1", "t2")])

    with pytest.raises(AccessDenied):
        async with live_store.transaction() as tx:
            await tx.upsert("patients", patient("p1", "t1"))

    assert await live_store.fetch_tenant_records("patients", "t2") == [patient("p1", "t2")]
    assert await live_store.fetch_tenant_records("patients", "t1") == []


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(live_store: SqliteStore):
    with pytest.raises(RuntimeError):
        async with live_store.transaction() as tx:
            await tx.upsert("patients", patient("p1"))
            raise RuntimeError("boom")

    assert await live_store.fetch_tenant_records("patients", "t1") == []


@pytest.mark.asyncio
async def test_unknown_kind_rejected(live_store: SqliteStore):
    with pytest.raises(TenantSnapError):
        await live_store.fetch_tenant_records("invoices", "t1")


@pytest.mark.asyncio
async def test_store_init_is_idempotent(temp_dir: Path):
    store = SqliteStore(temp_dir / "live.db")
    await store.init()
    await seed_records(store, "patients", [patient("p1")])

    await store.init()

    assert len(await store.fetch_tenant_records("patients", "t1")) == 1


# ============================================================================
# Audit log
# ============================================================================

@pytest.mark.asyncio
async def test_sqlite_audit_sink_appends_rows(temp_dir: Path):
    sink = SqliteAuditSink(temp_dir / "audit.db")
    await sink.init()
    audit = BackupAuditLogger(sink)

    artifact = BackupArtifact.begin(BackupScope.TENANT, "t1")
    artifact.complete("tenants/tenant-t1-2026-03-01T03-00-00-000Z.json.gz", 120)
    assert await audit.log_artifact(artifact)
    assert await audit.log_sweep("", deleted=["a", "b"], failed={})

    async with aiosqlite.connect(temp_dir / "audit.db") as db:
        async with db.execute(
            "SELECT tenant_id, action, entity, entity_id, metadata FROM audit_log ORDER BY id"
        ) as cursor:
            rows = await cursor.fetchall()

    assert [(r[0], r[1], r[2]) for r in rows] == [
        ("t1", "EXPORT", "Backup"),
        ("system", "DELETE", "Backup"),
    ]
    assert rows[0][3] == artifact.id
    assert json.loads(rows[0][4])["size"] == 120
    assert json.loads(rows[1][4])["deleted"] == ["a", "b"]


@pytest.mark.asyncio
async def test_full_backup_events_use_system_tenant():
    sink = MemoryAuditSink()
    audit = BackupAuditLogger(sink)
    artifact = BackupArtifact.begin(BackupScope.FULL)
    artifact.fail("pg_dump exited with code 1")

    await audit.log_artifact(artifact)

    event = sink.events[0]
    assert event["tenant_id"] == "system"
    assert event["metadata"]["type"] == "full"
    assert event["metadata"]["error"] == "pg_dump exited with code 1"


@pytest.mark.asyncio
async def test_audit_failure_is_reported_not_raised():
    sink = MemoryAuditSink()
    sink.broken = True
    audit = BackupAuditLogger(sink)

    written = await audit.log_restore("t1", "tenants/x.json.gz", "committed", "rst_1")

    assert written is False
    assert sink.events == []


@pytest.mark.asyncio
async def test_null_sink_accepts_and_discards_events():
    audit = BackupAuditLogger(NullAuditSink())

    assert await audit.log_sweep("", deleted=[], failed={})
