# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for artifact records and artifact naming.
"""

from datetime import datetime, timezone, timedelta

import pytest

from tenantsnap.exceptions import AccessDenied, TenantSnapError
from tenantsnap.models import (
    BackupArtifact,
    BackupScope,
    BackupStatus,
    dashed_timestamp,
    full_backup_path,
    is_full_backup_path,
    is_tagged_for,
    path_tenant_id,
    tenant_backup_path,
)

MOMENT = datetime(2026, 3, 1, 3, 0, 5, 123456, tzinfo=timezone.utc)


# ============================================================================
# Artifact lifecycle
# ============================================================================

def test_artifact_completes_once():
    artifact = BackupArtifact.begin(BackupScope.TENANT, "t1")
    assert artifact.status == BackupStatus.RUNNING

    artifact.complete("tenants/tenant-t1-x.json.gz", 42)

    assert artifact.status == BackupStatus.COMPLETED
    assert artifact.completed_at is not None
    with pytest.raises(TenantSnapError):
        artifact.fail("late failure")
    assert artifact.error is None


def test_failed_artifact_keeps_error():
    artifact = BackupArtifact.begin(BackupScope.FULL)

    artifact.fail(RuntimeError("pg_dump exited with code 1"))

    assert artifact.status == BackupStatus.FAILED
    assert artifact.error == "pg_dump exited with code 1"
    assert artifact.to_dict()["status"] == "failed"
    with pytest.raises(TenantSnapError):
        artifact.complete("full-backup-x.sql.gz", 1)


def test_tenant_scope_requires_tenant_id():
    with pytest.raises(ValueError):
        BackupArtifact.begin(BackupScope.TENANT)
    with pytest.raises(ValueError):
        BackupArtifact.begin(BackupScope.FULL, "t1")


def test_backup_ids_are_unique_and_prefixed():
    ids = {BackupArtifact.begin(BackupScope.FULL).id for _ in range(50)}

    assert len(ids) == 50
    assert all(i.startswith("bkp_") for i in ids)


# ============================================================================
# Naming
# ============================================================================

def test_dashed_timestamp():
    assert dashed_timestamp(MOMENT) == "2026-03-01T03-00-05-123Z"


def test_dashed_timestamp_converts_to_utc():
    local = MOMENT.astimezone(timezone(timedelta(hours=5, minutes=30)))
    assert dashed_timestamp(local) == "2026-03-01T03-00-05-123Z"


def test_paths():
    assert full_backup_path("gz", MOMENT) == "full-backup-2026-03-01T03-00-05-123Z.sql.gz"
    assert (
        tenant_backup_path("clinic_42", "zst", MOMENT)
        == "tenants/tenant-clinic_42-2026-03-01T03-00-05-123Z.json.zst"
    )


def test_tenant_ids_with_dashes_parse_exactly():
    path = tenant_backup_path("org-7-east", "gz", MOMENT)

    assert path_tenant_id(path) == "org-7-east"
    assert is_tagged_for(path, "org-7-east")
    assert not is_tagged_for(path, "org-7")
    assert not is_tagged_for(path, "east")


@pytest.mark.parametrize("tenant_id", ["", "a/b", "..", "t 1", "t1\n", "x" * 129])
def test_unsafe_tenant_ids_rejected(tenant_id):
    with pytest.raises(AccessDenied):
        tenant_backup_path(tenant_id, "gz")


def test_full_backup_path_detection():
    assert is_full_backup_path(full_backup_path("gz", MOMENT))
    assert not is_full_backup_path("full-backup-latest.sql.gz")
    assert not is_full_backup_path(tenant_backup_path("t1", "gz", MOMENT))
    assert path_tenant_id(full_backup_path("gz", MOMENT)) is None
