# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the snapshot scheduler.
"""

from datetime import datetime, UTC

import pytest

from tenantsnap.backup.retention import SweepResult
from tenantsnap.exceptions import ExternalToolFailure
from tenantsnap.models import BackupArtifact, BackupScope
from tenantsnap.scheduler import FULL_BACKUP_JOB_ID, RETENTION_SWEEP_JOB_ID, SnapshotScheduler


class StubExporter:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0

    async def export_full(self):
        self.calls += 1
        if self.error:
            raise self.error
        artifact = BackupArtifact.begin(BackupScope.FULL)
        artifact.complete("full-backup-2026-03-01T03-00-00-000Z.sql.gz", 10)
        return artifact


class StubRetention:
    def __init__(self):
        self.calls = 0

    async def sweep(self):
        self.calls += 1
        return SweepResult(prefix="", cutoff=datetime.now(UTC))


def trigger_fields(scheduler: SnapshotScheduler, job_id: str) -> dict:
    job = scheduler.scheduler.get_job(job_id)
    return {field.name: str(field) for field in job.trigger.fields}


def test_default_cadence(test_config):
    scheduler = SnapshotScheduler(test_config, StubExporter(), StubRetention())

    full = trigger_fields(scheduler, FULL_BACKUP_JOB_ID)
    sweep = trigger_fields(scheduler, RETENTION_SWEEP_JOB_ID)

    assert (full["hour"], full["minute"], full["day_of_week"]) == ("3", "0", "*")
    assert (sweep["hour"], sweep["minute"], sweep["day_of_week"]) == ("0", "0", "sun")


def test_jobs_never_overlap(test_config):
    scheduler = SnapshotScheduler(test_config, StubExporter(), StubRetention())

    for job_id in (FULL_BACKUP_JOB_ID, RETENTION_SWEEP_JOB_ID):
        job = scheduler.scheduler.get_job(job_id)
        assert job.max_instances == 1
        assert job.coalesce is True


def test_custom_cadence(test_config):
    config = test_config.with_updates(
        full_backup_time="01:30", sweep_day_of_week="wed", sweep_time="22:15"
    )
    scheduler = SnapshotScheduler(config, StubExporter(), StubRetention())

    full = trigger_fields(scheduler, FULL_BACKUP_JOB_ID)
    sweep = trigger_fields(scheduler, RETENTION_SWEEP_JOB_ID)

    assert (full["hour"], full["minute"]) == ("1", "30")
    assert (sweep["day_of_week"], sweep["hour"], sweep["minute"]) == ("wed", "22", "15")


@pytest.mark.asyncio
async def test_start_and_shutdown(test_config):
    scheduler = SnapshotScheduler(test_config, StubExporter(), StubRetention())

    scheduler.start()
    try:
        assert scheduler.running
        next_runs = scheduler.next_run_times()
        assert next_runs[FULL_BACKUP_JOB_ID] is not None
        assert next_runs[FULL_BACKUP_JOB_ID].hour == 3
        assert next_runs[RETENTION_SWEEP_JOB_ID].weekday() == 6
    finally:
        await scheduler.shutdown()

    assert not scheduler.running


@pytest.mark.asyncio
async def test_failed_full_backup_is_logged_not_raised(test_config):
    exporter = StubExporter(error=ExternalToolFailure("pg_dump exited with code 1"))
    scheduler = SnapshotScheduler(test_config, exporter, StubRetention())

    assert await scheduler.run_full_backup_now() is None
    assert exporter.calls == 1


@pytest.mark.asyncio
async def test_run_now_invokes_components(test_config):
    exporter, retention = StubExporter(), StubRetention()
    scheduler = SnapshotScheduler(test_config, exporter, retention)

    artifact = await scheduler.run_full_backup_now()
    await scheduler.run_sweep_now()

    assert artifact.storage_path.startswith("full-backup-")
    assert (exporter.calls, retention.calls) == (1, 1)
