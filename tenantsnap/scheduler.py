# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Scheduler - Cron cadence for full backups and retention sweeps.

Two APScheduler jobs:
- daily at full_backup_time (UTC): SnapshotExporter.export_full
- weekly on sweep_day_of_week at sweep_time (UTC): RetentionManager.sweep

Jobs only trigger and log. A failed run is already recorded by the
exporter's audit event and is not retried until the next cadence. A run
never overlaps itself (max_instances=1) and missed runs collapse into one.
"""

import asyncio
from datetime import datetime
from typing import Dict

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tenantsnap.backup.exporter import SnapshotExporter
from tenantsnap.backup.retention import RetentionManager, SweepResult
from tenantsnap.config import SnapshotConfig
from tenantsnap.models import BackupArtifact

logger = structlog.get_logger()

FULL_BACKUP_JOB_ID = "tenantsnap_full_backup"
RETENTION_SWEEP_JOB_ID = "tenantsnap_retention_sweep"


class SnapshotScheduler:
    """Owns an AsyncIOScheduler with the full-backup and sweep jobs."""

    def __init__(
        self,
        config: SnapshotConfig,
        exporter: SnapshotExporter,
        retention: RetentionManager,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.config = config
        self.exporter = exporter
        self.retention = retention
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._add_jobs()

    def _add_jobs(self) -> None:
        hour, minute = map(int, self.config.full_backup_time.split(":"))
        self.scheduler.add_job(
            self.run_full_backup_now,
            trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
            id=FULL_BACKUP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        hour, minute = map(int, self.config.sweep_time.split(":"))
        self.scheduler.add_job(
            self.run_sweep_now,
            trigger=CronTrigger(
                day_of_week=self.config.sweep_day_of_week,
                hour=hour,
                minute=minute,
                timezone="UTC",
            ),
            id=RETENTION_SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop."""
        if self.scheduler.running:
            return
        self.scheduler.start()
        logger.info(
            "scheduler_started",
            full_backup_time=self.config.full_backup_time,
            sweep=f"{self.config.sweep_day_of_week} {self.config.sweep_time}",
            next_runs={k: v.isoformat() if v else None for k, v in self.next_run_times().items()},
        )

    async def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler and return once it reports not running.

        AsyncIOScheduler queues the stop on the event loop, so yield to the
        loop until it has run.
        """
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=wait)
        while self.scheduler.running:
            await asyncio.sleep(0)
        logger.info("scheduler_stopped")

    async def run_full_backup_now(self) -> BackupArtifact | None:
        """Run the full-backup job body; failures are logged, not raised."""
        logger.info("scheduled_full_backup_starting")
        try:
            artifact = await self.exporter.export_full()
        except Exception as e:
            logger.error("scheduled_full_backup_failed", error=str(e))
            return None
        logger.info(
            "scheduled_full_backup_completed",
            backup_id=artifact.id,
            path=artifact.storage_path,
            size=artifact.size_bytes,
        )
        return artifact

    async def run_sweep_now(self) -> SweepResult:
        """Run the retention job body. Sweeps do not raise."""
        logger.info("scheduled_sweep_starting")
        result = await self.retention.sweep()
        logger.info(
            "scheduled_sweep_completed",
            deleted=len(result.deleted),
            failed=len(result.failed),
            errors=len(result.errors),
        )
        return result

    def next_run_times(self) -> Dict[str, datetime | None]:
        times: Dict[str, datetime | None] = {}
        for job_id in (FULL_BACKUP_JOB_ID, RETENTION_SWEEP_JOB_ID):
            job = self.scheduler.get_job(job_id)
            times[job_id] = getattr(job, "next_run_time", None) if job else None
        return times
