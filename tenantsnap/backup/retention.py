# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention Manager - Rolling-window eviction of old backup artifacts.

A sweep:
1. Lists every artifact under the policy prefix
2. Partitions them into expired (created before now - window) and retained
3. Deletes the expired set with one batch delete
4. Writes one audit event describing what happened

The sweep fails closed: if the listing fails nothing is deleted. Objects
without a creation time are always retained. A sweep never raises; errors
are logged, audited and reported in the SweepResult.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Dict, List

import structlog

from tenantsnap.audit import BackupAuditLogger
from tenantsnap.models import RetentionPolicy
from tenantsnap.storage import ObjectStore

logger = structlog.get_logger()


@dataclass
class SweepResult:
    """Outcome of one retention sweep."""

    prefix: str
    cutoff: datetime
    listed: int = 0
    expired: List[str] = field(default_factory=list)
    retained: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.failed


class RetentionManager:
    """Evicts artifacts that fell out of the retention window."""

    def __init__(
        self,
        object_store: ObjectStore,
        audit: BackupAuditLogger,
        default_policy: RetentionPolicy,
    ):
        self.object_store = object_store
        self.audit = audit
        self.default_policy = default_policy

    async def sweep(
        self,
        policy: RetentionPolicy | None = None,
        now: datetime | None = None,
    ) -> SweepResult:
        policy = policy or self.default_policy
        now = now or datetime.now(UTC)
        cutoff = policy.cutoff(now)
        result = SweepResult(prefix=policy.prefix, cutoff=cutoff)

        logger.info("retention_sweep_started", prefix=policy.prefix, cutoff=cutoff.isoformat())

        try:
            objects = await self.object_store.list(prefix=policy.prefix, sort_by="created_at")
        except Exception as e:
            result.errors.append(f"list failed: {e}")
            logger.error("retention_list_failed", prefix=policy.prefix, error=str(e))
            await self.audit.log_sweep(policy.prefix, [], {}, error=str(e))
            return result

        result.listed = len(objects)
        for obj in objects:
            created_at = _as_utc(obj.created_at)
            if created_at is not None and created_at < cutoff:
                result.expired.append(obj.name)
            else:
                result.retained.append(obj.name)

        if result.expired:
            try:
                outcome = await self.object_store.delete(result.expired)
                result.deleted = list(outcome.deleted)
                result.failed = dict(outcome.failed)
            except Exception as e:
                # Nothing is known to be deleted; report every expired path as failed
                result.errors.append(f"delete failed: {e}")
                result.failed = {name: str(e) for name in result.expired}
                logger.error(
                    "retention_delete_failed",
                    prefix=policy.prefix,
                    count=len(result.expired),
                    error=str(e),
                )

        for name, reason in result.failed.items():
            logger.warning("retention_artifact_not_deleted", path=name, error=reason)

        logger.info(
            "retention_sweep_completed",
            prefix=policy.prefix,
            listed=result.listed,
            expired=len(result.expired),
            deleted=len(result.deleted),
            failed=len(result.failed),
        )

        await self.audit.log_sweep(
            policy.prefix,
            result.deleted,
            result.failed,
            error="; ".join(result.errors) or None,
        )
        return result


def _as_utc(moment: datetime | None) -> datetime | None:
    # Listings from some S3-compatible stores carry naive UTC timestamps
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment
