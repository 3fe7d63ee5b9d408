# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenant Snapshot Models - Backup artifact records and artifact naming.

Artifacts are referenced after completion only by their storage path, so
the path itself carries the scope, the owning tenant and the timestamp:

    full-backup-<ISO8601-dashed>.sql.<ext>
    tenants/tenant-<tenantId>-<ISO8601-dashed>.json.<ext>
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from enum import Enum
from typing import Any, Dict

from ulid import ULID

from tenantsnap.exceptions import AccessDenied, TenantSnapError

TENANT_PREFIX = "tenants/"
FULL_PREFIX = "full-backup-"

_STAMP = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z"
_TENANT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_FULL_PATH_RE = re.compile(rf"^full-backup-(?P<stamp>{_STAMP})\.sql\.(?P<ext>gz|zst)$")
_TENANT_PATH_RE = re.compile(
    rf"^tenants/tenant-(?P<tenant>[A-Za-z0-9_-]+)-(?P<stamp>{_STAMP})\.json\.(?P<ext>gz|zst)$"
)


class BackupScope(str, Enum):
    """What an artifact covers."""

    FULL = "full"
    TENANT = "tenant"


class BackupStatus(str, Enum):
    """Lifecycle status of a backup artifact."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {BackupStatus.COMPLETED, BackupStatus.FAILED}


def generate_backup_id() -> str:
    return f"bkp_{ULID()}"


@dataclass
class BackupArtifact:
    """
    One snapshot record.

    Created when a job starts, transitions exactly once to COMPLETED or
    FAILED, and is immutable afterwards.
    """

    id: str
    scope: BackupScope
    tenant_id: str | None = None
    status: BackupStatus = BackupStatus.PENDING
    size_bytes: int | None = None
    storage_path: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.scope == BackupScope.TENANT) != (self.tenant_id is not None):
            raise ValueError("tenant_id must be set if and only if scope is tenant")

    @classmethod
    def begin(cls, scope: BackupScope, tenant_id: str | None = None) -> "BackupArtifact":
        return cls(
            id=generate_backup_id(),
            scope=scope,
            tenant_id=tenant_id,
            status=BackupStatus.RUNNING,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def complete(self, storage_path: str, size_bytes: int) -> None:
        self._ensure_open()
        self.status = BackupStatus.COMPLETED
        self.storage_path = storage_path
        self.size_bytes = size_bytes
        self.completed_at = datetime.now(UTC)

    def fail(self, error: BaseException | str) -> None:
        self._ensure_open()
        self.status = BackupStatus.FAILED
        self.error = str(error)
        self.completed_at = datetime.now(UTC)

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise TenantSnapError(
                "Backup artifact already reached a terminal state",
                details={"backup_id": self.id, "status": self.status.value},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scope": self.scope.value,
            "tenant_id": self.tenant_id,
            "status": self.status.value,
            "size_bytes": self.size_bytes,
            "storage_path": self.storage_path,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class ArtifactSummary:
    """Listing view of a stored artifact."""

    name: str
    size: int | None
    created_at: datetime | None


@dataclass(frozen=True)
class RetentionPolicy:
    """Evict artifacts under prefix that are older than window."""

    window: timedelta
    prefix: str = ""

    def __post_init__(self) -> None:
        if self.window <= timedelta(0):
            raise ValueError(f"retention window must be positive, got {self.window}")

    def cutoff(self, now: datetime) -> datetime:
        return now - self.window


@dataclass(frozen=True)
class RestoreRequest:
    """Restore tenant_id's data from the artifact at storage_path."""

    tenant_id: str
    storage_path: str


# ============================================================================
# Artifact naming
# ============================================================================

def dashed_timestamp(moment: datetime | None = None) -> str:
    """
    Format a moment as ISO 8601 with ':' and '.' replaced by '-'.

    Example: 2026-03-01T03:00:00.123Z -> 2026-03-01T03-00-00-123Z
    """
    moment = (moment or datetime.now(UTC)).astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H-%M-%S-") + f"{moment.microsecond // 1000:03d}Z"


def check_tenant_id(tenant_id: str) -> str:
    """Reject tenant ids that cannot be embedded safely in a storage path."""
    if not isinstance(tenant_id, str) or not _TENANT_ID_RE.fullmatch(tenant_id):
        raise AccessDenied("Invalid tenant id", details={"tenant_id": tenant_id})
    return tenant_id


def full_backup_path(extension: str, moment: datetime | None = None) -> str:
    return f"{FULL_PREFIX}{dashed_timestamp(moment)}.sql.{extension}"


def tenant_backup_prefix(tenant_id: str) -> str:
    return f"{TENANT_PREFIX}tenant-{check_tenant_id(tenant_id)}-"


def tenant_backup_path(tenant_id: str, extension: str, moment: datetime | None = None) -> str:
    return f"{tenant_backup_prefix(tenant_id)}{dashed_timestamp(moment)}.json.{extension}"


def path_tenant_id(storage_path: str) -> str | None:
    """Return the tenant a path is tagged for, or None if it is not a tenant artifact."""
    if not isinstance(storage_path, str) or ".." in storage_path or storage_path.startswith("/"):
        return None
    match = _TENANT_PATH_RE.fullmatch(storage_path)
    return match.group("tenant") if match else None


def is_tagged_for(storage_path: str, tenant_id: str) -> bool:
    """True only when storage_path is a tenant artifact owned by exactly tenant_id."""
    owner = path_tenant_id(storage_path)
    return owner is not None and owner == tenant_id


def is_full_backup_path(storage_path: str) -> bool:
    return isinstance(storage_path, str) and bool(_FULL_PATH_RE.fullmatch(storage_path))

