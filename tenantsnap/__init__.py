# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenantsnap - Tenant-scoped backup and restore for a multi-tenant data store.

Produces full and per-tenant snapshots in an S3-compatible bucket, evicts
them on a rolling retention window, and restores a tenant all-or-nothing
from its own exports. Package name: tenantsnap.
"""

__version__ = "0.1.0"

# Configuration
from tenantsnap.config import CodecFormat, SnapshotConfig
from tenantsnap.env import create_config_from_env

# Wiring and lifecycle
from tenantsnap.core import (
    BackupSystem,
    initialize_backup_system,
    shutdown_backup_system,
)

# Public operations
from tenantsnap.service import BackupService
from tenantsnap.deadline import Deadline
from tenantsnap.models import (
    ArtifactSummary,
    BackupArtifact,
    BackupScope,
    BackupStatus,
    RestoreRequest,
    RetentionPolicy,
)
from tenantsnap.backup.restore import RestoreResult, RestoreState
from tenantsnap.backup.retention import SweepResult

__all__ = [
    # Version
    "__version__",
    # Configuration
    "CodecFormat",
    "SnapshotConfig",
    "create_config_from_env",
    # Wiring
    "BackupSystem",
    "initialize_backup_system",
    "shutdown_backup_system",
    # Operations
    "BackupService",
    "Deadline",
    # Models
    "ArtifactSummary",
    "BackupArtifact",
    "BackupScope",
    "BackupStatus",
    "RestoreRequest",
    "RetentionPolicy",
    "RestoreResult",
    "RestoreState",
    "SweepResult",
]
