# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Exports, retention and restore.
"""

from tenantsnap.backup.dump import DumpRunner, DumpResult, temporary_dump_file

from tenantsnap.backup.exporter import SnapshotExporter

from tenantsnap.backup.retention import RetentionManager, SweepResult

from tenantsnap.backup.restore import (
    RestoreEngine,
    RestoreResult,
    RestoreState,
)

__all__ = [
    # Dump
    "DumpRunner",
    "DumpResult",
    "temporary_dump_file",
    # Export
    "SnapshotExporter",
    # Retention
    "RetentionManager",
    "SweepResult",
    # Restore
    "RestoreEngine",
    "RestoreResult",
    "RestoreState",
]
