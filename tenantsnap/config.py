# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenant Snapshot Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while backup jobs are running.
"""

import re
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import List, Tuple


class CodecFormat(str, Enum):
    """Compression format used for backup artifacts."""

    GZIP = "gzip"
    ZSTD = "zstd"


WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for the backup subsystem.

    Connection info for the dump utility (database_url) is optional here:
    it is only required when a full backup actually runs, and its absence
    is reported as a ConfigurationError before any I/O.
    """

    # Required: bucket holding backup artifacts
    bucket: str

    # AWS region (default: us-east-1)
    region: str = "us-east-1"

    # Custom S3 endpoint (MinIO, Supabase storage, localstack)
    endpoint_url: str | None = None

    # Direct database connection string passed to the dump utility
    database_url: str | None = None

    # Dump utility and its fixed arguments; the connection string is appended
    dump_command: Tuple[str, ...] = ("pg_dump", "--no-owner", "--no-acl")

    # Hard timeout for a full dump, in seconds
    dump_timeout_seconds: float = 600.0

    # Read size when streaming dump output
    dump_chunk_size: int = 1024 * 1024

    # Largest compressed dump uploaded; it is held in memory for one PUT
    max_artifact_bytes: int = 5 * 1024 ** 3

    # Artifacts older than this are evicted by the weekly sweep
    retention_days: int = 30

    # Storage prefix the sweep is scoped to ("" = whole bucket)
    retention_prefix: str = ""

    # Daily full backup time in HH:MM (UTC)
    full_backup_time: str = "03:00"

    # Weekly sweep day and time (UTC)
    sweep_day_of_week: str = "sun"
    sweep_time: str = "00:00"

    # Artifact compression
    compression: CodecFormat = CodecFormat.GZIP
    compression_level: int | None = None

    # Directory for local state (audit log, lease table, live store)
    state_path: Path = field(default_factory=lambda: Path("./tenantsnap_state"))

    # Directory for temporary dump files
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    # Leases: file-backed (multi-process) or in-memory (single process)
    use_file_leases: bool = False
    lease_ttl_seconds: float = 900.0
    lease_wait_seconds: float = 0.0

    # Signed download URL lifetime
    signed_url_ttl_seconds: int = 3600

    # Page size for object store listings
    list_page_size: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if self.retention_days < 1:
            errors.append(f"retention_days must be >= 1, got {self.retention_days}")

        if self.dump_timeout_seconds <= 0:
            errors.append(
                f"dump_timeout_seconds must be > 0, got {self.dump_timeout_seconds}"
            )

        if self.dump_chunk_size < 1:
            errors.append(f"dump_chunk_size must be >= 1, got {self.dump_chunk_size}")

        if self.max_artifact_bytes < 1:
            errors.append(f"max_artifact_bytes must be >= 1, got {self.max_artifact_bytes}")

        if not self.dump_command:
            errors.append("dump_command must not be empty")

        if not _validate_cron_time(self.full_backup_time):
            errors.append(
                f"Invalid full_backup_time format: {self.full_backup_time}, expected HH:MM"
            )

        if not _validate_cron_time(self.sweep_time):
            errors.append(f"Invalid sweep_time format: {self.sweep_time}, expected HH:MM")

        if self.sweep_day_of_week not in WEEKDAYS:
            errors.append(
                f"Invalid sweep_day_of_week: {self.sweep_day_of_week}, "
                f"expected one of {', '.join(WEEKDAYS)}"
            )

        if not isinstance(self.compression, CodecFormat):
            errors.append(f"Invalid compression: {self.compression!r}")

        if self.lease_ttl_seconds <= 0:
            errors.append(f"lease_ttl_seconds must be > 0, got {self.lease_ttl_seconds}")

        if self.lease_wait_seconds < 0:
            errors.append(
                f"lease_wait_seconds must be >= 0, got {self.lease_wait_seconds}"
            )

        if self.signed_url_ttl_seconds < 1:
            errors.append(
                f"signed_url_ttl_seconds must be >= 1, got {self.signed_url_ttl_seconds}"
            )

        if self.list_page_size < 1 or self.list_page_size > 1000:
            errors.append(
                f"list_page_size must be between 1 and 1000, got {self.list_page_size}"
            )

        if errors:
            from tenantsnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def retention_window(self) -> timedelta:
        return timedelta(days=self.retention_days)

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapshotConfig(**current)
