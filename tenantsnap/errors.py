# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for tenantsnap.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the backup bucket environment variable is missing.
    """

    return (
        "Backup bucket is not configured. "
        "Set TENANTSNAP_BUCKET (or S3_BUCKET) or pass bucket=... to SnapshotConfig()."
    )


def explain_missing_database_url() -> str:
    """
    Explain that a full backup needs a direct database connection string.
    """

    return (
        "Full backups need a direct database connection string. "
        "Set DIRECT_URL (or DATABASE_URL) or pass database_url=... to SnapshotConfig()."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that TENANTSNAP_RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid TENANTSNAP_RETENTION_DAYS value: {value!r}. "
        "It must be a positive integer number of days."
    )


def explain_invalid_dump_timeout_env(value: str | None) -> str:
    """
    Explain that TENANTSNAP_DUMP_TIMEOUT is invalid.
    """

    return (
        f"Invalid TENANTSNAP_DUMP_TIMEOUT value: {value!r}. "
        "It must be a positive number of seconds."
    )


def explain_invalid_compression_env(value: str | None) -> str:
    """
    Explain that TENANTSNAP_COMPRESSION is invalid.
    """

    return (
        f"Invalid TENANTSNAP_COMPRESSION value: {value!r}. "
        "Expected 'gzip' or 'zstd'."
    )


def explain_dump_tool_missing(command: str) -> str:
    """
    Explain that the dump utility could not be started.
    """

    return (
        f"Dump utility {command!r} could not be started. "
        "Install the PostgreSQL client tools or set dump_command=... in SnapshotConfig()."
    )
