# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

create_config_from_env() reads a small set of well-known environment
variables and builds a validated SnapshotConfig from them. Anything not
set falls back to the SnapshotConfig defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping

from tenantsnap.config import CodecFormat, SnapshotConfig
from tenantsnap.errors import (
    explain_invalid_compression_env,
    explain_invalid_dump_timeout_env,
    explain_invalid_retention_days_env,
    explain_missing_bucket_env,
)
from tenantsnap.exceptions import ConfigurationError


def _parse_retention_days(value: str | None) -> int | None:
    if not value:
        return None
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc
    if days < 1:
        raise ConfigurationError(explain_invalid_retention_days_env(value))
    return days


def _parse_dump_timeout(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_dump_timeout_env(value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_dump_timeout_env(value))
    return seconds


def _parse_compression(value: str | None) -> CodecFormat | None:
    if not value:
        return None
    try:
        return CodecFormat(value.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_compression_env(value)) from exc


def create_config_from_env(environ: Mapping[str, str] | None = None) -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Required:
        - TENANTSNAP_BUCKET (or S3_BUCKET): bucket holding backup artifacts

    Optional environment variables:
        - AWS_REGION: AWS region (default: us-east-1)
        - S3_ENDPOINT_URL: Custom S3-compatible endpoint
        - DIRECT_URL (or DATABASE_URL): Connection string for full dumps
        - TENANTSNAP_RETENTION_DAYS: Positive integer (default: 30)
        - TENANTSNAP_COMPRESSION: 'gzip' | 'zstd' (default: gzip)
        - TENANTSNAP_DUMP_TIMEOUT: Seconds (default: 600)
        - TENANTSNAP_FULL_BACKUP_TIME: Daily full backup in HH:MM UTC (default: 03:00)
        - TENANTSNAP_SWEEP_DAY: Weekly sweep day, e.g. 'sun' (default: sun)
        - TENANTSNAP_STATE_PATH: Directory for local state (default: ./tenantsnap_state)
    """
    env = os.environ if environ is None else environ

    bucket = env.get("TENANTSNAP_BUCKET") or env.get("S3_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    kwargs: Dict[str, Any] = {
        "bucket": bucket,
        "region": env.get("AWS_REGION") or "us-east-1",
        "endpoint_url": env.get("S3_ENDPOINT_URL") or None,
        "database_url": env.get("DIRECT_URL") or env.get("DATABASE_URL") or None,
    }

    retention_days = _parse_retention_days(env.get("TENANTSNAP_RETENTION_DAYS"))
    if retention_days is not None:
        kwargs["retention_days"] = retention_days

    compression = _parse_compression(env.get("TENANTSNAP_COMPRESSION"))
    if compression is not None:
        kwargs["compression"] = compression

    dump_timeout = _parse_dump_timeout(env.get("TENANTSNAP_DUMP_TIMEOUT"))
    if dump_timeout is not None:
        kwargs["dump_timeout_seconds"] = dump_timeout

    full_backup_time = env.get("TENANTSNAP_FULL_BACKUP_TIME")
    if full_backup_time:
        kwargs["full_backup_time"] = full_backup_time

    sweep_day = env.get("TENANTSNAP_SWEEP_DAY")
    if sweep_day:
        kwargs["sweep_day_of_week"] = sweep_day.strip().lower()[:3]

    state_path = env.get("TENANTSNAP_STATE_PATH")
    if state_path:
        kwargs["state_path"] = Path(state_path)

    return SnapshotConfig(**kwargs)
