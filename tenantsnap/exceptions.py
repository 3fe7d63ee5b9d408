# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenant Snapshot Exceptions - Custom exceptions for the tenantsnap package.
"""


class TenantSnapError(Exception):
    """Base exception for all tenantsnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TenantSnapError):
    """Raised when configuration is invalid or required connection info is missing."""

    pass


class ExternalToolFailure(TenantSnapError):
    """Raised when the dump utility exits non-zero, times out, or cannot start."""

    pass


class StorageError(TenantSnapError):
    """Raised when an object store list/upload/download/delete fails."""

    pass


class CorruptArchive(TenantSnapError):
    """Raised when an archive cannot be decoded or its envelope is inconsistent."""

    pass


class SchemaMismatch(TenantSnapError):
    """Raised when an export envelope has an unsupported or invalid schema."""

    pass


class AccessDenied(TenantSnapError):
    """Raised when a tenant requests an artifact that is not tagged for it."""

    pass


class TransactionFailure(TenantSnapError):
    """Raised when the restore transaction fails and is rolled back."""

    pass


class LeaseUnavailable(TenantSnapError):
    """Raised when a tenant lease cannot be acquired in time."""

    pass


class DeadlineExceeded(TenantSnapError):
    """Raised when an operation runs past its deadline."""

    pass


class OperationCancelled(TenantSnapError):
    """Raised when an operation is cancelled through its deadline context."""

    pass
