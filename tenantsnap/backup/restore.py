# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Restore Engine - All-or-nothing restore of one tenant from an export.

State machine:

    requested -> validating -> downloading -> applying -> committed
                     |              |             |
                     v              v             v
               access_denied      failed      rolled_back

Validation happens before any I/O: a path that is not tagged for the
requesting tenant never reaches the object store or the live store.
Records are upserted by primary key inside one transaction, in foreign-key
dependency order, so a restore either applies completely or not at all.
Restores never delete live rows, and re-applying the same artifact is a
no-op reported as "unchanged".
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

import structlog
from ulid import ULID

from tenantsnap.archive.codec import ArchiveCodec, decompress_payload
from tenantsnap.archive.envelope import ExportPayload, parse_payload
from tenantsnap.audit import BackupAuditLogger
from tenantsnap.deadline import Deadline
from tenantsnap.entities import APPLY_ORDER
from tenantsnap.exceptions import (
    AccessDenied,
    DeadlineExceeded,
    OperationCancelled,
    StorageError,
    TenantSnapError,
    TransactionFailure,
)
from tenantsnap.lease import TenantLeaseManager, tenant_lease_key
from tenantsnap.models import RestoreRequest, is_tagged_for
from tenantsnap.storage import ObjectStore
from tenantsnap.store import StoreClient, UpsertOutcome

logger = structlog.get_logger()


class RestoreState(str, Enum):
    REQUESTED = "requested"
    VALIDATING = "validating"
    DOWNLOADING = "downloading"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ACCESS_DENIED = "access_denied"
    FAILED = "failed"


@dataclass
class RestoreResult:
    """Result of a committed restore."""

    restore_id: str
    tenant_id: str
    storage_path: str
    state: RestoreState
    counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def _total(self, outcome: UpsertOutcome) -> int:
        return sum(per_kind.get(outcome.value, 0) for per_kind in self.counts.values())

    @property
    def inserted(self) -> int:
        return self._total(UpsertOutcome.INSERTED)

    @property
    def updated(self) -> int:
        return self._total(UpsertOutcome.UPDATED)

    @property
    def unchanged(self) -> int:
        return self._total(UpsertOutcome.UNCHANGED)


def _empty_counts() -> Dict[str, Dict[str, int]]:
    return {kind: {outcome.value: 0 for outcome in UpsertOutcome} for kind in APPLY_ORDER}


class RestoreEngine:
    """Applies tenant exports back into the live store."""

    def __init__(
        self,
        object_store: ObjectStore,
        store: StoreClient,
        codec: ArchiveCodec,
        audit: BackupAuditLogger,
        leases: TenantLeaseManager,
    ):
        self.object_store = object_store
        self.store = store
        self.codec = codec
        self.audit = audit
        self.leases = leases

    async def restore(
        self,
        request: RestoreRequest,
        deadline: Deadline | None = None,
    ) -> RestoreResult:
        """
        Restore request.tenant_id from the artifact at request.storage_path.

        Returns:
            RestoreResult in state COMMITTED

        Raises:
            AccessDenied: If the path is not tagged for the tenant (no I/O done),
                or a record id is owned by another tenant in the live store
                (raised as TransactionFailure after rollback)
            LeaseUnavailable: If the tenant is busy
            StorageError: If the download fails
            CorruptArchive / SchemaMismatch: If the artifact is unusable
            TransactionFailure: If applying failed and was rolled back
            DeadlineExceeded / OperationCancelled: If stopped; any started
                transaction is rolled back first
        """
        deadline = deadline or Deadline.never()
        restore_id = f"rst_{ULID()}"
        started = time.monotonic()
        tenant_id = request.tenant_id
        path = request.storage_path

        log = logger.bind(restore_id=restore_id, tenant_id=tenant_id, path=path)
        log.info("restore_requested")

        # Validating: no I/O of any kind before this passes
        state = RestoreState.VALIDATING
        if not is_tagged_for(path, tenant_id):
            log.warning("restore_access_denied")
            await self.audit.log_restore(
                tenant_id, path, RestoreState.ACCESS_DENIED.value, restore_id,
                error="artifact is not tagged for this tenant",
            )
            raise AccessDenied(
                "Backup does not belong to this tenant",
                details={"tenant_id": tenant_id, "path": path},
            )

        counts = _empty_counts()
        try:
            async with self.leases.hold(tenant_lease_key(tenant_id)):
                state = RestoreState.DOWNLOADING
                data = await deadline.run(self.object_store.download(path), stage="download")
                raw = await decompress_payload(self.codec, data)
                payload = parse_payload(raw, tenant_id)
                log.info("restore_payload_loaded", counts=payload.counts())

                state = RestoreState.APPLYING
                deadline.check("apply")
                await self._apply(payload, counts, deadline)

        except Exception as e:
            final_state, error = self._classify_failure(state, e, tenant_id, path)
            log.error("restore_failed", state=final_state.value, error=str(e))
            await self.audit.log_restore(
                tenant_id, path, final_state.value, restore_id,
                counts=counts if state == RestoreState.APPLYING else None,
                error=str(e),
            )
            if error is e:
                raise
            raise error from e

        result = RestoreResult(
            restore_id=restore_id,
            tenant_id=tenant_id,
            storage_path=path,
            state=RestoreState.COMMITTED,
            counts=counts,
            duration_seconds=time.monotonic() - started,
        )
        log.info(
            "restore_committed",
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            duration_seconds=result.duration_seconds,
        )
        await self.audit.log_restore(
            tenant_id, path, result.state.value, restore_id, counts=counts
        )
        return result

    async def _apply(
        self,
        payload: ExportPayload,
        counts: Dict[str, Dict[str, int]],
        deadline: Deadline,
    ) -> None:
        """Upsert every record in one transaction; any exception rolls it back."""
        async with self.store.transaction() as tx:
            for kind in APPLY_ORDER:
                for record in payload.records(kind):
                    deadline.check(f"apply_{kind}")
                    outcome = await tx.upsert(kind, record)
                    counts[kind][outcome.value] += 1

    @staticmethod
    def _classify_failure(
        state: RestoreState,
        error: Exception,
        tenant_id: str,
        path: str,
    ) -> tuple[RestoreState, Exception]:
        """Map a failure to its final state and the exception to surface."""
        if state != RestoreState.APPLYING:
            if isinstance(error, TenantSnapError):
                return RestoreState.FAILED, error
            return RestoreState.FAILED, StorageError(
                f"Restore failed: {error}", details={"path": path}
            )

        if isinstance(error, (DeadlineExceeded, OperationCancelled)):
            return RestoreState.ROLLED_BACK, error

        return RestoreState.ROLLED_BACK, TransactionFailure(
            f"Restore rolled back: {error}",
            details={
                "tenant_id": tenant_id,
                "path": path,
                "cause": type(error).__name__,
            },
        )
