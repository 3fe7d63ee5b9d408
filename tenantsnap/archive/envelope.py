# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Export Envelope - Schema-versioned wrapper around a tenant's records.

Wire format (JSON, camelCase keys):

    {
        "tenantId": "t1",
        "exportedAt": "2026-03-01T03:00:00.123000Z",
        "schemaVersion": "2.0",
        "collections": {
            "patients": [{"id": "...", "tenantId": "t1", ...}],
            "templates": [...],
            "consultations": [...],
            "prescriptions": [...],
            "appointments": [...]
        }
    }

Each collection has its own record model. Unknown collections, unknown
schema versions and records missing their key fields are rejected with
SchemaMismatch; records owned by another tenant are rejected with
CorruptArchive. Columns beyond the key fields are carried verbatim.
"""

import json
from datetime import datetime, UTC
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tenantsnap.entities import ENTITY_KINDS
from tenantsnap.exceptions import CorruptArchive, SchemaMismatch

SCHEMA_VERSION = "2.0"
SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION})


class EntityRecord(BaseModel):
    """Fields every tenant-owned record carries."""

    model_config = ConfigDict(extra="allow", strict=True, populate_by_name=True)

    id: str = Field(min_length=1)
    tenant_id: str = Field(alias="tenantId", min_length=1)


class PatientRecord(EntityRecord):
    pass


class TemplateRecord(EntityRecord):
    pass


class ConsultationRecord(EntityRecord):
    patient_id: str = Field(alias="patientId", min_length=1)
    template_id: str | None = Field(default=None, alias="templateId")


class PrescriptionRecord(EntityRecord):
    consultation_id: str = Field(alias="consultationId", min_length=1)


class AppointmentRecord(EntityRecord):
    patient_id: str = Field(alias="patientId", min_length=1)


class EnvelopeCollections(BaseModel):
    """One list per entity kind; any other key is a schema error."""

    model_config = ConfigDict(extra="forbid")

    patients: List[PatientRecord] = Field(default_factory=list)
    templates: List[TemplateRecord] = Field(default_factory=list)
    consultations: List[ConsultationRecord] = Field(default_factory=list)
    prescriptions: List[PrescriptionRecord] = Field(default_factory=list)
    appointments: List[AppointmentRecord] = Field(default_factory=list)


class ExportPayload(BaseModel):
    """A tenant export: metadata plus every collection."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    tenant_id: str = Field(alias="tenantId", min_length=1)
    exported_at: datetime = Field(alias="exportedAt")
    schema_version: str = Field(alias="schemaVersion")
    collections: EnvelopeCollections

    def records(self, kind: str) -> List[Dict[str, Any]]:
        """Records of one kind as plain dicts with their original column names."""
        return [_record_dict(record) for record in getattr(self.collections, kind)]

    def counts(self) -> Dict[str, int]:
        return {kind.name: len(getattr(self.collections, kind.name)) for kind in ENTITY_KINDS}

    @property
    def total_records(self) -> int:
        return sum(self.counts().values())


def _record_dict(record: EntityRecord) -> Dict[str, Any]:
    # Optional key fields the source record did not carry stay absent
    unset = set(type(record).model_fields) - record.model_fields_set
    return record.model_dump(by_alias=True, exclude=unset, mode="json")


def _check_isolation(payload: ExportPayload) -> None:
    for kind in ENTITY_KINDS:
        for record in getattr(payload.collections, kind.name):
            if record.tenant_id != payload.tenant_id:
                raise CorruptArchive(
                    "Envelope contains a record owned by another tenant",
                    details={
                        "tenant_id": payload.tenant_id,
                        "kind": kind.name,
                        "record_id": record.id,
                    },
                )


def _schema_error(error: ValidationError) -> SchemaMismatch:
    return SchemaMismatch(
        "Export envelope failed schema validation",
        details={
            "errors": error.errors(
                include_url=False, include_context=False, include_input=False
            )[:10]
        },
    )


def build_payload(
    tenant_id: str,
    collections: Dict[str, List[Dict[str, Any]]],
    exported_at: datetime | None = None,
) -> ExportPayload:
    """
    Assemble and validate an envelope from records read out of the live store.

    Raises:
        SchemaMismatch: If a record does not fit its kind's model
        CorruptArchive: If a record belongs to another tenant
    """
    try:
        payload = ExportPayload.model_validate(
            {
                "tenantId": tenant_id,
                "exportedAt": exported_at or datetime.now(UTC),
                "schemaVersion": SCHEMA_VERSION,
                "collections": collections,
            }
        )
    except ValidationError as e:
        raise _schema_error(e)
    _check_isolation(payload)
    return payload


def serialize_payload(payload: ExportPayload) -> bytes:
    document = payload.model_dump(
        mode="json", by_alias=True, include={"tenant_id", "exported_at", "schema_version"}
    )
    document["collections"] = {kind.name: payload.records(kind.name) for kind in ENTITY_KINDS}
    return json.dumps(document, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def parse_payload(data: bytes, expected_tenant_id: str) -> ExportPayload:
    """
    Parse and strictly validate a decompressed envelope.

    The schema version is checked before the body so that envelopes from a
    newer writer fail as SchemaMismatch rather than as field errors.

    Raises:
        CorruptArchive: If the bytes are not a JSON object, or the envelope
            or any record belongs to a tenant other than expected_tenant_id
        SchemaMismatch: If the version is unsupported or the body is invalid
    """
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptArchive(f"Envelope is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise CorruptArchive("Envelope is not a JSON object")

    version = raw.get("schemaVersion")
    if not isinstance(version, str) or version not in SUPPORTED_SCHEMA_VERSIONS:
        raise SchemaMismatch(
            "Unsupported envelope schema version",
            details={
                "schema_version": version,
                "supported": sorted(SUPPORTED_SCHEMA_VERSIONS),
            },
        )

    if raw.get("tenantId") != expected_tenant_id:
        raise CorruptArchive(
            "Envelope tenant does not match the requesting tenant",
            details={"expected": expected_tenant_id, "found": raw.get("tenantId")},
        )

    try:
        payload = ExportPayload.model_validate(raw)
    except ValidationError as e:
        raise _schema_error(e)

    _check_isolation(payload)
    return payload
