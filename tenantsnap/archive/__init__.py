# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Format - Compression and the tenant export envelope.
"""

from tenantsnap.archive.codec import (
    ArchiveCodec,
    compress_payload,
    decompress_payload,
    compression_stats,
)

from tenantsnap.archive.envelope import (
    SCHEMA_VERSION,
    ExportPayload,
    build_payload,
    serialize_payload,
    parse_payload,
)

__all__ = [
    # Codec
    "ArchiveCodec",
    "compress_payload",
    "decompress_payload",
    "compression_stats",
    # Envelope
    "SCHEMA_VERSION",
    "ExportPayload",
    "build_payload",
    "serialize_payload",
    "parse_payload",
]
