# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec - Compression for backup artifacts.

Two formats are supported:
1. gzip (default) - what the artifact names advertise (.sql.gz, .json.gz)
2. zstd - smaller and faster, selected with compression="zstd"

Decompression detects the format from the magic bytes, so a restore never
depends on the codec the process is currently configured with.
"""

import asyncio
import gzip
import zlib
from concurrent.futures import ThreadPoolExecutor

import structlog
import zstandard as zstd

from tenantsnap.config import CodecFormat
from tenantsnap.exceptions import CorruptArchive, TenantSnapError

logger = structlog.get_logger()

# Thread pool for CPU-bound (de)compression of large payloads
_executor = ThreadPoolExecutor(max_workers=4)

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

DEFAULT_GZIP_LEVEL = 6
DEFAULT_ZSTD_LEVEL = 10

# Payloads above this size are (de)compressed off the event loop
OFFLOAD_THRESHOLD = 1024 * 1024

_EXTENSIONS = {CodecFormat.GZIP: "gz", CodecFormat.ZSTD: "zst"}
_CONTENT_TYPES = {CodecFormat.GZIP: "application/gzip", CodecFormat.ZSTD: "application/zstd"}


class ArchiveCodec:
    """
    Pure compress/decompress transform over bytes.

    compress() buffers the whole payload and is meant for tenant exports.
    compressor() returns an incremental object (compress(chunk) / flush())
    for full dumps that must not be held in memory.
    """

    def __init__(self, fmt: CodecFormat = CodecFormat.GZIP, level: int | None = None):
        self.format = CodecFormat(fmt)
        if level is None:
            level = DEFAULT_GZIP_LEVEL if self.format == CodecFormat.GZIP else DEFAULT_ZSTD_LEVEL
        self.level = level

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self.format]

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self.format]

    def compressor(self):
        """Return an incremental compressor with compress(chunk) and flush()."""
        if self.format == CodecFormat.GZIP:
            # wbits=31 writes a gzip header and trailer
            return zlib.compressobj(self.level, zlib.DEFLATED, 31)
        return zstd.ZstdCompressor(level=self.level).compressobj()

    def compress(self, data: bytes) -> bytes:
        compressor = self.compressor()
        return compressor.compress(data) + compressor.flush()

    def decompress(self, data: bytes) -> bytes:
        """
        Decompress an artifact written by any supported codec.

        Raises:
            CorruptArchive: If the input is empty, truncated, or not a
                recognised archive
        """
        if data.startswith(GZIP_MAGIC):
            return _decompress_gzip(data)
        if data.startswith(ZSTD_MAGIC):
            return _decompress_zstd(data)
        raise CorruptArchive(
            "Unrecognised archive format",
            details={"size": len(data), "header": data[:4].hex()},
        )


def _decompress_gzip(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptArchive(f"Malformed gzip archive: {e}", details={"size": len(data)})


def _decompress_zstd(data: bytes) -> bytes:
    output = bytearray()
    remaining = data
    try:
        while remaining:
            dobj = zstd.ZstdDecompressor().decompressobj()
            output += dobj.decompress(remaining)
            if not dobj.eof:
                raise CorruptArchive(
                    "Truncated zstd archive", details={"size": len(data)}
                )
            remaining = dobj.unused_data
    except zstd.ZstdError as e:
        raise CorruptArchive(f"Malformed zstd archive: {e}", details={"size": len(data)})
    return bytes(output)


async def compress_payload(codec: ArchiveCodec, data: bytes) -> bytes:
    """
    Compress a buffered payload.

    Runs in thread pool for large data to avoid blocking.
    """
    try:
        if len(data) > OFFLOAD_THRESHOLD:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(_executor, codec.compress, data)
        return codec.compress(data)
    except TenantSnapError:
        raise
    except Exception as e:
        raise TenantSnapError(
            f"Compression failed: {e}",
            details={"format": codec.format.value, "original_size": len(data)},
        )


async def decompress_payload(codec: ArchiveCodec, data: bytes) -> bytes:
    """
    Decompress a buffered payload.

    Runs in thread pool for large data to avoid blocking.
    """
    if len(data) > OFFLOAD_THRESHOLD:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, codec.decompress, data)
    return codec.decompress(data)


def compression_stats(
    original_size: int,
    compressed_size: int,
) -> dict:
    """
    Calculate compression statistics.

    Args:
        original_size: Original data size in bytes
        compressed_size: Compressed data size in bytes

    Returns:
        Dict with compression statistics
    """
    if compressed_size == 0:
        return {
            "original_size": original_size,
            "compressed_size": compressed_size,
            "compression_ratio": 0,
            "space_saved_percent": 0,
        }

    ratio = original_size / compressed_size
    saved_bytes = original_size - compressed_size
    saved_percent = (saved_bytes / original_size) * 100 if original_size > 0 else 0

    return {
        "original_size": original_size,
        "compressed_size": compressed_size,
        "compression_ratio": round(ratio, 2),
        "space_saved_percent": round(saved_percent, 2),
    }
