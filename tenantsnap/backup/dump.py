# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Dump Runner - Drives the external dump utility for full backups.

The utility's standard output is streamed chunk by chunk through the
archive codec into a local file, so a full dump is never held in memory.
The process is killed as soon as the deadline expires or is cancelled.
"""

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Sequence

import aiofiles
import structlog

from tenantsnap.archive.codec import ArchiveCodec
from tenantsnap.deadline import Deadline
from tenantsnap.errors import explain_dump_tool_missing
from tenantsnap.exceptions import DeadlineExceeded, ExternalToolFailure

logger = structlog.get_logger()

# Bytes of stderr kept for error reports
STDERR_TAIL = 4096


@dataclass
class DumpResult:
    """Sizes of a finished dump."""

    raw_bytes: int
    compressed_bytes: int


@asynccontextmanager
async def temporary_dump_file(directory: Path, suffix: str) -> AsyncIterator[Path]:
    """
    Reserve a local file for a dump and remove it on every exit path.
    """
    directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="tenantsnap-", suffix=suffix, dir=directory)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        logger.debug("temporary_dump_file_removed", path=str(path))


class DumpRunner:
    """Runs command + [connection string] and captures its stdout."""

    def __init__(self, command: Sequence[str], chunk_size: int = 1024 * 1024):
        self.command = tuple(command)
        self.chunk_size = chunk_size

    async def dump_to(
        self,
        connection_string: str,
        output_path: Path,
        codec: ArchiveCodec,
        deadline: Deadline,
    ) -> DumpResult:
        """
        Run the dump and write its compressed output to output_path.

        Raises:
            ExternalToolFailure: If the utility cannot start, exits non-zero,
                produces no output, or runs past the deadline
            OperationCancelled: If the deadline was cancelled
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                connection_string,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolFailure(
                explain_dump_tool_missing(self.command[0]),
                details={"error": str(e)},
            )

        logger.info("dump_process_started", command=self.command[0], pid=process.pid)

        # Drain stderr concurrently so a chatty tool cannot block on a full pipe
        stderr_task = asyncio.ensure_future(process.stderr.read())
        compressor = codec.compressor()
        raw_bytes = 0
        compressed_bytes = 0

        try:
            async with aiofiles.open(output_path, "wb") as out:
                while True:
                    chunk = await deadline.run(
                        process.stdout.read(self.chunk_size), stage="dump_read"
                    )
                    if not chunk:
                        break
                    raw_bytes += len(chunk)
                    block = compressor.compress(chunk)
                    if block:
                        compressed_bytes += len(block)
                        await out.write(block)
                block = compressor.flush()
                compressed_bytes += len(block)
                await out.write(block)

            returncode = await deadline.run(process.wait(), stage="dump_wait")
            stderr = await deadline.run(stderr_task, stage="dump_stderr")

        except DeadlineExceeded as e:
            raise ExternalToolFailure(
                "Dump utility timed out",
                details={"command": self.command[0], "stage": e.details.get("stage")},
            )
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
                logger.warning("dump_process_killed", pid=process.pid)
            if not stderr_task.done():
                stderr_task.cancel()

        if returncode != 0:
            raise ExternalToolFailure(
                f"Dump utility exited with code {returncode}",
                details={
                    "command": self.command[0],
                    "returncode": returncode,
                    "stderr": stderr[-STDERR_TAIL:].decode("utf-8", errors="replace"),
                },
            )

        if raw_bytes == 0:
            raise ExternalToolFailure(
                "Dump utility produced no output",
                details={"command": self.command[0]},
            )

        logger.info(
            "dump_process_completed",
            pid=process.pid,
            raw_bytes=raw_bytes,
            compressed_bytes=compressed_bytes,
        )

        return DumpResult(raw_bytes=raw_bytes, compressed_bytes=compressed_bytes)
