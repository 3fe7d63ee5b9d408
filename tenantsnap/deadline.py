# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Deadline - Timeout and cooperative cancellation for long-running operations.

A Deadline is passed into export_full, export_tenant and restore. Code
checks it between steps (check()) and wraps awaits that may block for a
long time (run()). Derived deadlines created with within() share the
parent's cancellation flag but may expire earlier.
"""

import asyncio
import time
from typing import Awaitable, TypeVar

from tenantsnap.exceptions import DeadlineExceeded, OperationCancelled

T = TypeVar("T")


class _CancelFlag:
    def __init__(self) -> None:
        self.event = asyncio.Event()
        self.reason: str | None = None


class Deadline:
    """Optional absolute expiry plus a cancel() switch."""

    def __init__(self, timeout: float | None = None, *, _flag: _CancelFlag | None = None,
                 _expires_at: float | None = None):
        if timeout is not None and timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {timeout}")
        self._flag = _flag or _CancelFlag()
        if _expires_at is not None:
            self._expires_at: float | None = _expires_at
        elif timeout is not None:
            self._expires_at = time.monotonic() + timeout
        else:
            self._expires_at = None

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def within(self, seconds: float) -> "Deadline":
        """A child deadline that expires after seconds or with this one, whichever is first."""
        candidate = time.monotonic() + seconds
        if self._expires_at is not None:
            candidate = min(candidate, self._expires_at)
        return Deadline(_flag=self._flag, _expires_at=candidate)

    def cancel(self, reason: str = "cancelled") -> None:
        self._flag.reason = reason
        self._flag.event.set()

    @property
    def cancelled(self) -> bool:
        return self._flag.event.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        """Seconds left, or None when there is no expiry."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, stage: str = "") -> None:
        """
        Raise if the operation should stop.

        Raises:
            OperationCancelled: If cancel() was called
            DeadlineExceeded: If the expiry has passed
        """
        if self.cancelled:
            raise OperationCancelled(
                "Operation cancelled",
                details={"stage": stage, "reason": self._flag.reason},
            )
        if self.expired:
            raise DeadlineExceeded("Operation deadline exceeded", details={"stage": stage})

    async def run(self, awaitable: Awaitable[T], stage: str = "") -> T:
        """
        Await awaitable, abandoning it on expiry or cancellation.

        The abandoned task is cancelled before the error is raised.
        """
        try:
            self.check(stage)
        except (DeadlineExceeded, OperationCancelled):
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._flag.event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.check(stage)
        raise DeadlineExceeded("Operation deadline exceeded", details={"stage": stage})
