from __future__ import annotations

import asyncio
from enum import StrEnum


class CancelReason(StrEnum):
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class ScanCancelledError(Exception):
    def __init__(self, reason: CancelReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


class CancellationToken:
    """Cooperative cancellation shared by every loop of one scan.

    Work already in flight is never interrupted; callers check the token
    before and after each suspension point.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: CancelReason | None = None
        self.message: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: CancelReason, message: str | None = None) -> bool:
        if self._event.is_set():
            return False
        self.reason = reason
        self.message = message
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self.reason is not None and self._event.is_set():
            raise ScanCancelledError(self.reason)

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless cancelled first. Returns False when cancelled."""
        if self._event.is_set():
            return False
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False

    async def pause(self, seconds: float) -> None:
        """Sleep, raising ScanCancelledError if the scan is cancelled meanwhile."""
        if not await self.sleep(seconds):
            self.raise_if_cancelled()

    async def wait(self) -> None:
        await self._event.wait()
