from __future__ import annotations

from collections.abc import Callable
import time


class ScanDeadline:
    """Absolute scan timeout that grows while results keep arriving.

    Each increase of the valid-record count adds ``extension_seconds`` to the
    allowance, never beyond ``max_seconds`` from the scan start.
    """

    def __init__(
        self,
        *,
        base_seconds: float,
        extension_seconds: float,
        max_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._extension_seconds = extension_seconds
        self._max_seconds = max(base_seconds, max_seconds)
        self.started_at = clock()
        self.allowed_seconds = base_seconds
        self.last_extended_count = 0

    @property
    def deadline(self) -> float:
        return self.started_at + self.allowed_seconds

    @property
    def allowed_minutes(self) -> int:
        return round(self.allowed_seconds / 60)

    def remaining(self) -> float:
        return max(0.0, self.deadline - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self.deadline

    def observe_progress(self, total: int) -> bool:
        if total <= self.last_extended_count:
            return False
        self.last_extended_count = total
        extended = min(self._max_seconds, self.allowed_seconds + self._extension_seconds)
        changed = extended > self.allowed_seconds
        self.allowed_seconds = extended
        return changed

    def timeout_message(self) -> str:
        return f"Scan timed out after {self.allowed_minutes} minutes. Results so far have been saved."
