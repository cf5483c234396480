from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import time

from harvester.services.scan.cancellation import CancellationToken


@dataclass(frozen=True)
class ActivitySnapshot:
    load_more_visible: bool
    unclicked_reply_buttons: int
    seconds_since_intercept: float
    seconds_since_dom_change: float
    replays_in_flight: int

    def is_quiet(self, window_seconds: float) -> bool:
        return (
            not self.load_more_visible
            and self.unclicked_reply_buttons == 0
            and self.seconds_since_intercept > window_seconds
            and self.seconds_since_dom_change > window_seconds
            and self.replays_in_flight == 0
        )


class QuietWindowTracker:
    """Tracks how long every collection signal has stayed silent."""

    def __init__(self, window_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._quiet_since: float | None = None

    def observe(self, snapshot: ActivitySnapshot) -> bool:
        if not snapshot.is_quiet(self.window_seconds):
            self._quiet_since = None
            return False
        now = self._clock()
        if self._quiet_since is None:
            self._quiet_since = now
        return now - self._quiet_since >= self.window_seconds


async def wait_for_quiet_window(
    probe: Callable[[], Awaitable[ActivitySnapshot]],
    *,
    window_seconds: float,
    check_seconds: float,
    cancel: CancellationToken,
    max_wait_seconds: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Return True once the page stayed quiet for a full window.

    Returns False when cancelled or when ``max_wait_seconds`` elapses first.
    """
    tracker = QuietWindowTracker(window_seconds, clock=clock)
    started = clock()
    while not cancel.is_cancelled:
        if tracker.observe(await probe()):
            return True
        if max_wait_seconds is not None and clock() - started >= max_wait_seconds:
            return False
        if not await cancel.sleep(check_seconds):
            return False
    return False
