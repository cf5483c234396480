from __future__ import annotations

from collections.abc import Callable
import time
from typing import Any

from harvester.services.scan.events import PROGRESS_EVENT, TERMINAL_EVENT, ScanEventPublisher
from harvester.services.scan.session import ScanSession


def terminal_payload(session: ScanSession) -> dict[str, Any]:
    payload: dict[str, Any] = {"stats": session.stats()}
    if session.error_message:
        payload["error_message"] = session.error_message
    return payload


class ProgressReporter:
    """Throttled progress snapshots plus the single terminal event."""

    def __init__(
        self,
        *,
        session: ScanSession,
        publisher: ScanEventPublisher,
        throttle_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._publisher = publisher
        self._throttle_seconds = throttle_seconds
        self._clock = clock
        self._last_emit: float | None = None
        self._synced_count = 0
        self.terminal_sent = False

    def emit(self, *, force: bool = False) -> bool:
        if self.terminal_sent:
            return False
        now = self._clock()
        if not force and self._last_emit is not None and now - self._last_emit < self._throttle_seconds:
            return False
        self._last_emit = now

        valid = self._session.store.get_valid_results()
        new_records = valid[self._synced_count:]
        self._synced_count = len(valid)
        self._session.deadline.observe_progress(len(valid))
        self._publisher.publish(
            self._session.token,
            PROGRESS_EVENT,
            {
                "phase": self._session.phase.value,
                "status": self._session.status_message,
                "counters": self._session.counters.as_dict(),
                "new_records": [record.as_dict() for record in new_records],
                "total_count": len(valid),
            },
        )
        return True

    def emit_terminal(self) -> bool:
        if self.terminal_sent:
            return False
        self.emit(force=True)
        self.terminal_sent = True
        self._publisher.publish(self._session.token, TERMINAL_EVENT, terminal_payload(self._session))
        return True
