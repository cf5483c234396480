from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
import secrets
import time
from typing import Any

from harvester.services.payloads.dedupe import PayloadDedupeCache
from harvester.services.records.store import EmailRecordStore
from harvester.services.records.types import ScanCounters
from harvester.services.scan.cancellation import CancellationToken
from harvester.services.scan.config import ScanConfig
from harvester.services.scan.deadline import ScanDeadline


class ScanPhase(StrEnum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SORT_VERIFICATION = "sort_verification"
    PRIMARY_COLLECTION = "primary_collection"
    REPLY_EXPANSION = "reply_expansion"
    COVERAGE_DECISION = "coverage_decision"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    STOPPED = "stopped"
    ERROR = "error"
    TIMED_OUT = "timed_out"


TERMINAL_PHASES = frozenset({ScanPhase.COMPLETE, ScanPhase.STOPPED, ScanPhase.ERROR, ScanPhase.TIMED_OUT})


def new_session_token() -> str:
    return secrets.token_urlsafe(16)


@dataclass
class ScanSession:
    """Everything one scan owns; built fresh per scan and dropped afterwards."""

    token: str
    post_url: str
    config: ScanConfig
    clock: Callable[[], float] = time.monotonic
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    counters: ScanCounters = field(default_factory=ScanCounters)
    cancel: CancellationToken = field(default_factory=CancellationToken)
    phase: ScanPhase = ScanPhase.IDLE
    status_message: str = "Idle"
    error_message: str | None = None
    auth_token: str | None = None
    last_intercept_at: float = 0.0
    store: EmailRecordStore = field(init=False)
    dedupe: PayloadDedupeCache = field(init=False)
    deadline: ScanDeadline = field(init=False)
    first_intercept: asyncio.Event = field(init=False)

    def __post_init__(self) -> None:
        self.store = EmailRecordStore(self.counters)
        self.dedupe = PayloadDedupeCache(self.config.dedupe_capacity)
        self.deadline = ScanDeadline(
            base_seconds=self.config.absolute_timeout_seconds,
            extension_seconds=self.config.deadline_extension_seconds,
            max_seconds=self.config.max_timeout_seconds,
            clock=self.clock,
        )
        self.first_intercept = asyncio.Event()
        self.last_intercept_at = self.clock()

    @property
    def is_active(self) -> bool:
        return self.phase not in TERMINAL_PHASES and self.phase is not ScanPhase.IDLE

    def matches(self, token: str | None) -> bool:
        return bool(token) and secrets.compare_digest(self.token, str(token))

    def seconds_since_intercept(self) -> float:
        return self.clock() - self.last_intercept_at

    def api_coverage(self) -> float:
        total_pages = self.counters.replay_total_pages
        if total_pages <= 0:
            return 0.0
        return self.counters.intercepted_requests / total_pages

    def stats(self) -> dict[str, Any]:
        return {
            **self.counters.as_dict(),
            "unique_emails": len(self.store),
            "phase": self.phase.value,
            "status": self.status_message,
            "elapsed_seconds": round(self.clock() - self.deadline.started_at, 1),
        }
