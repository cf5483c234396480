from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
import logging
from typing import Any, Protocol

from harvester.logging_utils import structured_log
from harvester.services.dom.driver import is_qualifying_post_url
from harvester.services.dom.types import POST_STATUS_MESSAGES, DomDriver, PostStatus
from harvester.services.interception.interceptor import PayloadChannel, ResponseInterceptor
from harvester.services.records.types import EmailRecord
from harvester.services.replay.source import ReplayPageSource
from harvester.services.scan.config import ScanConfig
from harvester.services.scan.events import TERMINAL_EVENT, ScanEventPublisher, event_generator, scan_events
from harvester.services.scan.orchestrator import ScanOrchestrator
from harvester.services.scan.progress import terminal_payload
from harvester.services.scan.session import TERMINAL_PHASES, ScanPhase, ScanSession, new_session_token

logger = logging.getLogger(__name__)

STATUS_STARTED = "started"
STATUS_ALREADY_SCANNING = "already_scanning"
STATUS_REJECTED = "rejected"


class ScanCommandError(Exception):
    pass


class ScanNotFoundError(ScanCommandError):
    pass


class ScanTokenMismatchError(ScanCommandError):
    pass


class ScanAlreadyRunningError(ScanCommandError):
    pass


class ScanEnvironment(Protocol):
    driver: DomDriver

    def replay_source(self, token_provider: Callable[[], str | None]) -> ReplayPageSource:
        ...

    async def aclose(self) -> None:
        ...


class ScanEnvironmentFactory(Protocol):
    async def open(self, post_url: str, interceptor: ResponseInterceptor) -> ScanEnvironment:
        ...


@dataclass(frozen=True)
class StartOutcome:
    status: str
    nonce: str | None = None
    message: str = ""
    reason: str | None = None

    @property
    def started(self) -> bool:
        return self.status == STATUS_STARTED


class ScanCommandService:
    """start / stop / current-results surface; one scan at a time."""

    def __init__(
        self,
        *,
        environment_factory: ScanEnvironmentFactory,
        config: ScanConfig,
        publisher: ScanEventPublisher = scan_events,
    ) -> None:
        self._environment_factory = environment_factory
        self._config = config
        self._publisher = publisher
        self._lock = asyncio.Lock()
        self._session: ScanSession | None = None
        self._orchestrator: ScanOrchestrator | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def is_scanning(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, post_url: str, *, nonce: str | None = None) -> StartOutcome:
        if self._lock.locked() or self.is_scanning:
            return StartOutcome(status=STATUS_ALREADY_SCANNING, message="A scan is already running.")

        async with self._lock:
            if not is_qualifying_post_url(post_url):
                return self._rejected(PostStatus.NOT_POST_PAGE)

            session = ScanSession(token=nonce or new_session_token(), post_url=post_url, config=self._config)
            self._publisher.forget(session.token)
            channel = PayloadChannel(max_size=self._config.channel_max_size)
            interceptor = ResponseInterceptor(channel=channel, session_token=session.token)
            environment = await self._environment_factory.open(post_url, interceptor)

            try:
                state = await environment.driver.detect_post_state()
            except Exception:
                await environment.aclose()
                raise
            if not state.ok:
                await environment.aclose()
                structured_log(logger, "info", "scan.start_rejected", reason=state.status.value)
                self._publisher.publish(
                    session.token,
                    TERMINAL_EVENT,
                    {"stats": session.stats(), "error_message": state.message},
                )
                return self._rejected(state.status, nonce=session.token)

            orchestrator = ScanOrchestrator(
                session=session,
                driver=environment.driver,
                replay_source=environment.replay_source(lambda: session.auth_token),
                channel=channel,
                publisher=self._publisher,
            )
            self._session = session
            self._orchestrator = orchestrator
            self._task = asyncio.create_task(self._run(orchestrator, environment))
        return StartOutcome(status=STATUS_STARTED, nonce=session.token, message="Scan started.")

    async def _run(self, orchestrator: ScanOrchestrator, environment: ScanEnvironment) -> ScanSession:
        try:
            return await orchestrator.run()
        finally:
            try:
                await environment.aclose()
            except Exception as exc:
                structured_log(logger, "warning", "scan.environment_close_failed", error=str(exc))

    def _rejected(self, status: PostStatus, *, nonce: str | None = None) -> StartOutcome:
        return StartOutcome(
            status=STATUS_REJECTED,
            nonce=nonce,
            message=POST_STATUS_MESSAGES[status],
            reason=status.value,
        )

    def session_for(self, nonce: str | None) -> ScanSession:
        session = self._session
        if session is None:
            raise ScanNotFoundError("No scan has been started.")
        if not session.matches(nonce):
            raise ScanTokenMismatchError("Scan token does not match the active scan.")
        return session

    def event_stream(self, nonce: str | None) -> AsyncGenerator[str, None]:
        session = self.session_for(nonce)
        terminal = None
        finished = session.phase in TERMINAL_PHASES and not self.is_scanning
        if finished and self._publisher.terminal_message(session.token) is None:
            # Retained terminal messages are bounded; rebuild one from the session.
            terminal = {"type": TERMINAL_EVENT, "data": terminal_payload(session)}
        return event_generator(session.token, publisher=self._publisher, terminal=terminal)

    async def stop(self, nonce: str | None) -> ScanSession:
        session = self.session_for(nonce)
        if self._orchestrator is not None and self.is_scanning:
            self._orchestrator.stop()
            structured_log(logger, "info", "scan.stop_requested")
        return session

    def current_results(self, nonce: str | None) -> list[EmailRecord]:
        return self.session_for(nonce).store.get_valid_results()

    async def wait(self, nonce: str | None) -> ScanSession:
        session = self.session_for(nonce)
        if self._task is not None:
            await asyncio.shield(self._task)
        return session

    async def shutdown(self) -> None:
        if self._orchestrator is not None and self.is_scanning:
            self._orchestrator.stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def describe(self, nonce: str | None) -> dict[str, Any]:
        session = self.session_for(nonce)
        return {
            "nonce": session.token,
            "post_url": session.post_url,
            "phase": session.phase.value,
            "status": session.status_message,
            "error_message": session.error_message,
            "scanning": self.is_scanning and session.phase is not ScanPhase.IDLE,
            "counters": session.counters.as_dict(),
        }
