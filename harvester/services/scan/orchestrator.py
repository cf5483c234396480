from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import StrEnum
import logging
from typing import Any

from harvester.logging_context import set_scan_id
from harvester.logging_utils import structured_log
from harvester.services.dom.fallback import enrich_from_snapshots, run_fallback_scan
from harvester.services.dom.types import DomDriver
from harvester.services.interception.interceptor import InterceptedPayload, PayloadChannel
from harvester.services.replay.engine import ReplayEngine
from harvester.services.replay.source import ReplayPageSource
from harvester.services.scan.cancellation import CancelReason, ScanCancelledError
from harvester.services.scan.events import ScanEventPublisher
from harvester.services.scan.ingest import PayloadIngestor
from harvester.services.scan.progress import ProgressReporter
from harvester.services.scan.quiet import ActivitySnapshot, wait_for_quiet_window
from harvester.services.scan.session import ScanPhase, ScanSession

logger = logging.getLogger(__name__)

SORT_WARNING = "Warning: sort may be limited to ~600 comments"
ACCOUNT_LIMITED_MESSAGE = (
    "LinkedIn is rate limiting your account. Please wait 15-30 minutes before scanning again."
)
ACCOUNT_LIMITED_ERROR = "rate_limited"
DOM_FALLBACK_STATUS = "Scanning (DOM fallback)"


class CoverageMode(StrEnum):
    SKIP_DOM = "skip_dom"
    ENRICH_ONLY = "enrich_only"
    FULL_DOM_FALLBACK = "full_dom_fallback"


def decide_coverage(*, intercepted: int, records: int, coverage: float, threshold: float) -> CoverageMode:
    """Pick how much DOM work is still needed after collection.

    Coverage is 0 whenever replay never started, so a scan fed only by the
    host's own requests falls through to the full DOM pass unless it
    already produced records.
    """
    if intercepted > 0 and records > 0:
        return CoverageMode.SKIP_DOM
    if coverage >= threshold:
        return CoverageMode.ENRICH_ONLY
    return CoverageMode.FULL_DOM_FALLBACK


class ScanOrchestrator:
    def __init__(
        self,
        *,
        session: ScanSession,
        driver: DomDriver,
        replay_source: ReplayPageSource,
        channel: PayloadChannel,
        publisher: ScanEventPublisher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._config = session.config
        self._driver = driver
        self._channel = channel
        self.progress = ProgressReporter(
            session=session,
            publisher=publisher,
            throttle_seconds=self._config.progress_throttle_seconds,
            clock=session.clock,
        )
        self.ingestor = PayloadIngestor(session=session, on_progress=self.progress.emit)
        self.engine = ReplayEngine(
            source=replay_source,
            config=self._config.replay,
            cancel=session.cancel,
            counters=session.counters,
            on_page=self.ingestor.ingest_replayed,
            on_account_limited=self._on_account_limited,
            sleep=sleep,
        )
        self.ingestor.paging_observer = self.engine.observe
        self.coverage_mode: CoverageMode | None = None
        self._background: list[asyncio.Task[Any]] = []
        self._fallback_ran = False

    # ── Entry point ──────────────────────────────────────────────────

    async def run(self) -> ScanSession:
        session = self._session
        set_scan_id(session.token[:8])
        structured_log(logger, "info", "scan.started", post_url=session.post_url)
        try:
            self._set_phase(ScanPhase.INITIALIZING, "Initializing")
            self._channel.open()
            self._driver.bind_cancellation(session.cancel)
            self._start_background()
            await self._driver.install_activity_observer()
            await self._pause(self._config.settle_seconds)

            await self._verify_sort_order()
            await self._primary_collection()
            await self._reply_expansion()
            await self._coverage_decision()
            self._finalize()
        except ScanCancelledError:
            self._apply_cancellation()
        except Exception as exc:
            logger.exception("scan.failed", extra={"post_url": session.post_url})
            session.cancel.cancel(CancelReason.ERROR, str(exc))
            session.error_message = str(exc)
            self._set_phase(ScanPhase.ERROR, f"Error: {exc}")
        finally:
            await self._teardown()
            structured_log(
                logger, "info", "scan.finished",
                phase=session.phase.value,
                unique_emails=len(session.store),
                intercepted_requests=session.counters.intercepted_requests,
                failed_pages=session.counters.failed_pages,
            )
            set_scan_id(None)
        return session

    def stop(self) -> None:
        self._session.cancel.cancel(CancelReason.STOPPED, "Stopped")

    # ── Phases ───────────────────────────────────────────────────────

    async def _verify_sort_order(self) -> None:
        self._set_phase(ScanPhase.SORT_VERIFICATION, "Switching to most recent")
        verified = False
        try:
            verified = await self._driver.switch_to_most_recent()
        except Exception as exc:
            structured_log(logger, "warning", "scan.sort_switch_failed", error=str(exc))
        self._checkpoint()
        if not verified:
            self._set_status(SORT_WARNING)

    async def _primary_collection(self) -> None:
        self._set_phase(ScanPhase.PRIMARY_COLLECTION, "Loading comments")
        await self._driver.scroll_to_comments()
        self._session.counters.total_comments = await self._driver.read_total_comments()
        self._background.append(asyncio.create_task(self._intercept_fallback_watchdog()))

        await self._driver.expand_see_more()
        await self._driver.click_load_more()
        await self._wait_first_intercept()

        if self.engine.top_level_started:
            await self._await_replay()
        else:
            await self._run_passes()
        self._checkpoint()

    async def _reply_expansion(self) -> None:
        self._set_phase(ScanPhase.REPLY_EXPANSION, "Expanding replies")
        await self._expand_all_replies()
        quiet = await wait_for_quiet_window(
            self._activity_snapshot,
            window_seconds=self._config.quiet_window_seconds,
            check_seconds=self._config.quiet_check_seconds,
            cancel=self._session.cancel,
            max_wait_seconds=self._config.quiet_max_wait_seconds,
            clock=self._session.clock,
        )
        self._checkpoint()
        if not quiet:
            structured_log(logger, "warning", "scan.quiet_window_not_reached")

    async def _coverage_decision(self) -> None:
        session = self._session
        self._set_phase(ScanPhase.COVERAGE_DECISION, "Checking coverage")
        self.coverage_mode = decide_coverage(
            intercepted=session.counters.intercepted_requests,
            records=len(session.store),
            coverage=session.api_coverage(),
            threshold=self._config.api_coverage_threshold,
        )
        structured_log(
            logger, "info", "scan.coverage_decided",
            mode=self.coverage_mode.value,
            coverage=round(session.api_coverage(), 3),
        )
        if self.coverage_mode is CoverageMode.FULL_DOM_FALLBACK:
            self._set_status(DOM_FALLBACK_STATUS)
            await self._run_fallback_scan()
            self._checkpoint()
        await self._enrich()

    def _finalize(self) -> None:
        self._set_phase(ScanPhase.FINALIZING, "Finalizing")
        for item in [*self._channel.drain_queue(), *self._channel.drain_buffer()]:
            self._ingest_safely(item)
        self._session.store.purge_fragments()
        self._set_phase(ScanPhase.COMPLETE, "Complete")

    # ── Primary collection helpers ───────────────────────────────────

    async def _wait_first_intercept(self) -> None:
        session = self._session
        if session.first_intercept.is_set():
            return
        try:
            await asyncio.wait_for(
                session.first_intercept.wait(),
                timeout=self._config.first_intercept_timeout_seconds,
            )
        except TimeoutError:
            structured_log(logger, "info", "scan.first_intercept_timeout")
        self._checkpoint()

    async def _await_replay(self) -> None:
        self._set_status("Fetching comment pages")
        await self.engine.wait_top_level()
        self._checkpoint()
        self.progress.emit(force=True)

    async def _run_passes(self) -> None:
        session = self._session
        required_no_growth = self._config.required_no_growth_passes(session.counters.total_comments)
        idle_passes = 0
        no_growth_passes = 0
        for pass_index in range(self._config.max_passes):
            self._checkpoint()
            if self.engine.top_level_started:
                await self._await_replay()
                return

            nodes_before = (await self._driver.read_activity()).comment_nodes
            load_more_clicks = await self._click_load_more_until_done()
            reply_clicks = await self._click_reply_batch()
            nodes_after = (await self._driver.read_activity()).comment_nodes
            structured_log(
                logger, "debug", "scan.pass_completed",
                pass_index=pass_index,
                load_more_clicks=load_more_clicks,
                reply_clicks=reply_clicks,
                comment_nodes=nodes_after,
            )
            self.progress.emit()

            if load_more_clicks == 0 and reply_clicks == 0:
                idle_passes += 1
                if idle_passes >= self._config.idle_passes_before_exit:
                    break
                await self._driver.scroll_comments()
                continue
            idle_passes = 0

            # Growth counts rendered comments, not emails; most comments carry none.
            if nodes_after <= nodes_before:
                no_growth_passes += 1
                if no_growth_passes >= required_no_growth:
                    break
                await self._driver.scroll_comments()
            else:
                no_growth_passes = 0

    async def _click_load_more_until_done(self) -> int:
        clicks = 0
        missing_rounds = 0
        while clicks < self._config.max_load_more_clicks:
            self._checkpoint()
            if self.engine.top_level_started:
                break
            if not await self._driver.click_load_more():
                missing_rounds += 1
                if missing_rounds >= self._config.no_button_rounds:
                    break
                await self._driver.scroll_comments()
                await self._pause(self._config.load_more_wait_seconds)
                continue
            missing_rounds = 0
            clicks += 1
            if clicks % self._config.scroll_every_clicks == 0:
                await self._driver.scroll_comments()
            await self._wait_for_progress(self._config.load_more_wait_seconds)
        return clicks

    async def _click_reply_batch(self) -> int:
        clicked = await self._driver.click_reply_buttons(self._config.reply_click_batch_size)
        self._session.counters.replies_expanded += clicked
        if clicked:
            await self._wait_for_progress(self._config.reply_wait_seconds)
        return clicked

    async def _expand_all_replies(self) -> None:
        empty_polls = 0
        total_clicks = 0
        while (
            total_clicks < self._config.max_reply_clicks
            and empty_polls < self._config.reply_empty_polls_before_exit
        ):
            self._checkpoint()
            clicked = await self._click_reply_batch()
            total_clicks += clicked
            if clicked == 0:
                empty_polls += 1
                await self._driver.scroll_comments()
                await self._pause(self._config.progress_poll_seconds)
            else:
                empty_polls = 0
                self.progress.emit()

    async def _wait_for_progress(self, timeout_seconds: float) -> bool:
        session = self._session
        intercepted_before = session.counters.intercepted_requests
        nodes_before = (await self._driver.read_activity()).comment_nodes
        waited = 0.0
        while waited < timeout_seconds:
            await self._pause(self._config.progress_poll_seconds)
            waited += self._config.progress_poll_seconds
            if session.counters.intercepted_requests > intercepted_before:
                return True
            if (await self._driver.read_activity()).comment_nodes > nodes_before:
                return True
        return False

    async def _activity_snapshot(self) -> ActivitySnapshot:
        activity = await self._driver.read_activity()
        replays = self.engine.in_flight
        return ActivitySnapshot(
            load_more_visible=await self._driver.has_load_more(),
            unclicked_reply_buttons=await self._driver.count_unclicked_reply_buttons(),
            seconds_since_intercept=self._session.seconds_since_intercept(),
            seconds_since_dom_change=activity.seconds_since_change,
            replays_in_flight=replays,
        )

    # ── DOM extraction ───────────────────────────────────────────────

    async def _run_fallback_scan(self) -> None:
        session = self._session
        snapshots = await self._driver.snapshot_containers()
        run_fallback_scan(
            snapshots,
            session.store,
            session.counters,
            post_url=session.post_url,
            extracted_at=datetime.now(timezone.utc),
            max_emails_per_comment=self._config.max_emails_per_comment,
        )
        self._fallback_ran = True
        self.progress.emit(force=True)

    async def _enrich(self) -> int:
        if not self._session.store.needing_enrichment():
            return 0
        enriched = enrich_from_snapshots(await self._driver.snapshot_containers(), self._session.store)
        if enriched:
            self.progress.emit(force=True)
        return enriched

    # ── Background work ──────────────────────────────────────────────

    def _start_background(self) -> None:
        self._background.extend(
            [
                asyncio.create_task(self._pump_channel()),
                asyncio.create_task(self._poll_buffer()),
                asyncio.create_task(self._watch_deadline()),
                asyncio.create_task(self._enrichment_loop()),
            ]
        )

    async def _pump_channel(self) -> None:
        while True:
            item = await self._channel.receive()
            self._ingest_safely(item)

    async def _poll_buffer(self) -> None:
        while not self._session.cancel.is_cancelled:
            for item in self._channel.drain_buffer():
                self._ingest_safely(item)
            await self._session.cancel.sleep(self._config.buffer_poll_seconds)

    async def _watch_deadline(self) -> None:
        session = self._session
        while not session.cancel.is_cancelled:
            remaining = session.deadline.remaining()
            if remaining <= 0:
                if session.cancel.cancel(CancelReason.TIMED_OUT, session.deadline.timeout_message()):
                    structured_log(
                        logger, "warning", "scan.timed_out",
                        allowed_minutes=session.deadline.allowed_minutes,
                    )
                return
            # Progress may have extended the deadline while sleeping.
            await session.cancel.sleep(remaining)

    async def _enrichment_loop(self) -> None:
        session = self._session
        while await session.cancel.sleep(self._config.enrichment_interval_seconds):
            try:
                await self._enrich()
            except Exception as exc:
                structured_log(logger, "debug", "scan.enrichment_failed", error=str(exc))
            self.progress.emit(force=True)

    async def _intercept_fallback_watchdog(self) -> None:
        session = self._session
        if not await session.cancel.sleep(self._config.intercept_fallback_timeout_seconds):
            return
        if session.counters.intercepted_requests > 0 or self._fallback_ran:
            return
        structured_log(logger, "warning", "scan.no_intercepts_fallback")
        self._set_status(DOM_FALLBACK_STATUS)
        try:
            await self._run_fallback_scan()
        except Exception as exc:
            structured_log(logger, "warning", "scan.watchdog_fallback_failed", error=str(exc))

    def _ingest_safely(self, item: InterceptedPayload) -> None:
        try:
            self.ingestor.ingest(item)
        except Exception as exc:
            structured_log(logger, "warning", "scan.ingest_failed", url=item.url.split("?")[0], error=str(exc))

    def _on_account_limited(self) -> None:
        session = self._session
        if session.cancel.cancel(CancelReason.RATE_LIMITED, ACCOUNT_LIMITED_MESSAGE):
            structured_log(logger, "error", "scan.account_rate_limited")

    # ── Termination ──────────────────────────────────────────────────

    def _apply_cancellation(self) -> None:
        session = self._session
        reason = session.cancel.reason
        if reason is CancelReason.TIMED_OUT:
            self._set_phase(ScanPhase.TIMED_OUT, session.deadline.timeout_message())
        elif reason is CancelReason.RATE_LIMITED:
            session.error_message = ACCOUNT_LIMITED_ERROR
            self._set_phase(ScanPhase.STOPPED, ACCOUNT_LIMITED_MESSAGE)
        else:
            self._set_phase(ScanPhase.STOPPED, session.cancel.message or "Stopped")

    async def _teardown(self) -> None:
        session = self._session
        if not session.cancel.is_cancelled:
            session.cancel.cancel(CancelReason.STOPPED, "Finished")
        self._channel.close()
        for task in self._background:
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        await self.engine.aclose()
        for item in [*self._channel.drain_queue(), *self._channel.drain_buffer()]:
            structured_log(logger, "debug", "scan.dropped_late_payload", url=item.url.split("?")[0])
        try:
            await self._driver.remove_activity_observer()
        except Exception as exc:
            structured_log(logger, "debug", "scan.observer_teardown_failed", error=str(exc))
        session.store.purge_fragments()
        self.progress.emit_terminal()

    # ── Small helpers ────────────────────────────────────────────────

    def _checkpoint(self) -> None:
        self._session.cancel.raise_if_cancelled()

    async def _pause(self, seconds: float) -> None:
        await self._session.cancel.pause(seconds)

    def _set_phase(self, phase: ScanPhase, status: str) -> None:
        self._session.phase = phase
        self._set_status(status)
        structured_log(logger, "info", "scan.phase_changed", phase=phase.value, status=status)

    def _set_status(self, status: str) -> None:
        self._session.status_message = status
        self.progress.emit(force=True)
