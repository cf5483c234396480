from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
import logging
import math
import random
from typing import Any

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_fixed

from harvester.logging_utils import structured_log
from harvester.services.payloads.parser import PagingInfo, reply_parent_id
from harvester.services.records.types import ScanCounters
from harvester.services.replay.controller import (
    AimdConcurrencyController,
    RateLimitAction,
    RequestBudget,
)
from harvester.services.replay.source import FetchResult, ReplayPageSource
from harvester.services.scan.cancellation import CancellationToken
from harvester.settings import Settings

logger = logging.getLogger(__name__)

TOP_LEVEL_IDENTIFIER = "post"


class ReplayKind(StrEnum):
    TOP_LEVEL = "top_level"
    REPLY = "reply"


@dataclass(frozen=True)
class PaginationTask:
    base_url: str
    count: int
    total: int
    total_pages: int
    identifier: str
    kind: ReplayKind

    @classmethod
    def from_paging(
        cls,
        url: str,
        paging: PagingInfo,
        *,
        identifier: str,
        kind: ReplayKind,
    ) -> PaginationTask:
        return cls(
            base_url=url,
            count=paging.count,
            total=paging.total,
            total_pages=math.ceil(paging.total / paging.count),
            identifier=identifier,
            kind=kind,
        )


@dataclass(frozen=True)
class ReplayConfig:
    initial_concurrency: int = 6
    min_concurrency: int = 2
    max_concurrency: int = 10
    batch_delay_seconds: float = 0.15
    retry_backoff_seconds: float = 3.0
    rate_limit_backoff_seconds: float = 3.0
    rate_limit_pause_seconds: float = 10.0
    rate_limit_pause_jitter_seconds: float = 2.0
    pause_after_hits: int = 3
    account_limit_after_consecutive: int = 5
    budget_window_seconds: float = 10.0
    budget_jitter_seconds: float = 0.5
    top_level_budget: int = 15
    reply_budget: int = 8
    max_concurrent_reply_threads: int = 3
    min_reply_total: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> ReplayConfig:
        return cls(
            initial_concurrency=settings.replay_initial_concurrency,
            min_concurrency=settings.replay_min_concurrency,
            max_concurrency=settings.replay_max_concurrency,
            batch_delay_seconds=settings.replay_batch_delay_seconds,
            retry_backoff_seconds=settings.replay_retry_backoff_seconds,
            rate_limit_backoff_seconds=settings.replay_rate_limit_backoff_seconds,
            rate_limit_pause_seconds=settings.replay_rate_limit_pause_seconds,
            rate_limit_pause_jitter_seconds=settings.replay_rate_limit_pause_jitter_seconds,
            pause_after_hits=settings.replay_pause_after_hits,
            account_limit_after_consecutive=settings.replay_account_limit_after_consecutive,
            budget_window_seconds=settings.replay_budget_window_seconds,
            budget_jitter_seconds=settings.replay_budget_jitter_seconds,
            top_level_budget=settings.replay_top_level_budget,
            reply_budget=settings.replay_reply_budget,
            max_concurrent_reply_threads=settings.replay_max_concurrent_reply_threads,
            min_reply_total=settings.replay_min_reply_total,
        )


PageHandler = Callable[[str, dict[str, Any], str], None]


class ReplayEngine:
    """Fetches the pages the host page never asked for.

    Top-level pagination runs once per scan; each reply thread at most once.
    Pages come back through ``on_page`` so they share the interception path.
    """

    def __init__(
        self,
        *,
        source: ReplayPageSource,
        config: ReplayConfig,
        cancel: CancellationToken,
        counters: ScanCounters,
        on_page: PageHandler,
        on_account_limited: Callable[[], None],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._config = config
        self._cancel = cancel
        self._counters = counters
        self._on_page = on_page
        self._on_account_limited = on_account_limited
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.controller = AimdConcurrencyController(
            initial=config.initial_concurrency,
            minimum=config.min_concurrency,
            maximum=config.max_concurrency,
            pause_after_hits=config.pause_after_hits,
            account_limit_after_consecutive=config.account_limit_after_consecutive,
        )
        self.budget = RequestBudget(
            {
                ReplayKind.TOP_LEVEL.value: config.top_level_budget,
                ReplayKind.REPLY.value: config.reply_budget,
            },
            window_seconds=config.budget_window_seconds,
            jitter_seconds=config.budget_jitter_seconds,
            sleep=sleep,
            rng=self._rng,
        )
        self.account_limited = False
        self.concurrency_history: list[int] = []
        self._top_level_task: asyncio.Task[None] | None = None
        self._reply_queue: deque[PaginationTask] = deque()
        self._reply_tasks: set[asyncio.Task[None]] = set()
        self._replayed_threads: set[str] = set()

    # ── Triggers ─────────────────────────────────────────────────────

    @property
    def top_level_started(self) -> bool:
        return self._top_level_task is not None

    @property
    def replies_in_flight(self) -> int:
        return len(self._reply_tasks) + len(self._reply_queue)

    @property
    def top_level_running(self) -> bool:
        return self._top_level_task is not None and not self._top_level_task.done()

    @property
    def in_flight(self) -> int:
        return self.replies_in_flight + (1 if self.top_level_running else 0)

    def observe(self, url: str, paging: PagingInfo | None) -> None:
        if paging is None or not paging.has_more_pages:
            return
        if self._cancel.is_cancelled or self.account_limited:
            return
        parent_id = reply_parent_id(url)
        if parent_id is None:
            self._start_top_level(url, paging)
        else:
            self._enqueue_reply_thread(url, paging, parent_id)

    def _start_top_level(self, url: str, paging: PagingInfo) -> None:
        if self._top_level_task is not None:
            return
        task = PaginationTask.from_paging(url, paging, identifier=TOP_LEVEL_IDENTIFIER, kind=ReplayKind.TOP_LEVEL)
        self._counters.replay_total_pages = task.total_pages
        structured_log(
            logger, "info", "replay.top_level_started",
            total=task.total,
            count=task.count,
            total_pages=task.total_pages,
        )
        self._top_level_task = asyncio.create_task(self._run_guarded(task))

    def _enqueue_reply_thread(self, url: str, paging: PagingInfo, parent_id: str) -> None:
        if parent_id in self._replayed_threads:
            return
        if paging.total < self._config.min_reply_total:
            return
        self._replayed_threads.add(parent_id)
        self._reply_queue.append(
            PaginationTask.from_paging(url, paging, identifier=parent_id, kind=ReplayKind.REPLY)
        )
        self._drain_reply_queue()

    def _drain_reply_queue(self) -> None:
        while (
            self._reply_queue
            and len(self._reply_tasks) < self._config.max_concurrent_reply_threads
            and not self._cancel.is_cancelled
            and not self.account_limited
        ):
            task = asyncio.create_task(self._run_guarded(self._reply_queue.popleft()))
            self._reply_tasks.add(task)
            task.add_done_callback(self._on_reply_done)

    def _on_reply_done(self, task: asyncio.Task[None]) -> None:
        self._reply_tasks.discard(task)
        self._drain_reply_queue()

    # ── Waiting and teardown ─────────────────────────────────────────

    async def wait_top_level(self) -> None:
        """Wait for top-level pagination to finish or the scan to be cancelled."""
        if self._top_level_task is None:
            return
        cancelled = asyncio.create_task(self._cancel.wait())
        try:
            await asyncio.wait({self._top_level_task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

    async def wait_replies(self) -> None:
        while self._reply_tasks and not self._cancel.is_cancelled:
            await asyncio.gather(*list(self._reply_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self._reply_queue.clear()
        tasks = [task for task in (self._top_level_task, *self._reply_tasks) if task is not None and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Page batches ─────────────────────────────────────────────────

    async def _run_guarded(self, task: PaginationTask) -> None:
        try:
            await self._run_task(task)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            structured_log(
                logger, "warning", "replay.task_failed",
                kind=task.kind.value,
                identifier=task.identifier,
                error=str(exc),
            )

    async def _run_task(self, task: PaginationTask) -> None:
        next_page = 1
        while next_page < task.total_pages:
            if self._cancel.is_cancelled or self.account_limited:
                return
            await self.budget.consume(task.kind.value)
            if self._cancel.is_cancelled:
                return

            batch = list(range(next_page, min(next_page + self.controller.concurrency, task.total_pages)))
            results = await asyncio.gather(
                *(self._fetch_with_retry(task, page_index) for page_index in batch),
                return_exceptions=True,
            )
            rate_limited = self._route_batch(task, batch, results)
            next_page = batch[-1] + 1

            if rate_limited:
                if not await self._handle_rate_limit(task):
                    return
            else:
                self.controller.on_success()

            if next_page < task.total_pages and not await self._cancel.sleep(self._config.batch_delay_seconds):
                return

        structured_log(
            logger, "info", "replay.task_completed",
            kind=task.kind.value,
            total_pages=task.total_pages,
            failed_pages=self._counters.failed_pages,
        )

    def _route_batch(
        self,
        task: PaginationTask,
        batch: list[int],
        results: list[FetchResult | BaseException],
    ) -> bool:
        rate_limited = False
        for page_index, result in zip(batch, results):
            if task.kind is ReplayKind.TOP_LEVEL:
                self._counters.replay_pages_processed += 1
            if isinstance(result, BaseException):
                self._counters.failed_pages += 1
                structured_log(logger, "debug", "replay.page_raised", page=page_index, error=str(result))
                continue
            if not result.ok:
                self._counters.failed_pages += 1
                rate_limited = rate_limited or result.is_rate_limited
                continue
            self._on_page(result.requested_url, result.payload, result.body_sample)
        return rate_limited

    async def _handle_rate_limit(self, task: PaginationTask) -> bool:
        action = self.controller.on_rate_limit()
        self.concurrency_history.append(self.controller.concurrency)
        structured_log(
            logger, "warning", "replay.rate_limited",
            kind=task.kind.value,
            action=action.value,
            concurrency=self.controller.concurrency,
            consecutive=self.controller.consecutive_rate_limits,
        )
        if action is RateLimitAction.ACCOUNT_LIMITED:
            self.account_limited = True
            self._reply_queue.clear()
            self._on_account_limited()
            return False
        if action is RateLimitAction.PAUSE:
            delay = self._config.rate_limit_pause_seconds + self._rng.uniform(
                0.0, self._config.rate_limit_pause_jitter_seconds
            )
        else:
            delay = self._config.rate_limit_backoff_seconds
        return await self._cancel.sleep(delay)

    async def _fetch_with_retry(self, task: PaginationTask, page_index: int) -> FetchResult:
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda result: result.is_rate_limited),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self._config.retry_backoff_seconds),
            sleep=self._sleep,
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(
            self._source.fetch_page,
            task.base_url,
            start=page_index * task.count,
            count=task.count,
        )
