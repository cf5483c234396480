from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from harvester.services.dom.types import (
    CommentContainerSnapshot,
    DomActivity,
    ElementInfo,
    PostState,
    PostStatus,
)
from harvester.services.interception.interceptor import InterceptedPayload, PayloadChannel, ResponseInterceptor
from harvester.services.replay.engine import ReplayConfig
from harvester.services.replay.source import FetchResult, build_page_url
from harvester.services.scan.cancellation import CancellationToken
from harvester.services.scan.config import ScanConfig

POST_URL = "https://www.linkedin.com/feed/update/urn:li:activity:7100000000000000000/"
COMMENTS_URL = (
    "https://www.linkedin.com/voyager/api/feed/comments"
    "?count=10&start=0&updateId=activity:7100000000000000000"
)


def fast_scan_config(**overrides: Any) -> ScanConfig:
    values: dict[str, Any] = {
        "replay": ReplayConfig(
            batch_delay_seconds=0.0,
            retry_backoff_seconds=0.0,
            rate_limit_backoff_seconds=0.0,
            rate_limit_pause_seconds=0.0,
            rate_limit_pause_jitter_seconds=0.0,
            budget_jitter_seconds=0.0,
            top_level_budget=1000,
            reply_budget=1000,
        ),
        "settle_seconds": 0.0,
        "sort_settle_seconds": 0.0,
        "first_intercept_timeout_seconds": 0.05,
        "intercept_fallback_timeout_seconds": 30.0,
        "quiet_window_seconds": 0.05,
        "quiet_check_seconds": 0.01,
        "quiet_max_wait_seconds": 2.0,
        "progress_throttle_seconds": 0.0,
        "buffer_poll_seconds": 0.01,
        "enrichment_interval_seconds": 30.0,
        "load_more_wait_seconds": 0.02,
        "reply_wait_seconds": 0.02,
        "progress_poll_seconds": 0.005,
        "no_button_rounds": 2,
        "reply_empty_polls_before_exit": 2,
    }
    values.update(overrides)
    return ScanConfig(**values)


def comment_item(
    text: str,
    *,
    index: int = 0,
    name: str = "Jane Doe",
    title: str = "Head of Growth",
    profile: str = "jane-doe",
) -> dict[str, Any]:
    return {
        "entityUrn": f"urn:li:comment:(activity:7100000000000000000,{7200000000000000000 + index})",
        "commentV2": {"text": text},
        "commenter": {
            "title": {"text": name},
            "subtitle": {"text": title},
            "navigationUrl": f"https://www.linkedin.com/in/{profile}",
        },
    }


def comment_page(
    texts: Sequence[str],
    *,
    start: int = 0,
    count: int = 10,
    total: int | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "elements": [comment_item(text, index=start + offset) for offset, text in enumerate(texts)],
    }
    if total is not None:
        payload["paging"] = {"start": start, "count": count, "total": total}
    return payload


class FakeReplaySource:
    """Serves replayed comment pages from a callback keyed by page start."""

    def __init__(
        self,
        pages: Callable[[int], dict[str, Any] | None] | None = None,
        *,
        status_code: int = 200,
    ) -> None:
        self._pages = pages or (lambda start: None)
        self._status_code = status_code
        self.calls: list[tuple[str, int, int]] = []

    async def fetch_page(self, base_url: str, *, start: int, count: int) -> FetchResult:
        self.calls.append((base_url, start, count))
        await asyncio.sleep(0)
        url = build_page_url(base_url, start=start, count=count)
        if self._status_code != 200:
            return FetchResult(
                requested_url=url,
                status_code=self._status_code,
                payload=None,
                body_sample="",
                error=f"http_{self._status_code}",
            )
        payload = self._pages(start)
        if payload is None:
            return FetchResult(requested_url=url, status_code=404, payload=None, body_sample="", error="http_404")
        return FetchResult(requested_url=url, status_code=200, payload=payload, body_sample=f"page-{start}", error=None)


class FakeDomDriver:
    """In-memory comment page driven by counters instead of a browser."""

    def __init__(
        self,
        *,
        state: PostState | None = None,
        sort_verified: bool = True,
        total_comments: int = 0,
        load_more_clicks: int = 0,
        reply_batches: Sequence[int] = (),
        snapshots: Sequence[CommentContainerSnapshot] = (),
        on_load_more: Callable[[int], None] | None = None,
        nodes_per_reply_click: int = 0,
    ) -> None:
        self.state = state or PostState(PostStatus.OK)
        self.sort_verified = sort_verified
        self.total_comments = total_comments
        self.load_more_remaining = load_more_clicks
        self.reply_batches = list(reply_batches)
        self.snapshots = list(snapshots)
        self.on_load_more = on_load_more
        self.load_more_clicked = 0
        self.load_more_attempts = 0
        self.nodes_per_reply_click = nodes_per_reply_click
        self.cancel: CancellationToken | None = None
        self.comment_nodes = 0
        self.observer_installed = False
        self.observer_removed = False
        self.fail_on: dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def bind_cancellation(self, cancel: CancellationToken) -> None:
        self.cancel = cancel

    async def current_url(self) -> str:
        return POST_URL

    async def detect_post_state(self) -> PostState:
        return self.state

    async def install_activity_observer(self) -> None:
        self.observer_installed = True

    async def read_activity(self) -> DomActivity:
        return DomActivity(comment_nodes=self.comment_nodes, seconds_since_change=999.0)

    async def remove_activity_observer(self) -> None:
        self.observer_removed = True

    async def switch_to_most_recent(self) -> bool:
        return self.sort_verified

    async def scroll_to_comments(self) -> None:
        self._maybe_fail("scroll_to_comments")

    async def read_total_comments(self) -> int:
        return self.total_comments

    async def expand_see_more(self) -> int:
        return 0

    async def has_load_more(self) -> bool:
        return self.load_more_remaining > 0

    async def click_load_more(self) -> bool:
        self.load_more_attempts += 1
        if self.load_more_remaining <= 0:
            return False
        self.load_more_remaining -= 1
        self.load_more_clicked += 1
        if self.on_load_more is not None:
            self.on_load_more(self.load_more_clicked)
        return True

    async def scroll_comments(self) -> None:
        return None

    async def count_unclicked_reply_buttons(self) -> int:
        return self.reply_batches[0] if self.reply_batches else 0

    async def click_reply_buttons(self, limit: int) -> int:
        if not self.reply_batches:
            return 0
        clicked = min(limit, self.reply_batches.pop(0))
        self.comment_nodes += clicked * self.nodes_per_reply_click
        return clicked

    async def snapshot_containers(self) -> list[CommentContainerSnapshot]:
        return list(self.snapshots)


class FakeEnvironment:
    def __init__(self, driver: FakeDomDriver, source: FakeReplaySource) -> None:
        self.driver = driver
        self.source = source
        self.closed = False
        self.token_providers: list[Callable[[], str | None]] = []

    def replay_source(self, token_provider: Callable[[], str | None]) -> FakeReplaySource:
        self.token_providers.append(token_provider)
        return self.source

    async def aclose(self) -> None:
        self.closed = True


class FakeEnvironmentFactory:
    def __init__(self, environment: FakeEnvironment) -> None:
        self.environment = environment
        self.opened: list[str] = []
        self.interceptors: list[ResponseInterceptor] = []

    async def open(self, post_url: str, interceptor: ResponseInterceptor) -> FakeEnvironment:
        self.opened.append(post_url)
        self.interceptors.append(interceptor)
        return self.environment


class FakeRequest:
    def __init__(self, headers: dict[str, str] | None = None) -> None:
        self.headers = headers or {}


class FakeResponse:
    """Stands in for a Playwright response object."""

    def __init__(
        self,
        url: str,
        body: str = "",
        *,
        headers: dict[str, str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.url = url
        self._body = body
        self._error = error
        self.request = FakeRequest(headers)

    async def text(self) -> str:
        if self._error is not None:
            raise self._error
        return self._body


def intercepted(
    payload: dict[str, Any],
    *,
    token: str,
    url: str = COMMENTS_URL,
    auth_token: str | None = None,
) -> InterceptedPayload:
    return InterceptedPayload(
        url=url,
        payload=payload,
        body_sample="",
        session_token=token,
        auth_token=auth_token,
    )


def new_channel(max_size: int = 50) -> PayloadChannel:
    return PayloadChannel(max_size=max_size)


def element(element_id: str, text: str = "", *, aria_label: str = "", clicked: bool = False) -> ElementInfo:
    return ElementInfo(element_id=element_id, text=text, aria_label=aria_label, clicked=clicked)
