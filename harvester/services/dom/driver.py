from __future__ import annotations

import asyncio
import logging
import re
from urllib.parse import urlsplit

from harvester.logging_utils import structured_log
from harvester.services.dom import selectors
from harvester.services.dom.types import (
    CommentContainerSnapshot,
    DomActivity,
    ElementInfo,
    PageHandle,
    PostProbe,
    PostState,
    PostStatus,
)
from harvester.services.scan.cancellation import CancellationToken

logger = logging.getLogger(__name__)

POST_PATH_RE = re.compile(r"^/(feed/update/|posts/|pulse/|in/[^/]+/recent-activity)")
SEE_MORE_CLICK_GAP_SECONDS = 0.06
REPLY_CLICK_GAP_SECONDS = 0.02
SORT_MENU_SETTLE_SECONDS = 0.3


def is_qualifying_post_url(url: str) -> bool:
    parts = urlsplit(url or "")
    host = (parts.hostname or "").lower()
    if host != "linkedin.com" and not host.endswith(".linkedin.com"):
        return False
    return bool(POST_PATH_RE.match(parts.path or ""))


def classify_post_state(probe: PostProbe) -> PostState:
    if not is_qualifying_post_url(probe.url):
        return PostState(PostStatus.NOT_POST_PAGE)
    if probe.comments_disabled:
        return PostState(PostStatus.COMMENTS_DISABLED)
    if probe.sign_in_form:
        return PostState(PostStatus.LOGGED_OUT)
    if not probe.comment_section:
        return PostState(PostStatus.NO_COMMENT_SECTION)
    return PostState(PostStatus.OK)


class DomInteractionDriver:
    """Comment-page heuristics on top of raw page primitives."""

    def __init__(self, page: PageHandle, *, sort_settle_seconds: float = 0.5) -> None:
        self._page = page
        self._sort_settle_seconds = sort_settle_seconds
        self._sleep = asyncio.sleep

    def bind_cancellation(self, cancel: CancellationToken) -> None:
        self._sleep = cancel.pause

    async def current_url(self) -> str:
        return self._page.url

    async def detect_post_state(self) -> PostState:
        probe = PostProbe(
            url=self._page.url,
            comments_disabled=await self._page.exists([selectors.COMMENTS_DISABLED_SELECTOR]),
            comment_section=await self._page.exists(
                [*selectors.COMMENT_LIST_SELECTORS, *selectors.COMMENT_CONTAINER_SELECTORS]
            ),
            sign_in_form=await self._page.exists(selectors.SIGN_IN_SELECTORS),
        )
        return classify_post_state(probe)

    async def install_activity_observer(self) -> None:
        await self._page.install_observer()

    async def read_activity(self) -> DomActivity:
        return await self._page.read_observer()

    async def remove_activity_observer(self) -> None:
        await self._page.remove_observer()

    # ── Sort order ───────────────────────────────────────────────────

    async def switch_to_most_recent(self) -> bool:
        current = await self._page.text_of(selectors.SORT_LABEL_SELECTORS)
        if selectors.is_most_recent_label(current):
            return True

        toggles = await self._page.query(selectors.SORT_TOGGLE_SELECTORS)
        toggle = next(
            (element for element in toggles if selectors.SORT_MENU_RE.search(f"{element.text} {element.aria_label}")),
            toggles[0] if toggles else None,
        )
        if toggle is None:
            structured_log(logger, "info", "dom.sort_toggle_missing")
            return False
        await self._page.click(toggle)
        await self._sleep(SORT_MENU_SETTLE_SECONDS)

        options = await self._page.query(selectors.SORT_OPTION_SELECTORS)
        option = next(
            (element for element in options if selectors.RECENT_OPTION_RE.search(f"{element.text} {element.aria_label}")),
            None,
        )
        if option is None:
            structured_log(logger, "info", "dom.sort_option_missing", option_count=len(options))
            return False
        await self._page.click(option)
        await self._sleep(self._sort_settle_seconds)
        return selectors.is_most_recent_label(await self._page.text_of(selectors.SORT_LABEL_SELECTORS))

    # ── Scrolling and counts ─────────────────────────────────────────

    async def scroll_to_comments(self) -> None:
        await self._page.scroll_into_view(
            [*selectors.COMMENT_LIST_SELECTORS, *selectors.COMMENT_CONTAINER_SELECTORS]
        )

    async def scroll_comments(self) -> None:
        await self._page.scroll_comments()
        await self._page.scroll_to_bottom()

    async def read_total_comments(self) -> int:
        return selectors.parse_comment_total(await self._page.text_of(selectors.TOTAL_COMMENTS_SELECTORS))

    # ── Controls ─────────────────────────────────────────────────────

    async def expand_see_more(self) -> int:
        clicked = 0
        for element in await self._page.query(selectors.SEE_MORE_SELECTORS):
            if element.clicked or not selectors.SEE_MORE_RE.search(f"{element.text} {element.aria_label}"):
                continue
            if await self._page.click(element):
                await self._page.mark_clicked(element)
                clicked += 1
                await self._sleep(SEE_MORE_CLICK_GAP_SECONDS)
        return clicked

    async def _find_load_more(self) -> ElementInfo | None:
        for element in await self._page.query(selectors.LOAD_MORE_SELECTORS):
            if selectors.is_load_more_label(element.text, element.aria_label):
                return element
        for element in await self._page.query(["button"]):
            if selectors.is_load_more_label(element.text, element.aria_label):
                return element
        return None

    async def has_load_more(self) -> bool:
        return await self._find_load_more() is not None

    async def click_load_more(self) -> bool:
        element = await self._find_load_more()
        if element is None:
            return False
        return await self._page.click(element)

    async def _unclicked_reply_buttons(self) -> list[ElementInfo]:
        return [
            element
            for element in await self._page.query(selectors.REPLY_BUTTON_SELECTORS)
            if not element.clicked and selectors.is_reply_expansion_label(element.text, element.aria_label)
        ]

    async def count_unclicked_reply_buttons(self) -> int:
        return len(await self._unclicked_reply_buttons())

    async def click_reply_buttons(self, limit: int) -> int:
        clicked = 0
        for element in (await self._unclicked_reply_buttons())[:limit]:
            await self._page.mark_clicked(element)
            if await self._page.click(element):
                clicked += 1
            await self._sleep(REPLY_CLICK_GAP_SECONDS)
        return clicked

    async def snapshot_containers(self) -> list[CommentContainerSnapshot]:
        return [CommentContainerSnapshot.from_raw(raw) for raw in await self._page.snapshot_containers()]
