from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from harvester.logging_utils import structured_log
from harvester.services.browser import scripts
from harvester.services.dom import selectors
from harvester.services.dom.types import DomActivity, ElementInfo

logger = logging.getLogger(__name__)

CLICK_TIMEOUT_MS = 3000


class PlaywrightPageHandle:
    """PageHandle backed by a live Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    def _locator(self, element: ElementInfo):
        return self._page.locator(f'[{scripts.TAG_ATTRIBUTE}="{element.element_id}"]').first

    async def query(self, selector_list: Sequence[str]) -> list[ElementInfo]:
        raw = await self._page.evaluate(
            scripts.QUERY_ELEMENTS,
            {
                "selectors": list(selector_list),
                "tagAttr": scripts.TAG_ATTRIBUTE,
                "clickedAttr": scripts.CLICKED_ATTRIBUTE,
            },
        )
        return [
            ElementInfo(
                element_id=str(item["id"]),
                text=str(item.get("text") or ""),
                aria_label=str(item.get("ariaLabel") or ""),
                clicked=bool(item.get("clicked")),
            )
            for item in raw or []
        ]

    async def click(self, element: ElementInfo) -> bool:
        try:
            await self._locator(element).click(timeout=CLICK_TIMEOUT_MS)
        except PlaywrightError as exc:
            structured_log(logger, "debug", "browser.click_failed", element=element.text[:40], error=str(exc))
            return False
        return True

    async def mark_clicked(self, element: ElementInfo) -> None:
        try:
            await self._locator(element).evaluate(
                "(el, attr) => el.setAttribute(attr, '1')",
                scripts.CLICKED_ATTRIBUTE,
            )
        except PlaywrightError as exc:
            structured_log(logger, "debug", "browser.mark_failed", error=str(exc))

    async def exists(self, selector_list: Sequence[str]) -> bool:
        return bool(await self._page.evaluate(scripts.EXISTS, list(selector_list)))

    async def text_of(self, selector_list: Sequence[str]) -> str:
        return str(await self._page.evaluate(scripts.FIRST_TEXT, list(selector_list)) or "")

    async def scroll_into_view(self, selector_list: Sequence[str]) -> bool:
        return bool(await self._page.evaluate(scripts.SCROLL_INTO_VIEW, list(selector_list)))

    async def scroll_comments(self) -> None:
        await self._page.evaluate(scripts.SCROLL_COMMENTS, list(selectors.COMMENT_LIST_SELECTORS))

    async def scroll_to_bottom(self) -> None:
        await self._page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

    async def install_observer(self) -> None:
        await self._page.evaluate(scripts.INSTALL_OBSERVER, selectors.COMMENT_NODE_SELECTOR)

    async def read_observer(self) -> DomActivity:
        raw = await self._page.evaluate(scripts.READ_OBSERVER)
        return DomActivity(
            comment_nodes=int(raw.get("nodes") or 0),
            seconds_since_change=float(raw.get("msSinceChange") or 0) / 1000.0,
        )

    async def remove_observer(self) -> None:
        try:
            await self._page.evaluate(scripts.REMOVE_OBSERVER)
        except PlaywrightError as exc:
            structured_log(logger, "debug", "browser.observer_remove_failed", error=str(exc))

    async def snapshot_containers(self) -> list[dict[str, Any]]:
        return await self._page.evaluate(
            scripts.SNAPSHOT_CONTAINERS,
            {
                "containerSelectors": list(selectors.COMMENT_CONTAINER_SELECTORS),
                "nameSelectors": list(selectors.AUTHOR_NAME_SELECTORS),
                "titleSelectors": list(selectors.AUTHOR_TITLE_SELECTORS),
                "profileSelector": selectors.PROFILE_LINK_SELECTOR,
            },
        )
