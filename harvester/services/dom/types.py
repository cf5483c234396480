from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from harvester.services.scan.cancellation import CancellationToken


class PostStatus(StrEnum):
    OK = "ok"
    NOT_POST_PAGE = "not_post_page"
    COMMENTS_DISABLED = "comments_disabled"
    NO_COMMENT_SECTION = "no_comment_section"
    LOGGED_OUT = "logged_out"


POST_STATUS_MESSAGES = {
    PostStatus.OK: "Ready",
    PostStatus.NOT_POST_PAGE: "Not a post page • Open a post to scan",
    PostStatus.COMMENTS_DISABLED: "Comments are disabled on this post.",
    PostStatus.NO_COMMENT_SECTION: "Comments section not found. Scroll to comments and try again.",
    PostStatus.LOGGED_OUT: "Please log in to LinkedIn first.",
}


@dataclass(frozen=True)
class PostState:
    status: PostStatus

    @property
    def ok(self) -> bool:
        return self.status is PostStatus.OK

    @property
    def message(self) -> str:
        return POST_STATUS_MESSAGES[self.status]


@dataclass(frozen=True)
class ElementInfo:
    element_id: str
    text: str = ""
    aria_label: str = ""
    clicked: bool = False


@dataclass(frozen=True)
class DomActivity:
    comment_nodes: int
    seconds_since_change: float


@dataclass(frozen=True)
class ProfileLink:
    href: str
    text: str = ""
    aria_label: str = ""


@dataclass(frozen=True)
class CommentContainerSnapshot:
    text: str
    mailto_links: tuple[str, ...] = ()
    name_candidates: tuple[str, ...] = ()
    title_candidates: tuple[str, ...] = ()
    profile_links: tuple[ProfileLink, ...] = ()
    strong_text: str = ""
    comment_id: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> CommentContainerSnapshot:
        return cls(
            text=str(raw.get("text") or ""),
            mailto_links=tuple(str(link) for link in raw.get("mailtos") or ()),
            name_candidates=tuple(str(value) for value in raw.get("names") or ()),
            title_candidates=tuple(str(value) for value in raw.get("titles") or ()),
            profile_links=tuple(
                ProfileLink(
                    href=str(link.get("href") or ""),
                    text=str(link.get("text") or ""),
                    aria_label=str(link.get("ariaLabel") or ""),
                )
                for link in raw.get("profileLinks") or ()
                if isinstance(link, dict)
            ),
            strong_text=str(raw.get("strong") or ""),
            comment_id=str(raw.get("id") or ""),
        )


@dataclass(frozen=True)
class PostProbe:
    url: str
    comments_disabled: bool = False
    comment_section: bool = False
    sign_in_form: bool = False


class PageHandle(Protocol):
    """Browser primitives the interaction driver is built on."""

    @property
    def url(self) -> str:
        ...

    async def query(self, selectors: Sequence[str]) -> list[ElementInfo]:
        ...

    async def click(self, element: ElementInfo) -> bool:
        ...

    async def mark_clicked(self, element: ElementInfo) -> None:
        ...

    async def exists(self, selectors: Sequence[str]) -> bool:
        ...

    async def text_of(self, selectors: Sequence[str]) -> str:
        ...

    async def scroll_into_view(self, selectors: Sequence[str]) -> bool:
        ...

    async def scroll_comments(self) -> None:
        ...

    async def scroll_to_bottom(self) -> None:
        ...

    async def install_observer(self) -> None:
        ...

    async def read_observer(self) -> DomActivity:
        ...

    async def remove_observer(self) -> None:
        ...

    async def snapshot_containers(self) -> list[dict[str, Any]]:
        ...


class DomDriver(Protocol):
    """Comment-page operations the scan orchestrator relies on."""

    def bind_cancellation(self, cancel: CancellationToken) -> None:
        ...

    async def current_url(self) -> str:
        ...

    async def detect_post_state(self) -> PostState:
        ...

    async def install_activity_observer(self) -> None:
        ...

    async def read_activity(self) -> DomActivity:
        ...

    async def remove_activity_observer(self) -> None:
        ...

    async def switch_to_most_recent(self) -> bool:
        ...

    async def scroll_to_comments(self) -> None:
        ...

    async def read_total_comments(self) -> int:
        ...

    async def expand_see_more(self) -> int:
        ...

    async def has_load_more(self) -> bool:
        ...

    async def click_load_more(self) -> bool:
        ...

    async def scroll_comments(self) -> None:
        ...

    async def count_unclicked_reply_buttons(self) -> int:
        ...

    async def click_reply_buttons(self, limit: int) -> int:
        ...

    async def snapshot_containers(self) -> list[CommentContainerSnapshot]:
        ...
