"""Selector families and label heuristics for the comment UI.

Markup differs between layouts, so every family is an ordered fallback list.
The text heuristics live here too so they can be tested without a browser.
"""

from __future__ import annotations

import re

COMMENT_LIST_SELECTORS = (
    ".comments-comments-list",
    ".comments-comment-list",
    "[class*='comments-comments-list']",
    "[class*='comments-list']",
)
COMMENT_CONTAINER_SELECTORS = (
    "[data-id^='urn:li:comment:']",
    ".comments-comment-item",
    ".comments-comment-entity",
    "article.comments-comment-item",
)
COMMENT_NODE_SELECTOR = "[data-id^='urn:li:comment:']"
LOAD_MORE_SELECTORS = (
    "button[aria-label*='Load more comments']",
    "button.comments-comments-list__load-more-comments-button",
    "button[class*='load-more-comments']",
    "button.comments-comment-list__load-more-comments-button",
)
REPLY_BUTTON_SELECTORS = (
    "button.comments-comment-social-bar__replies-count",
    "button[class*='replies-count']",
    "button[class*='show-previous-replies']",
    "button[class*='load-more-replies']",
    "button",
)
SEE_MORE_SELECTORS = (
    "button.comments-comment-item__see-more",
    "button[class*='see-more']",
    "button[aria-label*='see more']",
)
SORT_TOGGLE_SELECTORS = (
    "button.comments-sort-order-toggle__dropdown",
    "[class*='comments-sort-order-toggle'] button",
    "button[aria-label*='Sort']",
    "button[aria-label*='sort']",
)
SORT_OPTION_SELECTORS = (
    "[class*='comments-sort-order-toggle'] [role='menuitem']",
    "[class*='comments-sort-order-toggle'] li",
    "[role='menu'] [role='menuitem']",
    ".artdeco-dropdown__content li",
    "[role='option']",
)
SORT_LABEL_SELECTORS = (
    ".comments-sort-order-toggle__dropdown",
    "[class*='comments-sort-order-toggle'] button",
    "[class*='comments-sort-order-toggle'] span",
)
COMMENTS_DISABLED_SELECTOR = "[class*='comments-disabled']"
SIGN_IN_SELECTORS = ("#session_key", "[data-test-id='sign-in-form']")
TOTAL_COMMENTS_SELECTORS = (
    ".social-details-social-counts__comments",
    "button[aria-label*='comments']",
    "[class*='social-counts__comments']",
)

AUTHOR_NAME_SELECTORS = (
    ".comments-post-meta__name-text span[aria-hidden='true']",
    ".comments-post-meta__name-text",
    ".comments-comment-meta__description-title",
    "a.comments-post-meta__actor-link span[dir='ltr']",
    "span.comments-post-meta__name span[aria-hidden='true']",
    ".comments-post-meta__name",
    "span.hoverable-link-text",
)
AUTHOR_TITLE_SELECTORS = (
    ".comments-post-meta__headline",
    ".comments-comment-meta__description-subtitle",
    "span.comments-post-meta__headline",
    "[class*='comment-meta__description-subtitle']",
    "[class*='post-meta__headline']",
)
PROFILE_LINK_SELECTOR = "a[href*='/in/']"

LOAD_MORE_TEXT_RE = re.compile(r"load\s*more\s*(comments)?", re.IGNORECASE)
REPLY_EXPANSION_RE = re.compile(
    r"view\s+\d+\s+repl|see\s+(previous|more)\s+repl|load\s+(previous|more)\s+repl|\d+\s+repl",
    re.IGNORECASE,
)
SORT_MENU_RE = re.compile(r"most relevant|most recent|relevant|recent|sort", re.IGNORECASE)
MOST_RECENT_RE = re.compile(r"most recent|reciente|récent|neueste|nieuwste|recente", re.IGNORECASE)
RECENT_OPTION_RE = re.compile(r"recent|reciente|récent|neueste|nieuwste", re.IGNORECASE)
SEE_MORE_RE = re.compile(r"see\s+more|…more|\.\.\.more", re.IGNORECASE)
TOTAL_COMMENTS_RE = re.compile(r"([\d,.]+)\s*comments?", re.IGNORECASE)

SINGLE_REPLY_LABELS = frozenset({"reply", "replies", "reply to comment"})
# "Load more comments" is sometimes just "1,234 more comments" after the first page.
MORE_COMMENTS_RE = re.compile(r"^[\d,.]+\s+more\s+comments?$", re.IGNORECASE)


def is_load_more_label(text: str, aria_label: str = "") -> bool:
    label = f"{text} {aria_label}".strip()
    if not label:
        return False
    return bool(LOAD_MORE_TEXT_RE.search(label) or MORE_COMMENTS_RE.match(text.strip()))


def is_reply_expansion_label(text: str, aria_label: str = "") -> bool:
    label = " ".join(f"{text} {aria_label}".split()).lower()
    if not label or label in SINGLE_REPLY_LABELS or text.strip().lower() in SINGLE_REPLY_LABELS:
        return False
    return bool(REPLY_EXPANSION_RE.search(label))


def is_most_recent_label(text: str) -> bool:
    return bool(MOST_RECENT_RE.search(text or ""))


def parse_comment_total(text: str) -> int:
    match = TOTAL_COMMENTS_RE.search(text or "")
    if not match:
        return 0
    digits = re.sub(r"[^\d]", "", match.group(1))
    return int(digits) if digits else 0
