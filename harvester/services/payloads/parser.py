from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any
from urllib.parse import parse_qs, urlsplit

from harvester.logging_utils import structured_log
from harvester.services.emails.extraction import extract_emails, may_contain_email
from harvester.services.payloads import paths
from harvester.services.records.types import UNKNOWN_AUTHOR
from harvester.services.text import make_snippet, sanitize_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_EMAILS_PER_COMMENT = 5
PROFILE_URL_PREFIX = "https://www.linkedin.com/in/"
REPLY_SOURCE_PARAM = "commentUrn"
COMMENT_URN_MARKERS = ("urn:li:comment", "urn:li:fsd_comment")
BARE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z0-9._-]{2,}$")
BARE_IDENTIFIER_MIN_LENGTH = 21
MIN_IDENTIFIER_MATCH_LENGTH = 8


@dataclass(frozen=True)
class PagingInfo:
    total: int
    count: int
    start: int = 0

    @property
    def has_more_pages(self) -> bool:
        return self.count > 0 and self.total > self.count


@dataclass(frozen=True)
class ParsedComment:
    text: str
    author_name: str
    author_title: str
    profile_url: str
    emails: tuple[str, ...]
    dropped_emails: int = 0

    @property
    def snippet(self) -> str:
        return make_snippet(self.text)


@dataclass
class ParsedPayload:
    comments: list[ParsedComment] = field(default_factory=list)
    paging: PagingInfo | None = None
    is_reply_source: bool = False
    parent_comment_id: str | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def email_count(self) -> int:
        return sum(len(comment.emails) for comment in self.comments)


def reply_parent_id(url: str) -> str | None:
    values = parse_qs(urlsplit(url).query).get(REPLY_SOURCE_PARAM)
    if not values:
        return None
    return values[0] or None


def parse_paging(payload: Any) -> PagingInfo | None:
    raw = paths.first_resolved(payload, paths.PAGING_PATHS)
    if not isinstance(raw, dict):
        return None
    total = _as_int(raw.get("total"))
    count = _as_int(raw.get("count"))
    if total is None or count is None:
        return None
    return PagingInfo(total=total, count=count, start=_as_int(raw.get("start")) or 0)


def parse_payload(
    payload: Any,
    url: str,
    *,
    max_emails_per_comment: int = DEFAULT_MAX_EMAILS_PER_COMMENT,
) -> ParsedPayload:
    """Map one decoded response body to comment tuples.

    Never raises: an unexpected shape yields an empty result with a note.
    """
    parent_id = reply_parent_id(url)
    result = ParsedPayload(is_reply_source=parent_id is not None, parent_comment_id=parent_id)
    if not isinstance(payload, dict):
        return result

    try:
        result.paging = parse_paging(payload)
        included = _as_list(payload.get("included"))
        for item in _candidate_items(payload, included):
            comment = _parse_comment_item(
                item,
                included,
                max_emails_per_comment=max_emails_per_comment,
            )
            if comment is None:
                continue
            if comment.dropped_emails:
                result.notes.append(
                    f"truncated {comment.dropped_emails} extra emails from one comment"
                )
            result.comments.append(comment)
    except Exception as exc:
        structured_log(
            logger, "warning", "payload.parse_failed",
            url=url.split("?")[0],
            error=str(exc),
        )
        result.notes.append(f"parse_error: {exc}")
    return result


def _candidate_items(payload: dict[str, Any], included: list[Any]) -> list[dict[str, Any]]:
    roots: list[Any] = []
    roots.extend(_as_list(payload.get("elements")))
    roots.extend(_as_list(paths.resolve_path(payload, ("data", "elements"))))
    roots.extend(included)

    items: list[dict[str, Any]] = []
    seen: set[int] = set()
    for root in roots:
        if not isinstance(root, dict):
            continue
        for item in [root, *_nested_comments(root)]:
            if id(item) in seen:
                continue
            seen.add(id(item))
            items.append(item)
    return items


def _nested_comments(item: dict[str, Any]) -> list[dict[str, Any]]:
    nested: list[dict[str, Any]] = []
    for path in paths.NESTED_COMMENT_PATHS:
        for child in _as_list(paths.resolve_path(item, path)):
            if isinstance(child, dict):
                nested.append(child)
    return nested


def is_comment_item(item: dict[str, Any]) -> bool:
    identifier = str(item.get("entityUrn") or item.get("urn") or "")
    if any(marker in identifier for marker in COMMENT_URN_MARKERS):
        return True
    return "Comment" in str(item.get("$type") or "")


def _parse_comment_item(
    item: dict[str, Any],
    included: list[Any],
    *,
    max_emails_per_comment: int,
) -> ParsedComment | None:
    if not is_comment_item(item):
        return None
    text = paths.first_string(item, paths.COMMENT_TEXT_PATHS)
    if not may_contain_email(text):
        return None
    emails = extract_emails(text)
    if not emails:
        return None

    name = _resolve_author_name(item)
    title = paths.first_string(item, paths.AUTHOR_TITLE_PATHS)
    profile = paths.first_string(item, paths.PROFILE_URL_PATHS)

    if not name or not title or not profile:
        actor = _find_included_actor(item, included)
        if actor is not None:
            name = name or _resolve_included_name(actor)
            title = title or paths.first_string(actor, paths.INCLUDED_TITLE_PATHS)
            profile = profile or paths.first_string(actor, paths.INCLUDED_PROFILE_PATHS)

    kept = tuple(emails[:max_emails_per_comment])
    return ParsedComment(
        text=text,
        author_name=_clean_author_name(name),
        author_title=sanitize_text(title),
        profile_url=normalize_profile_url(profile),
        emails=kept,
        dropped_emails=len(emails) - len(kept),
    )


def _resolve_author_name(item: dict[str, Any]) -> str:
    name = paths.first_string(item, paths.AUTHOR_NAME_PATHS)
    if name:
        return name
    first = paths.first_string(item, paths.AUTHOR_FIRST_NAME_PATHS)
    last = paths.first_string(item, paths.AUTHOR_LAST_NAME_PATHS)
    return f"{first} {last}".strip()


def _resolve_included_name(actor: dict[str, Any]) -> str:
    first = paths.first_string(actor, paths.INCLUDED_FIRST_NAME_PATHS)
    last = paths.first_string(actor, paths.INCLUDED_LAST_NAME_PATHS)
    full = f"{first} {last}".strip()
    return full or paths.first_string(actor, paths.INCLUDED_NAME_PATHS)


def _actor_reference(item: dict[str, Any]) -> str:
    for path in paths.ACTOR_REFERENCE_PATHS:
        value = paths.resolve_path(item, path)
        if isinstance(value, dict):
            value = value.get("entityUrn") or value.get("urn")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _find_included_actor(item: dict[str, Any], included: list[Any]) -> dict[str, Any] | None:
    reference = _actor_reference(item)
    if not reference:
        return None
    for entry in included:
        if not isinstance(entry, dict) or entry is item:
            continue
        identifier = paths.first_string(entry, paths.ITEM_IDENTIFIER_PATHS)
        if len(identifier) < MIN_IDENTIFIER_MATCH_LENGTH or is_comment_item(entry):
            continue
        if identifier == reference or identifier in reference or reference in identifier:
            return entry
    return None


def _clean_author_name(raw: str) -> str:
    name = sanitize_text(raw)
    if not name:
        return UNKNOWN_AUTHOR
    if len(name) >= BARE_IDENTIFIER_MIN_LENGTH and BARE_IDENTIFIER_RE.match(name):
        return UNKNOWN_AUTHOR
    return name


def normalize_profile_url(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        return ""
    if value.startswith("http"):
        return value
    if value.startswith("/in/"):
        return f"https://www.linkedin.com{value}"
    return f"{PROFILE_URL_PREFIX}{value}"


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
