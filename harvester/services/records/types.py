from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

UNKNOWN_AUTHOR = "Unknown User"
PLACEHOLDER_AUTHOR_NAMES = frozenset({"", "Unknown", UNKNOWN_AUTHOR})


class SourceType(StrEnum):
    COMMENT = "comment"
    REPLY = "reply"
    FALLBACK = "fallback"


def is_placeholder_name(name: str | None) -> bool:
    return (name or "").strip() in PLACEHOLDER_AUTHOR_NAMES


@dataclass
class EmailRecord:
    email: str
    author_name: str = ""
    author_title: str = ""
    profile_url: str = ""
    post_url: str = ""
    extracted_at: datetime | None = None
    comment_snippet: str = ""
    source_type: SourceType = SourceType.COMMENT
    seen_count: int = 1

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["source_type"] = self.source_type.value
        payload["extracted_at"] = self.extracted_at.isoformat() if self.extracted_at else None
        return payload


@dataclass
class ScanCounters:
    comments_scanned: int = 0
    emails_found: int = 0
    duplicates_merged: int = 0
    replies_expanded: int = 0
    intercepted_requests: int = 0
    api_emails: int = 0
    reply_emails: int = 0
    dom_emails: int = 0
    failed_pages: int = 0
    payload_truncations: int = 0
    replay_total_pages: int = 0
    replay_pages_processed: int = 0
    total_comments: int = 0
    notes: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("notes")
        return payload
