from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
import logging
import re

from harvester.logging_utils import structured_log
from harvester.services.dom.types import CommentContainerSnapshot
from harvester.services.emails.extraction import extract_emails, normalize_email
from harvester.services.payloads.parser import normalize_profile_url
from harvester.services.records.store import EmailRecordStore
from harvester.services.records.types import (
    UNKNOWN_AUTHOR,
    EmailRecord,
    ScanCounters,
    SourceType,
)
from harvester.services.text import make_snippet, sanitize_text

logger = logging.getLogger(__name__)

FALLBACK_SNIPPET = "Extracted via DOM fallback"
MAX_NAME_LENGTH = 100
PROFILE_ARIA_RE = re.compile(r"^(?:view\s+)?(.+?)(?:['’]s)?\s+(?:profile|graphic link)", re.IGNORECASE)
NAME_NOISE_RE = re.compile(r"^(?:•|·|\d+(?:st|nd|rd|th)|author|premium|verified)$", re.IGNORECASE)


def _first_line(value: str) -> str:
    return value.strip().splitlines()[0].strip() if value.strip() else ""


def _usable_name(value: str) -> str:
    name = sanitize_text(_first_line(value))
    if not name or len(name) > MAX_NAME_LENGTH or "@" in name or NAME_NOISE_RE.match(name):
        return ""
    return name


def resolve_author_name(snapshot: CommentContainerSnapshot) -> str:
    for candidate in snapshot.name_candidates:
        name = _usable_name(candidate)
        if name:
            return name
    for link in snapshot.profile_links:
        aria_match = PROFILE_ARIA_RE.match(link.aria_label.strip())
        if aria_match:
            name = _usable_name(aria_match.group(1))
            if name:
                return name
        name = _usable_name(link.text)
        if name:
            return name
    return _usable_name(snapshot.strong_text) or UNKNOWN_AUTHOR


def resolve_author_title(snapshot: CommentContainerSnapshot, *, author_name: str = "") -> str:
    for candidate in snapshot.title_candidates:
        title = sanitize_text(_first_line(candidate))
        if title and title != author_name:
            return title
    return ""


def resolve_profile_url(snapshot: CommentContainerSnapshot) -> str:
    for link in snapshot.profile_links:
        if "/in/" in link.href:
            return normalize_profile_url(link.href.split("?")[0])
    return ""


def extract_container_emails(snapshot: CommentContainerSnapshot) -> list[str]:
    """Emails from one container's own text and mailto links only."""
    found: list[str] = []
    for href in snapshot.mailto_links:
        email = normalize_email(href.split(":", 1)[-1].split("?")[0])
        if email and email not in found:
            found.append(email)
    for email in extract_emails(snapshot.text):
        if email not in found:
            found.append(email)
    return found


def run_fallback_scan(
    snapshots: Sequence[CommentContainerSnapshot],
    store: EmailRecordStore,
    counters: ScanCounters,
    *,
    post_url: str,
    extracted_at: datetime,
    max_emails_per_comment: int = 5,
) -> int:
    added = 0
    for snapshot in snapshots:
        emails = extract_container_emails(snapshot)
        if not emails:
            continue
        author_name = resolve_author_name(snapshot)
        record_fields = {
            "author_name": author_name,
            "author_title": resolve_author_title(snapshot, author_name=author_name),
            "profile_url": resolve_profile_url(snapshot),
            "post_url": post_url,
            "extracted_at": extracted_at,
            "comment_snippet": make_snippet(snapshot.text) or FALLBACK_SNIPPET,
            "source_type": SourceType.FALLBACK,
        }
        for email in emails[:max_emails_per_comment]:
            if store.merge(EmailRecord(email=email, **record_fields)):
                counters.dom_emails += 1
                added += 1
    structured_log(
        logger, "info", "dom.fallback_scan_completed",
        containers=len(snapshots),
        emails_added=added,
    )
    return added


def enrich_from_snapshots(
    snapshots: Sequence[CommentContainerSnapshot],
    store: EmailRecordStore,
) -> int:
    """Fill placeholder authors of known emails from the rendered comments."""
    pending = {record.email for record in store.needing_enrichment()}
    if not pending:
        return 0
    enriched = 0
    for snapshot in snapshots:
        lowered = snapshot.text.lower()
        matches = [email for email in pending if email in lowered]
        if not matches:
            continue
        author_name = resolve_author_name(snapshot)
        title = resolve_author_title(snapshot, author_name=author_name)
        profile_url = resolve_profile_url(snapshot)
        for email in matches:
            if store.fill_author(email, author_name=author_name, author_title=title, profile_url=profile_url):
                enriched += 1
    return enriched
