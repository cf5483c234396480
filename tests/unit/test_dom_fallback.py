from __future__ import annotations

from datetime import datetime, timezone

from harvester.services.dom.fallback import (
    FALLBACK_SNIPPET,
    enrich_from_snapshots,
    extract_container_emails,
    resolve_author_name,
    resolve_author_title,
    resolve_profile_url,
    run_fallback_scan,
)
from harvester.services.dom.types import CommentContainerSnapshot, ProfileLink
from harvester.services.records.store import EmailRecordStore
from harvester.services.records.types import UNKNOWN_AUTHOR, EmailRecord, ScanCounters, SourceType

from tests.unit.helpers import POST_URL

NOW = datetime(2026, 1, 2, tzinfo=timezone.utc)


def test_author_name_candidates_skip_noise() -> None:
    snapshot = CommentContainerSnapshot(
        text="",
        name_candidates=("", "2nd", "Premium", "jane@acme.io", "Jane Doe\nHead of Growth"),
    )
    assert resolve_author_name(snapshot) == "Jane Doe"


def test_author_name_from_profile_link_aria_label() -> None:
    snapshot = CommentContainerSnapshot(
        text="",
        profile_links=(ProfileLink(href="https://www.linkedin.com/in/jane", aria_label="View Jane Doe’s profile"),),
    )
    assert resolve_author_name(snapshot) == "Jane Doe"


def test_author_name_defaults_to_unknown() -> None:
    assert resolve_author_name(CommentContainerSnapshot(text="hello")) == UNKNOWN_AUTHOR


def test_title_skips_the_author_name() -> None:
    snapshot = CommentContainerSnapshot(text="", title_candidates=("Jane Doe", "CTO at Acme"))
    assert resolve_author_title(snapshot, author_name="Jane Doe") == "CTO at Acme"


def test_profile_url_requires_member_path() -> None:
    snapshot = CommentContainerSnapshot(
        text="",
        profile_links=(
            ProfileLink(href="https://www.linkedin.com/company/acme"),
            ProfileLink(href="https://www.linkedin.com/in/jane-doe?miniProfileUrn=x"),
        ),
    )
    assert resolve_profile_url(snapshot).startswith("https://www.linkedin.com/in/jane-doe")
    assert "?" not in resolve_profile_url(snapshot)


def test_container_emails_include_mailto_links_once() -> None:
    snapshot = CommentContainerSnapshot(
        text="Write to Jane@Acme.io or ops@acme.io",
        mailto_links=("mailto:jane@acme.io?subject=hi",),
    )
    assert extract_container_emails(snapshot) == ["jane@acme.io", "ops@acme.io"]


def test_fallback_scan_adds_records_and_counts_dom_emails() -> None:
    counters = ScanCounters()
    store = EmailRecordStore(counters)
    snapshots = [
        CommentContainerSnapshot(text="Interested dana@acme.io", name_candidates=("Dana Smith",)),
        CommentContainerSnapshot(text="no email here"),
        CommentContainerSnapshot(text="", mailto_links=("mailto:dana@acme.io",)),
    ]

    added = run_fallback_scan(snapshots, store, counters, post_url=POST_URL, extracted_at=NOW)

    assert added == 1
    assert counters.dom_emails == 1
    record = store.get("dana@acme.io")
    assert record.source_type is SourceType.FALLBACK
    assert record.author_name == "Dana Smith"
    assert record.post_url == POST_URL
    assert record.seen_count == 2


def test_fallback_snippet_placeholder_for_mailto_only_containers() -> None:
    counters = ScanCounters()
    store = EmailRecordStore(counters)

    run_fallback_scan(
        [CommentContainerSnapshot(text="", mailto_links=("mailto:ops@acme.io",))],
        store,
        counters,
        post_url=POST_URL,
        extracted_at=NOW,
    )

    assert store.get("ops@acme.io").comment_snippet == FALLBACK_SNIPPET


def test_enrichment_fills_placeholder_authors() -> None:
    store = EmailRecordStore(ScanCounters())
    store.merge(EmailRecord(email="jane@acme.io", author_name=UNKNOWN_AUTHOR))
    store.merge(EmailRecord(email="kept@acme.io", author_name="Kept", author_title="Lead", profile_url="x"))
    snapshots = [
        CommentContainerSnapshot(
            text="Send it to JANE@acme.io",
            name_candidates=("Jane Doe",),
            title_candidates=("Head of Growth",),
            profile_links=(ProfileLink(href="https://www.linkedin.com/in/jane-doe"),),
        )
    ]

    assert enrich_from_snapshots(snapshots, store) == 1

    record = store.get("jane@acme.io")
    assert record.author_name == "Jane Doe"
    assert record.author_title == "Head of Growth"
    assert record.seen_count == 1
    assert enrich_from_snapshots([], EmailRecordStore(ScanCounters())) == 0
