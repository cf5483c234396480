from __future__ import annotations

from typing import Any

from harvester.services.payloads.parser import PagingInfo
from harvester.services.records.types import EmailRecord, SourceType
from harvester.services.scan.cancellation import CancelReason
from harvester.services.scan.events import PROGRESS_EVENT, TERMINAL_EVENT, ScanEventPublisher
from harvester.services.scan.ingest import MAX_NOTES, PayloadIngestor
from harvester.services.scan.progress import ProgressReporter
from harvester.services.scan.session import ScanPhase, ScanSession

from tests.unit.helpers import COMMENTS_URL, POST_URL, comment_page, fast_scan_config, intercepted

TOKEN = "scan-token-1234"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _session(**kwargs: Any) -> ScanSession:
    return ScanSession(token=TOKEN, post_url=POST_URL, config=fast_scan_config(), **kwargs)


# ── Ingestion ────────────────────────────────────────────────────────


def test_ingest_rejects_foreign_session_tokens() -> None:
    session = _session()
    ingestor = PayloadIngestor(session=session)

    accepted = ingestor.ingest(intercepted(comment_page(["jane@acme.io"]), token="someone-else"))

    assert accepted is False
    assert ingestor.rejected_messages == 1
    assert len(session.store) == 0
    assert session.counters.intercepted_requests == 0


def test_ingest_merges_records_and_tracks_auth_token() -> None:
    session = _session()
    observed: list[tuple[str, PagingInfo | None]] = []
    progress_calls: list[int] = []
    ingestor = PayloadIngestor(session=session, on_progress=lambda: progress_calls.append(1))
    ingestor.paging_observer = lambda url, paging: observed.append((url, paging))

    accepted = ingestor.ingest(
        intercepted(
            comment_page(["reach me at Jane@Acme.io", "nothing here"], total=40),
            token=TOKEN,
            auth_token="ajax:42",
        )
    )

    assert accepted is True
    assert session.auth_token == "ajax:42"
    assert session.first_intercept.is_set()
    assert session.counters.intercepted_requests == 1
    assert session.counters.comments_scanned == 1
    record = session.store.get("jane@acme.io")
    assert record is not None
    assert record.post_url == POST_URL
    assert record.source_type is SourceType.COMMENT
    assert record.author_name == "Jane Doe"
    assert observed == [(COMMENTS_URL, PagingInfo(total=40, count=10, start=0))]
    assert progress_calls == [1]


def test_duplicate_payloads_are_ingested_once() -> None:
    session = _session()
    ingestor = PayloadIngestor(session=session)
    item = intercepted(comment_page(["jane@acme.io"]), token=TOKEN)

    assert ingestor.ingest(item) is True
    assert ingestor.ingest(item) is False

    assert session.counters.intercepted_requests == 1
    assert session.store.get("jane@acme.io").seen_count == 1


def test_ingest_stops_after_cancellation() -> None:
    session = _session()
    ingestor = PayloadIngestor(session=session)
    session.cancel.cancel(CancelReason.STOPPED)

    assert ingestor.ingest(intercepted(comment_page(["jane@acme.io"]), token=TOKEN)) is False
    assert ingestor.ingest_replayed(COMMENTS_URL, comment_page(["jane@acme.io"]), "") is False
    assert len(session.store) == 0


def test_notes_are_capped() -> None:
    session = _session()
    session.counters.notes.extend(f"note {index}" for index in range(MAX_NOTES - 1))
    ingestor = PayloadIngestor(session=session)
    crowded = " ".join(f"user{index}@acme.io" for index in range(8))

    ingestor.ingest(intercepted(comment_page([crowded]), token=TOKEN))
    ingestor.ingest(intercepted(comment_page([crowded + " more"], start=10), token=TOKEN))

    assert len(session.counters.notes) == MAX_NOTES
    assert session.counters.notes[-1].startswith("truncated 3")
    assert session.counters.payload_truncations == 2
    assert len(session.store) == 5


# ── Progress ─────────────────────────────────────────────────────────


def test_progress_is_throttled_and_carries_only_new_records() -> None:
    clock = FakeClock()
    session = _session(clock=clock)
    publisher = ScanEventPublisher()
    queue = publisher.subscribe(TOKEN)
    reporter = ProgressReporter(session=session, publisher=publisher, throttle_seconds=0.4, clock=clock)

    session.store.merge(EmailRecord(email="a@acme.io", author_name="A"))
    assert reporter.emit() is True
    assert reporter.emit() is False

    session.store.merge(EmailRecord(email="b@acme.io", author_name="B"))
    clock.now = 0.5
    assert reporter.emit() is True

    first = queue.get_nowait()
    second = queue.get_nowait()
    assert first["type"] == PROGRESS_EVENT
    assert [record["email"] for record in first["data"]["new_records"]] == ["a@acme.io"]
    assert [record["email"] for record in second["data"]["new_records"]] == ["b@acme.io"]
    assert second["data"]["total_count"] == 2
    assert second["data"]["counters"]["emails_found"] == 2
    assert session.deadline.last_extended_count == 2


def test_terminal_event_is_sent_once() -> None:
    session = _session()
    session.phase = ScanPhase.STOPPED
    session.error_message = "rate_limited"
    publisher = ScanEventPublisher()
    queue = publisher.subscribe(TOKEN)
    reporter = ProgressReporter(session=session, publisher=publisher, throttle_seconds=0.0)

    assert reporter.emit_terminal() is True
    assert reporter.emit_terminal() is False
    assert reporter.emit(force=True) is False

    messages = [queue.get_nowait() for _ in range(queue.qsize())]
    assert [message["type"] for message in messages] == [PROGRESS_EVENT, TERMINAL_EVENT]
    assert messages[-1]["data"]["error_message"] == "rate_limited"
    assert messages[-1]["data"]["stats"]["phase"] == "stopped"
