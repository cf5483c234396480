from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging
from typing import Any

from harvester.logging_utils import structured_log
from harvester.services.interception.interceptor import InterceptedPayload
from harvester.services.payloads.dedupe import build_payload_key
from harvester.services.payloads.parser import PagingInfo, parse_payload
from harvester.services.records.types import EmailRecord, SourceType
from harvester.services.scan.session import ScanSession

logger = logging.getLogger(__name__)

MAX_NOTES = 100

PagingObserver = Callable[[str, PagingInfo | None], None]


class PayloadIngestor:
    """Single entry point for intercepted and replayed payloads."""

    def __init__(
        self,
        *,
        session: ScanSession,
        on_progress: Callable[[], Any] | None = None,
    ) -> None:
        self._session = session
        self._on_progress = on_progress
        self.paging_observer: PagingObserver | None = None
        self.rejected_messages = 0

    def ingest(self, item: InterceptedPayload) -> bool:
        session = self._session
        if not session.matches(item.session_token):
            self.rejected_messages += 1
            structured_log(logger, "warning", "ingest.session_token_mismatch", url=item.url.split("?")[0])
            return False
        if session.cancel.is_cancelled:
            return False
        if item.auth_token:
            session.auth_token = item.auth_token
        return self._ingest(item.url, item.payload, item.body_sample)

    def ingest_replayed(self, url: str, payload: dict[str, Any], body_sample: str) -> bool:
        if self._session.cancel.is_cancelled:
            return False
        return self._ingest(url, payload, body_sample)

    def _ingest(self, url: str, payload: Any, body_sample: str) -> bool:
        session = self._session
        if not isinstance(payload, dict):
            return False
        if session.dedupe.seen_or_add(build_payload_key(url, payload, body_sample)):
            return False

        session.counters.intercepted_requests += 1
        session.last_intercept_at = session.clock()
        session.first_intercept.set()

        parsed = parse_payload(
            payload,
            url,
            max_emails_per_comment=session.config.max_emails_per_comment,
        )
        if self.paging_observer is not None:
            self.paging_observer(url, parsed.paging)

        source_type = SourceType.REPLY if parsed.is_reply_source else SourceType.COMMENT
        extracted_at = datetime.now(timezone.utc)
        for comment in parsed.comments:
            session.counters.comments_scanned += 1
            for email in comment.emails:
                session.store.merge(
                    EmailRecord(
                        email=email,
                        author_name=comment.author_name,
                        author_title=comment.author_title,
                        profile_url=comment.profile_url,
                        post_url=session.post_url,
                        extracted_at=extracted_at,
                        comment_snippet=comment.snippet,
                        source_type=source_type,
                    )
                )
            if comment.dropped_emails:
                session.counters.payload_truncations += 1
        room = MAX_NOTES - len(session.counters.notes)
        if room > 0:
            session.counters.notes.extend(parsed.notes[:room])

        if self._on_progress is not None:
            self._on_progress()
        return True
