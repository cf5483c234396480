from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
import logging

from harvester.logging_utils import structured_log
from harvester.services.emails.extraction import is_email_likely_invalid
from harvester.services.records.types import (
    EmailRecord,
    ScanCounters,
    SourceType,
    is_placeholder_name,
)

logger = logging.getLogger(__name__)


class EmailRecordStore:
    """Unique-by-email record map owned by one scan session."""

    def __init__(self, counters: ScanCounters) -> None:
        self._counters = counters
        self._records: dict[str, EmailRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, email: object) -> bool:
        return isinstance(email, str) and email.strip().lower() in self._records

    def __iter__(self) -> Iterator[EmailRecord]:
        return iter(self._records.values())

    def get(self, email: str) -> EmailRecord | None:
        return self._records.get(email.strip().lower())

    def merge(self, record: EmailRecord) -> bool:
        """Insert or upgrade a record; returns True only for a new email."""
        key = (record.email or "").strip().lower()
        if not key or is_email_likely_invalid(key):
            return False

        existing = self._records.get(key)
        if existing is not None:
            self._merge_into(existing, record)
            return False

        self._records[key] = replace(record, email=key, seen_count=1)
        self._counters.emails_found += 1
        if record.source_type is SourceType.REPLY:
            self._counters.reply_emails += 1
        elif record.source_type is SourceType.COMMENT:
            self._counters.api_emails += 1
        return True

    def _merge_into(self, existing: EmailRecord, incoming: EmailRecord) -> None:
        existing.seen_count += 1
        self._counters.duplicates_merged += 1

        incoming_name = (incoming.author_name or "").strip()
        if incoming_name and is_placeholder_name(existing.author_name):
            if not is_placeholder_name(incoming_name) or not existing.author_name:
                existing.author_name = incoming_name
        if not existing.author_title and incoming.author_title:
            existing.author_title = incoming.author_title
        if not existing.profile_url and incoming.profile_url:
            existing.profile_url = incoming.profile_url
        if not existing.comment_snippet and incoming.comment_snippet:
            existing.comment_snippet = incoming.comment_snippet
        if existing.source_type is SourceType.FALLBACK and incoming.source_type is not SourceType.FALLBACK:
            existing.source_type = incoming.source_type

    def get_valid_results(self) -> list[EmailRecord]:
        records = list(self._records.values())
        valid = [record for record in records if not is_email_likely_invalid(record.email)]
        if not valid and records:
            structured_log(
                logger, "warning", "records.validation_fallback",
                record_count=len(records),
            )
            return records
        return valid

    def purge_fragments(self) -> int:
        fragments = [key for key in self._records if "@" not in key]
        for key in fragments:
            del self._records[key]
        return len(fragments)

    def fill_author(
        self,
        email: str,
        *,
        author_name: str = "",
        author_title: str = "",
        profile_url: str = "",
    ) -> bool:
        """Fill missing author fields without counting a re-observation."""
        record = self.get(email)
        if record is None:
            return False
        changed = False
        if author_name and not is_placeholder_name(author_name) and is_placeholder_name(record.author_name):
            record.author_name = author_name
            changed = True
        if author_title and not record.author_title:
            record.author_title = author_title
            changed = True
        if profile_url and not record.profile_url:
            record.profile_url = profile_url
            changed = True
        return changed

    def needing_enrichment(self) -> list[EmailRecord]:
        return [
            record
            for record in self._records.values()
            if is_placeholder_name(record.author_name)
            or not record.author_title
            or not record.profile_url
        ]

    def clear(self) -> None:
        self._records.clear()
