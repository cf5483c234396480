from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from harvester.api.schemas.common import ApiMeta


class ScanStartRequest(BaseModel):
    post_url: str = Field(min_length=1, max_length=2048)
    nonce: str | None = Field(default=None, min_length=8, max_length=128)

    model_config = ConfigDict(extra="forbid")


class ScanStartData(BaseModel):
    status: str
    nonce: str
    message: str

    model_config = ConfigDict(extra="forbid")


class ScanStartEnvelope(BaseModel):
    data: ScanStartData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class ScanCountersData(BaseModel):
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

    model_config = ConfigDict(extra="forbid")


class ScanStatusData(BaseModel):
    nonce: str
    post_url: str
    phase: str
    status: str
    error_message: str | None = None
    scanning: bool
    counters: ScanCountersData

    model_config = ConfigDict(extra="forbid")


class ScanStatusEnvelope(BaseModel):
    data: ScanStatusData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class EmailRecordData(BaseModel):
    email: str
    author_name: str
    author_title: str
    profile_url: str
    post_url: str
    extracted_at: datetime | None = None
    comment_snippet: str
    source_type: str
    seen_count: int

    model_config = ConfigDict(extra="forbid")


class ScanResultsData(BaseModel):
    scan: ScanStatusData
    records: list[EmailRecordData]

    model_config = ConfigDict(extra="forbid")


class ScanResultsEnvelope(BaseModel):
    data: ScanResultsData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
