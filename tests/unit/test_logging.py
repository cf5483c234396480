from __future__ import annotations

import json
import logging
import re

from fastapi.testclient import TestClient

from harvester.http.middleware import REQUEST_ID_HEADER, parse_skip_paths
from harvester.logging_config import (
    ConsoleLogFormatter,
    JsonLogFormatter,
    RequestContextFilter,
    parse_redact_fields,
)
from harvester.logging_context import set_request_id, set_scan_id
from harvester.logging_utils import structured_log
from harvester.main import app


def test_json_log_formatter_redacts_sensitive_fields() -> None:
    formatter = JsonLogFormatter(redact_fields=parse_redact_fields("profile_url"))
    record = logging.makeLogRecord(
        {
            "name": "tests.logging",
            "levelno": logging.INFO,
            "levelname": "INFO",
            "msg": "test.event",
            "args": (),
            "auth_token": "ajax:secret",
            "profile_url": "https://www.linkedin.com/in/jane",
            "headers": {
                "cookie": "li_at=abc",
                "accept": "application/json",
            },
            "color_message": "ANSI-noise",
        }
    )

    payload = json.loads(formatter.format(record))

    assert payload["event"] == "test.event"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}Z", payload["timestamp"])
    assert payload["auth_token"] == "[REDACTED]"
    assert payload["profile_url"] == "[REDACTED]"
    assert payload["headers"]["cookie"] == "[REDACTED]"
    assert payload["headers"]["accept"] == "application/json"
    assert "color_message" not in payload


def test_request_logging_middleware_sets_request_id_header() -> None:
    client = TestClient(app)
    response = client.get("/healthz", headers={REQUEST_ID_HEADER: "request-123"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers[REQUEST_ID_HEADER] == "request-123"


def test_request_logging_middleware_replaces_oversized_request_ids() -> None:
    client = TestClient(app)
    response = client.get("/healthz", headers={REQUEST_ID_HEADER: "x" * 500})
    assert response.status_code == 200
    assert response.headers[REQUEST_ID_HEADER] != "x" * 500
    assert 0 < len(response.headers[REQUEST_ID_HEADER]) <= 128


def test_parse_skip_paths_trims_and_discards_empty_segments() -> None:
    assert parse_skip_paths(" /healthz , , /api/v1/scans ") == (
        "/healthz",
        "/api/v1/scans",
    )


def test_context_filter_attaches_request_and_scan_ids() -> None:
    set_request_id("rid-1")
    set_scan_id("scan-1")
    record = logging.makeLogRecord({"msg": "scan.phase_changed", "levelname": "INFO"})

    assert RequestContextFilter().filter(record) is True

    payload = json.loads(JsonLogFormatter(redact_fields=set()).format(record))
    assert payload["request_id"] == "rid-1"
    assert payload["scan_id"] == "scan-1"


# --- structured_log tests ---


def _capture_structured_log(caplog, level, event, **fields):
    """Helper: call structured_log and return the captured LogRecord."""
    logger = logging.getLogger("tests.structured")
    with caplog.at_level(logging.DEBUG, logger="tests.structured"):
        structured_log(logger, level, event, **fields)
    return caplog.records[-1]


def test_structured_log_json_formatter_uses_event_as_message(caplog) -> None:
    record = _capture_structured_log(caplog, "info", "replay.top_level_started", total_pages=42)
    formatter = JsonLogFormatter(redact_fields=set())
    payload = json.loads(formatter.format(record))

    assert payload["event"] == "replay.top_level_started"
    assert payload["total_pages"] == 42


def test_structured_log_console_formatter(caplog) -> None:
    record = _capture_structured_log(caplog, "warning", "replay.rate_limited", concurrency=3, emails_found=7)
    formatter = ConsoleLogFormatter(redact_fields=set())
    output = formatter.format(record)

    assert "replay.rate_limited" in output
    assert "WRN" in output
    assert "concurrency=3" in output
    assert "emails=7" in output
