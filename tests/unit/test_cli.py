from __future__ import annotations

from pathlib import Path

import pytest

from harvester.__main__ import _progress_line, build_parser

from tests.unit.helpers import POST_URL


def test_scan_arguments() -> None:
    args = build_parser().parse_args(["scan", POST_URL, "--out", "out/emails.csv", "--headed"])

    assert args.command == "scan"
    assert args.post_url == POST_URL
    assert args.out == Path("out/emails.csv")
    assert args.headed is True


def test_login_defaults() -> None:
    args = build_parser().parse_args(["login"])

    assert args.command == "login"
    assert args.timeout == 300.0


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_progress_line_summarizes_counters() -> None:
    line = _progress_line(
        {
            "phase": "primary_collection",
            "status": "Fetching comment pages",
            "total_count": 12,
            "counters": {"comments_scanned": 40, "replay_pages_processed": 3, "replay_total_pages": 9},
        }
    )

    assert line == "[primary_collection] Fetching comment pages | emails=12 comments=40 pages=3/9"
