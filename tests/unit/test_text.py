from __future__ import annotations

from harvester.services.text import make_snippet, sanitize_text


def test_sanitize_text_removes_emoji_and_control_characters() -> None:
    assert sanitize_text("Jane \U0001F680 Doe\u200b") == "Jane Doe"


def test_sanitize_text_normalizes_pipe_separators() -> None:
    assert sanitize_text("CTO|Founder  |  Advisor") == "CTO | Founder | Advisor"


def test_sanitize_text_trims_dangling_separators() -> None:
    assert sanitize_text("| Growth lead |") == "Growth lead"
    assert sanitize_text(None) == ""


def test_make_snippet_truncates_to_length() -> None:
    text = "x" * 150

    assert make_snippet(text) == "x" * 100
    assert make_snippet(text, length=10) == "x" * 10
    assert make_snippet("") == ""
