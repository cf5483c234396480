from __future__ import annotations

import re

SNIPPET_LENGTH = 100

_EMOJI_PATTERN = re.compile(
    "["
    "\U0001F300-\U0001FAFF"
    "\U00002600-\U000027BF"
    "\U0001F000-\U0001F2FF"
    "\U0001F900-\U0001F9FF"
    "\U0000FE00-\U0000FE0F"
    "\U0000200D"
    "\U000020E3"
    "\U000E0020-\U000E007F"
    "]+"
)
_CONTROL_PATTERN = re.compile("[\x00-\x1f\x7f-\x9f\u200b-\u200c\u2028\u2029\ufeff]")
_PIPE_PATTERN = re.compile(r"\s*\|\s*")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def sanitize_text(value: str | None) -> str:
    """Clean display strings such as author names and headlines.

    Emails never go through this; it only strips decoration.
    """
    if not value:
        return ""
    cleaned = _EMOJI_PATTERN.sub("", value)
    cleaned = _CONTROL_PATTERN.sub(" ", cleaned)
    cleaned = _PIPE_PATTERN.sub(" | ", cleaned)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned).strip()
    return cleaned.strip("| ").strip()


def make_snippet(text: str | None, *, length: int = SNIPPET_LENGTH) -> str:
    if not text:
        return ""
    return text[:length]
