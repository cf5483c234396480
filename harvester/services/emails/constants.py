from __future__ import annotations

import re

# "co" is left out so ".com" is never split into ".co" + "m".
SPLIT_TLDS = ("info", "com", "org", "net", "edu", "gov", "io", "ai", "in")
GLUED_TLDS = ("com", "org", "net", "edu", "in", "co", "io", "ai")
KNOWN_EXACT_TLDS = frozenset(SPLIT_TLDS) | frozenset(GLUED_TLDS)
LOCAL_PART_GLUED_TLDS = ("com", "org", "net", "edu", "gov")

BLOCKED_EXTENSIONS = frozenset({"png", "jpg", "gif", "svg", "mp4", "pdf", "zip", "js", "css"})
PLACEHOLDER_EMAILS = frozenset(
    {
        "test@test.com",
        "example@example.com",
        "email@email.com",
        "user@user.com",
    }
)

MIN_EMAIL_LENGTH = 6
MAX_EMAIL_LENGTH = 254
MAX_TLD_LENGTH = 6
MIN_LOCAL_PART_LENGTH = 2
PHONE_LIKE_DIGITS = 8

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")
HOST_AFTER_AT_PATTERN = re.compile(r"@([A-Za-z0-9\-]+(?:\.[A-Za-z0-9\-]+)+)")
WHITESPACE_PATTERN = re.compile(r"\s+")
SPACE_BEFORE_AT_PATTERN = re.compile(r"([^\s])@")
SPACES_AROUND_AT_PATTERN = re.compile(r"\s*@\s*")
MAILTO_PATTERN = re.compile(r"mailto:", re.IGNORECASE)
MAILTO_TERMINATOR_PATTERN = re.compile(r"[\s?\"']")
PHONE_LIKE_LOCAL_PATTERN = re.compile(rf"^\d{{{PHONE_LIKE_DIGITS},}}$")
# Whole local part shaped like a glued address ("company.com" + "name@x.com").
# Real local parts of the same shape ("john.comstock") are rejected too.
LOCAL_PART_ARTIFACT_PATTERN = re.compile(
    r"^[a-z0-9\-]{2,}\.(?:" + "|".join(LOCAL_PART_GLUED_TLDS) + r")[a-z0-9]{3,}$"
)
EDGE_PUNCTUATION = ".,;:!?"
