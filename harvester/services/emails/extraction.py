from __future__ import annotations

import re

from harvester.services.emails import constants


def normalize_comment_text(text: str) -> str:
    """Repair text that the rendering pipeline glued together.

    Comment text and the next author's name frequently arrive without a
    delimiter ("jane@acme.comJohn Smith"), so a space is inserted after a
    known top-level domain when a letter follows it directly.
    """
    if not text:
        return ""
    collapsed = constants.WHITESPACE_PATTERN.sub(" ", text)
    split = constants.HOST_AFTER_AT_PATTERN.sub(_split_glued_host, collapsed)
    spaced = constants.SPACE_BEFORE_AT_PATTERN.sub(r"\1 @", split)
    return constants.SPACES_AROUND_AT_PATTERN.sub("@", spaced).strip()


def _split_glued_host(match: re.Match[str]) -> str:
    labels = match.group(1).split(".")
    for index in range(1, len(labels)):
        label = labels[index]
        lowered = label.lower()
        if lowered in constants.KNOWN_EXACT_TLDS:
            continue
        is_last = index == len(labels) - 1
        for tld in constants.SPLIT_TLDS:
            remainder = label[len(tld):]
            if not lowered.startswith(tld) or not remainder[:1].isalpha():
                continue
            # Inside a host only a capitalized remainder marks a glued name ("comMr"),
            # so labels such as "comcast" or "company" stay whole.
            if is_last or remainder[:1].isupper():
                head = ".".join([*labels[:index], label[:len(tld)]])
                tail = ".".join([remainder, *labels[index + 1:]])
                return f"@{head} {tail}"
    return match.group(0)


def normalize_email(raw: str | None) -> str | None:
    if not raw:
        return None
    email = raw.strip().lower().strip(constants.EDGE_PUNCTUATION).strip()
    if "@" not in email:
        return None
    if len(email) > constants.MAX_EMAIL_LENGTH:
        return None
    if _tld_of(email) in constants.BLOCKED_EXTENSIONS:
        return None
    return email


def is_email_likely_invalid(email: str | None) -> bool:
    if not email:
        return True
    lowered = email.lower()
    if any(char.isspace() for char in lowered):
        return True
    if len(lowered) < constants.MIN_EMAIL_LENGTH or len(lowered) > constants.MAX_EMAIL_LENGTH:
        return True
    if lowered.count("@") != 1:
        return True

    at_index = lowered.index("@")
    if at_index <= 0 or at_index >= len(lowered) - 4:
        return True

    local_part, domain = lowered[:at_index], lowered[at_index + 1:]
    if "." not in domain:
        return True
    if len(local_part) < constants.MIN_LOCAL_PART_LENGTH or local_part.isdigit():
        return True
    if constants.PHONE_LIKE_LOCAL_PATTERN.match(local_part):
        return True
    if ".." in local_part:
        return True
    if constants.LOCAL_PART_ARTIFACT_PATTERN.search(local_part):
        return True
    if _has_glued_tld(domain):
        return True

    tld = _tld_of(lowered)
    if tld in constants.BLOCKED_EXTENSIONS:
        return True
    if len(tld) > constants.MAX_TLD_LENGTH:
        return True
    return lowered in constants.PLACEHOLDER_EMAILS


def _has_glued_tld(domain: str) -> bool:
    for label in domain.split(".")[1:]:
        if label in constants.KNOWN_EXACT_TLDS:
            continue
        for tld in constants.GLUED_TLDS:
            remainder = label[len(tld):]
            if label.startswith(tld) and len(remainder) >= 2 and remainder.isalnum():
                return True
    return False


def _tld_of(email: str) -> str:
    return email.rpartition(".")[2]


def _mailto_candidates(text: str) -> list[str]:
    parts = constants.MAILTO_PATTERN.split(text)
    candidates: list[str] = []
    for part in parts[1:]:
        candidate = constants.MAILTO_TERMINATOR_PATTERN.split(part, maxsplit=1)[0]
        if "@" in candidate:
            candidates.append(candidate)
    return candidates


def extract_emails(raw_text: str | None) -> list[str]:
    """Return validated, lowercase emails in first-seen order."""
    if not raw_text:
        return []

    normalized = normalize_comment_text(raw_text)
    found: list[str] = []
    seen: set[str] = set()

    candidates = _mailto_candidates(normalized)
    candidates.extend(match.group(0) for match in constants.EMAIL_PATTERN.finditer(normalized))
    for candidate in candidates:
        email = normalize_email(candidate)
        if email is None or email in seen or is_email_likely_invalid(email):
            continue
        seen.add(email)
        found.append(email)
    return found


def may_contain_email(text: str | None) -> bool:
    if not text:
        return False
    return "@" in text or "mailto:" in text.lower()
