"""Ordered field-access tables for the heterogeneous comment payload shapes.

Each entry is a tuple of keys (or list indexes) walked from the item root.
Keys are literal, so namespaced keys such as
``com.linkedin.voyager.feed.MemberActor`` are single steps.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

FieldPath = tuple[str | int, ...]

_MEMBER_ACTOR = "com.linkedin.voyager.feed.MemberActor"

COMMENT_TEXT_PATHS: tuple[FieldPath, ...] = (
    ("commentV2", "text"),
    ("commentary", "text"),
    ("message", "text"),
    ("text", "text"),
    ("comment", "values", 0, "value"),
    ("commentary", "text", "text"),
    ("commentV2", "text", "text"),
)

AUTHOR_NAME_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "title", "text"),
    ("commenterForDashConversion", "title", "text"),
    ("commenter", _MEMBER_ACTOR, "name", "text"),
    ("commenter", "name", "text"),
    ("commenter", "name"),
    ("actor", "name", "text"),
    ("actor", "name"),
    ("author", "name"),
    ("commenterProfileName",),
)

AUTHOR_FIRST_NAME_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "miniProfile", "firstName"),
    ("commenter", _MEMBER_ACTOR, "miniProfile", "firstName"),
    ("actor", "miniProfile", "firstName"),
    ("commenter", "firstName"),
)

AUTHOR_LAST_NAME_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "miniProfile", "lastName"),
    ("commenter", _MEMBER_ACTOR, "miniProfile", "lastName"),
    ("actor", "miniProfile", "lastName"),
    ("commenter", "lastName"),
)

AUTHOR_TITLE_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "subtitle", "text"),
    ("commenterForDashConversion", "subtitle", "text"),
    ("commenter", "description", "text"),
    ("commenter", _MEMBER_ACTOR, "headline", "text"),
    ("commenter", "miniProfile", "occupation"),
    ("commenter", "headline", "text"),
    ("commenter", "headline"),
    ("commenter", "occupation"),
    ("actor", "headline"),
    ("actor", "subtitle", "text"),
    ("author", "headline"),
)

PROFILE_URL_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "navigationUrl"),
    ("commenterForDashConversion", "navigationUrl"),
    ("commenter", "url"),
    ("commenter", "miniProfile", "publicIdentifier"),
    ("commenter", _MEMBER_ACTOR, "miniProfile", "publicIdentifier"),
    ("actor", "navigationUrl"),
    ("actor", "miniProfile", "publicIdentifier"),
    ("author", "profileUrl"),
    ("author", "url"),
)

ACTOR_REFERENCE_PATHS: tuple[FieldPath, ...] = (
    ("commenter", "*profile"),
    ("commenter", "entityUrn"),
    ("commenter", "urn"),
    ("commenter", _MEMBER_ACTOR, "urn"),
    ("commenter", "actor"),
    ("commenter",),
    ("actor", "*profile"),
    ("actor", "entityUrn"),
    ("actor",),
    ("creator",),
    ("from",),
)

ITEM_IDENTIFIER_PATHS: tuple[FieldPath, ...] = (
    ("entityUrn",),
    ("urn",),
    ("dashEntityUrn",),
    ("id",),
    ("miniProfile", "entityUrn"),
    ("miniProfile", "urn"),
)

INCLUDED_NAME_PATHS: tuple[FieldPath, ...] = (
    ("title", "text"),
    ("name", "text"),
    ("name",),
)

INCLUDED_FIRST_NAME_PATHS: tuple[FieldPath, ...] = (
    ("firstName",),
    ("miniProfile", "firstName"),
)

INCLUDED_LAST_NAME_PATHS: tuple[FieldPath, ...] = (
    ("lastName",),
    ("miniProfile", "lastName"),
)

INCLUDED_TITLE_PATHS: tuple[FieldPath, ...] = (
    ("headline",),
    ("occupation",),
    ("headline", "text"),
    ("subtitle", "text"),
    ("miniProfile", "occupation"),
)

INCLUDED_PROFILE_PATHS: tuple[FieldPath, ...] = (
    ("publicIdentifier",),
    ("miniProfile", "publicIdentifier"),
    ("navigationUrl",),
    ("url",),
)

NESTED_COMMENT_PATHS: tuple[FieldPath, ...] = (
    ("comments", "elements"),
    ("socialDetail", "comments", "elements"),
)

PAGING_PATHS: tuple[FieldPath, ...] = (
    ("paging",),
    ("data", "paging"),
)


def resolve_path(obj: Any, path: Sequence[str | int]) -> Any:
    current = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or step >= len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def first_resolved(obj: Any, paths: Sequence[FieldPath]) -> Any:
    for path in paths:
        value = resolve_path(obj, path)
        if value is None or value == "":
            continue
        return value
    return None


def first_string(obj: Any, paths: Sequence[FieldPath]) -> str:
    for path in paths:
        value = resolve_path(obj, path)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
