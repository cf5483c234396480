from __future__ import annotations

from collections import OrderedDict
import json
from typing import Any
from urllib.parse import parse_qs, urlsplit

from harvester.services.payloads.parser import parse_paging

DEFAULT_CAPACITY = 5000
SAMPLE_SEGMENT = 64

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def fnv1a_32(text: str) -> str:
    value = _FNV_OFFSET
    for char in text:
        value ^= ord(char)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return _to_base36(value)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def body_sample(body: str) -> str:
    """First, middle and last 64 characters of a response body."""
    if not body:
        return ""
    sample = body[:SAMPLE_SEGMENT]
    if len(body) > SAMPLE_SEGMENT * 2:
        middle = len(body) // 2
        sample += body[middle:middle + SAMPLE_SEGMENT]
    if len(body) > SAMPLE_SEGMENT:
        sample += body[-SAMPLE_SEGMENT:]
    return sample


def build_payload_key(url: str, payload: Any, sample: str | None = None) -> str:
    parts = urlsplit(url or "")
    url_base = f"{parts.scheme}://{parts.netloc}{parts.path}" if parts.netloc else (url or "").split("?")[0]
    start = (parse_qs(parts.query).get("start") or ["0"])[0]
    paging = parse_paging(payload)
    total = str(paging.total) if paging is not None else "?"
    if not sample:
        sample = body_sample(json.dumps(payload, sort_keys=True, default=str))
    return f"{url_base}|{start}|{total}|{fnv1a_32(sample)}"


class PayloadDedupeCache:
    """Bounded LRU of payload fingerprints; a membership check refreshes recency."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._keys: OrderedDict[str, None] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._keys)

    def has(self, key: str) -> bool:
        if key not in self._keys:
            return False
        self._keys.move_to_end(key)
        return True

    def add(self, key: str) -> None:
        if key in self._keys:
            self._keys.move_to_end(key)
            return
        while len(self._keys) >= self._capacity:
            self._keys.popitem(last=False)
        self._keys[key] = None

    def seen_or_add(self, key: str) -> bool:
        if self.has(key):
            return True
        self.add(key)
        return False

    def clear(self) -> None:
        self._keys.clear()
