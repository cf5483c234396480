from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import json
import logging
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from harvester.logging_utils import structured_log
from harvester.services.payloads.dedupe import body_sample

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS_CODES = frozenset({429, 999})
ACCEPT_HEADER = "application/vnd.linkedin.normalized+json+2.1"
RESTLI_PROTOCOL_VERSION = "2.0.0"
SESSION_COOKIE = "JSESSIONID"


@dataclass(frozen=True)
class FetchResult:
    requested_url: str
    status_code: int | None
    payload: dict[str, Any] | None
    body_sample: str
    error: str | None

    @property
    def ok(self) -> bool:
        return self.error is None and self.payload is not None

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code in RATE_LIMIT_STATUS_CODES


class ReplayPageSource(Protocol):
    async def fetch_page(self, base_url: str, *, start: int, count: int) -> FetchResult:
        ...


def build_page_url(base_url: str, *, start: int, count: int) -> str:
    parts = urlsplit(base_url)
    params = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key not in {"start", "count"}]
    params.extend([("start", str(start)), ("count", str(count))])
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params, safe=":(),"), parts.fragment))


def auth_token_from_cookies(cookies: dict[str, str]) -> str | None:
    raw = cookies.get(SESSION_COOKIE)
    if not raw:
        return None
    token = raw.strip().strip('"')
    return token if token.startswith("ajax:") else None


class HttpxReplaySource:
    """Re-issues comment page requests with the browser session's cookies."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        token_provider: Callable[[], str | None],
        locale: str = "en_US",
    ) -> None:
        self._client = client
        self._token_provider = token_provider
        self._locale = locale

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": ACCEPT_HEADER,
            "x-restli-protocol-version": RESTLI_PROTOCOL_VERSION,
            "x-li-lang": self._locale,
        }
        token = self._token_provider()
        if token:
            headers["csrf-token"] = token
        return headers

    async def fetch_page(self, base_url: str, *, start: int, count: int) -> FetchResult:
        url = build_page_url(base_url, start=start, count=count)
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            structured_log(logger, "debug", "replay.fetch_failed", url=url.split("?")[0], start=start, error=str(exc))
            return FetchResult(requested_url=url, status_code=None, payload=None, body_sample="", error=str(exc))

        if response.status_code != 200:
            return FetchResult(
                requested_url=url,
                status_code=response.status_code,
                payload=None,
                body_sample="",
                error=f"http_{response.status_code}",
            )

        text = response.text
        try:
            payload = json.loads(text)
        except ValueError as exc:
            return FetchResult(requested_url=url, status_code=200, payload=None, body_sample="", error=f"decode: {exc}")
        if not isinstance(payload, dict):
            return FetchResult(requested_url=url, status_code=200, payload=None, body_sample="", error="unexpected_shape")
        return FetchResult(
            requested_url=url,
            status_code=200,
            payload=payload,
            body_sample=body_sample(text),
            error=None,
        )
