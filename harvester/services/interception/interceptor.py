from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
import json
import logging
from typing import Any

from harvester.logging_utils import structured_log
from harvester.services.emails.extraction import may_contain_email
from harvester.services.payloads.dedupe import body_sample

logger = logging.getLogger(__name__)

COMMENT_ENDPOINT_MARKERS = (
    "/voyager/api/feed/comments",
    "/voyager/api/social-actions",
    "/voyager/api/feed/updates",
    "/voyager/api/graphql",
)
ALWAYS_PARSE_MARKERS = (
    "/voyager/api/feed/comments",
    "/voyager/api/social-actions",
)
AUTH_TOKEN_HEADER = "csrf-token"
DEFAULT_BUFFER_SIZE = 2000


@dataclass(frozen=True)
class InterceptedPayload:
    url: str
    payload: dict[str, Any]
    body_sample: str
    session_token: str
    auth_token: str | None = None


def is_comment_endpoint(url: str) -> bool:
    return any(marker in url for marker in COMMENT_ENDPOINT_MARKERS)


def should_parse_body(url: str, body: str) -> bool:
    if any(marker in url for marker in ALWAYS_PARSE_MARKERS):
        return True
    return may_contain_email(body)


class PayloadChannel:
    """Bounded queue between the page observer and the ingestion loop.

    Messages that cannot be queued (closed or full) land in an overflow
    buffer which the consumer drains by polling.
    """

    def __init__(self, *, max_size: int, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._queue: asyncio.Queue[InterceptedPayload] = asyncio.Queue(maxsize=max_size)
        self._buffer: deque[InterceptedPayload] = deque(maxlen=buffer_size)
        self._open = False

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, item: InterceptedPayload) -> None:
        if self._open:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                pass
        self._buffer.append(item)

    async def receive(self) -> InterceptedPayload:
        return await self._queue.get()

    def drain_buffer(self) -> list[InterceptedPayload]:
        items = list(self._buffer)
        self._buffer.clear()
        return items

    def drain_queue(self) -> list[InterceptedPayload]:
        items: list[InterceptedPayload] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return items

    @property
    def buffered(self) -> int:
        return len(self._buffer)


class ResponseInterceptor:
    def __init__(self, *, channel: PayloadChannel, session_token: str) -> None:
        self._channel = channel
        self._session_token = session_token
        self._attached: list[Any] = []

    def attach(self, page: Any) -> None:
        page.on("response", self.handle_response)
        self._attached.append(page)

    def detach(self) -> None:
        for page in self._attached:
            try:
                page.remove_listener("response", self.handle_response)
            except Exception as exc:
                structured_log(logger, "debug", "interceptor.detach_failed", error=str(exc))
        self._attached.clear()

    async def handle_response(self, response: Any) -> None:
        url = str(getattr(response, "url", "") or "")
        if not is_comment_endpoint(url):
            return
        try:
            body = await response.text()
        except Exception as exc:
            structured_log(logger, "debug", "interceptor.body_unavailable", url=url.split("?")[0], error=str(exc))
            return
        if not body or not should_parse_body(url, body):
            return
        try:
            payload = json.loads(body)
        except ValueError:
            return
        if not isinstance(payload, dict):
            return

        try:
            self._channel.send(
                InterceptedPayload(
                    url=url,
                    payload=payload,
                    body_sample=body_sample(body),
                    session_token=self._session_token,
                    auth_token=_request_auth_token(response),
                )
            )
        except Exception as exc:
            structured_log(logger, "debug", "interceptor.forward_failed", url=url.split("?")[0], error=str(exc))


def _request_auth_token(response: Any) -> str | None:
    request = getattr(response, "request", None)
    headers = getattr(request, "headers", None)
    if not isinstance(headers, dict):
        return None
    for key, value in headers.items():
        if key.lower() == AUTH_TOKEN_HEADER and value:
            return str(value)
    return None
