import asyncio
import json
import logging
from collections import OrderedDict
from collections.abc import AsyncGenerator
from typing import Any

from harvester.settings import settings

logger = logging.getLogger(__name__)

TERMINAL_EVENT = "complete"
PROGRESS_EVENT = "progress"


class ScanEventPublisher:
    def __init__(self, *, queue_max_size: int = 1000, retained_terminals: int = 32) -> None:
        # Maps scan token to its subscriber queues
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        # Last terminal message per token, replayed to late subscribers
        self._terminals: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._queue_max_size = queue_max_size
        self._retained_terminals = retained_terminals

    def subscribe(self, scan_token: str) -> asyncio.Queue:
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self._queue_max_size)
        self._subscribers.setdefault(scan_token, set()).add(queue)
        logger.debug(
            "scan.events_subscribed",
            extra={"subscriber_count": len(self._subscribers[scan_token])},
        )
        terminal = self._terminals.get(scan_token)
        if terminal is not None:
            queue.put_nowait(terminal)
        return queue

    def unsubscribe(self, scan_token: str, queue: asyncio.Queue) -> None:
        if scan_token in self._subscribers:
            self._subscribers[scan_token].discard(queue)
            if not self._subscribers[scan_token]:
                self._subscribers.pop(scan_token, None)

    def subscriber_count(self, scan_token: str) -> int:
        return len(self._subscribers.get(scan_token, ()))

    def terminal_message(self, scan_token: str) -> dict[str, Any] | None:
        return self._terminals.get(scan_token)

    def forget(self, scan_token: str) -> None:
        self._terminals.pop(scan_token, None)

    def publish(self, scan_token: str, event_type: str, data: dict[str, Any]) -> None:
        message = {"type": event_type, "data": data}
        if event_type == TERMINAL_EVENT:
            self._retain_terminal(scan_token, message)
        if scan_token not in self._subscribers:
            return

        for queue in list(self._subscribers[scan_token]):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                if event_type == TERMINAL_EVENT:
                    # The oldest progress snapshot is stale anyway.
                    queue.get_nowait()
                    queue.put_nowait(message)
                else:
                    logger.warning("scan.events_queue_full", extra={"event_type": event_type})

    def _retain_terminal(self, scan_token: str, message: dict[str, Any]) -> None:
        self._terminals[scan_token] = message
        self._terminals.move_to_end(scan_token)
        while len(self._terminals) > self._retained_terminals:
            self._terminals.popitem(last=False)


scan_events = ScanEventPublisher(queue_max_size=settings.event_queue_max_size)


def format_sse(message: dict[str, Any]) -> str:
    # Server-Sent Events format: "event: <type>\ndata: <json>\n\n"
    return f"event: {message['type']}\ndata: {json.dumps(message['data'], default=str)}\n\n"


async def event_generator(
    scan_token: str,
    *,
    publisher: ScanEventPublisher = scan_events,
    terminal: dict[str, Any] | None = None,
) -> AsyncGenerator[str, None]:
    if terminal is not None:
        yield format_sse(terminal)
        return
    queue = publisher.subscribe(scan_token)
    try:
        while True:
            message = await queue.get()
            yield format_sse(message)
            if message["type"] == TERMINAL_EVENT:
                return
    except asyncio.CancelledError:
        logger.debug("scan.events_client_disconnected")
        raise
    finally:
        publisher.unsubscribe(scan_token, queue)
