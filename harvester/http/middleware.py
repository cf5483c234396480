from __future__ import annotations

from secrets import token_urlsafe
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from harvester.logging_context import set_request_id
from harvester.logging_utils import structured_log

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

logger = logging.getLogger(__name__)


def _incoming_request_id(request: Request) -> str:
    candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH:
        return candidate
    return token_urlsafe(12)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        log_requests: bool = True,
        skip_paths: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._log_requests = log_requests
        self._skip_paths = tuple(path for path in skip_paths if path)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        set_request_id(request_id)

        start = time.perf_counter()
        should_log = self._log_requests and not self._is_skipped_path(request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            if should_log:
                structured_log(
                    logger, "info", "request.completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=int((time.perf_counter() - start) * 1000),
                )
            return response
        finally:
            set_request_id(None)

    def _is_skipped_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._skip_paths)


def parse_skip_paths(raw_value: str) -> tuple[str, ...]:
    parts = [part.strip() for part in raw_value.split(",")]
    return tuple(part for part in parts if part)
