from __future__ import annotations

from contextvars import ContextVar

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_scan_id_ctx: ContextVar[str | None] = ContextVar("scan_id", default=None)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def set_request_id(value: str | None) -> None:
    _request_id_ctx.set(value)


def get_scan_id() -> str | None:
    return _scan_id_ctx.get()


def set_scan_id(value: str | None) -> None:
    _scan_id_ctx.set(value)
