from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from harvester.logging_context import get_request_id


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id()


def meta_payload(request: Request) -> dict[str, Any]:
    return {"request_id": _request_id(request)}


def success_payload(request: Request, *, data: Any) -> dict[str, Any]:
    return {"data": data, "meta": meta_payload(request)}


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message, "details": details},
            "meta": meta_payload(request),
        },
    )
