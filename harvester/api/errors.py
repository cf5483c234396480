from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
)
from fastapi.exception_handlers import (
    request_validation_exception_handler as fastapi_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError

from harvester.api.responses import error_response
from harvester.services.scan.commands import (
    ScanAlreadyRunningError,
    ScanCommandError,
    ScanNotFoundError,
    ScanTokenMismatchError,
)


def _is_api_path(path: str) -> bool:
    return path.startswith("/api/")


def _status_code_to_error_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        429: "rate_limited",
        500: "internal_error",
    }
    return mapping.get(status_code, "error")


class ApiException(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def api_exception_for(exc: ScanCommandError) -> ApiException:
    if isinstance(exc, ScanTokenMismatchError):
        return ApiException(status_code=403, code="scan_token_mismatch", message=str(exc))
    if isinstance(exc, ScanAlreadyRunningError):
        return ApiException(status_code=409, code="already_scanning", message=str(exc))
    if isinstance(exc, ScanNotFoundError):
        return ApiException(status_code=404, code="scan_not_found", message=str(exc))
    return ApiException(status_code=400, code="scan_command_failed", message=str(exc))


def register_api_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiException)
    async def _handle_api_exception(request: Request, exc: ApiException):
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(ScanCommandError)
    async def _handle_scan_command_error(request: Request, exc: ScanCommandError):
        api_exc = api_exception_for(exc)
        return error_response(
            request,
            status_code=api_exc.status_code,
            code=api_exc.code,
            message=api_exc.message,
        )

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):
        if not _is_api_path(request.url.path):
            return await fastapi_http_exception_handler(request, exc)
        return error_response(
            request,
            status_code=exc.status_code,
            code=_status_code_to_error_code(exc.status_code),
            message=str(exc.detail) if exc.detail is not None else "Request failed.",
            details=exc.detail if isinstance(exc.detail, (dict, list)) else None,
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_exception(request: Request, exc: RequestValidationError):
        if not _is_api_path(request.url.path):
            return await fastapi_validation_exception_handler(request, exc)
        return error_response(
            request,
            status_code=422,
            code="validation_error",
            message="Request validation failed.",
            details=exc.errors(),
        )
