from __future__ import annotations

import logging
from http import HTTPStatus
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from arena.errors import DuplicateEntry, TransientStoreError

logger = logging.getLogger("arena.request")

_ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    503: "service_unavailable",
}


def _resolve_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return str(uuid4())


def _status_to_error_code(status_code: int) -> str:
    code = _ERROR_CODES.get(status_code)
    if code is not None:
        return code
    if 500 <= status_code <= 599:
        return "internal_error"
    return f"http_{status_code}"


def _error_response(
    request: Request,
    *,
    status_code: int,
    detail: object,
    details: object | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    message = detail if isinstance(detail, str) else HTTPStatus(status_code).phrase
    body: dict[str, object] = {
        "error_code": _status_to_error_code(status_code),
        "message": message,
        "detail": detail,
        "request_id": _resolve_request_id(request),
    }
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.middleware("http")
    async def attach_request_id(
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming_request_id = request.headers.get("x-request-id")
        request.state.request_id = incoming_request_id or str(uuid4())
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail if exc.detail is not None else HTTPStatus(exc.status_code).phrase
        details = detail if isinstance(detail, (dict, list)) else None
        return _error_response(
            request,
            status_code=exc.status_code,
            detail=detail,
            details=details,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return _error_response(
            request,
            status_code=422,
            detail="Validation failed",
            details=exc.errors(),
        )

    @app.exception_handler(DuplicateEntry)
    async def duplicate_entry_handler(request: Request, exc: DuplicateEntry) -> JSONResponse:
        return _error_response(request, status_code=409, detail=str(exc))

    @app.exception_handler(TransientStoreError)
    async def transient_store_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
        logger.warning("store_unavailable_response", extra={"operation": exc.operation})
        return _error_response(
            request,
            status_code=503,
            detail="Pairing store unavailable",
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(OperationalError)
    @app.exception_handler(DBAPIError)
    @app.exception_handler(OSError)
    async def database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        del exc
        return _error_response(request, status_code=503, detail="Database unavailable")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"path": request.url.path},
        )
        return _error_response(request, status_code=500, detail="Internal server error")
