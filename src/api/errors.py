from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.responses import json_response
from src.api.validation import describe_errors


logger = logging.getLogger(__name__)


@dataclass
class APIError(Exception):
    status_code: int
    code: str
    message: str
    details: dict[str, Any] | None = None


def error_response(*, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    payload: dict[str, Any] = {"error": message, "code": code}
    if details:
        payload["details"] = details
    return json_response(status_code, payload)


async def api_error_handler(_req: Request, exc: APIError) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def validation_error_handler(req: Request, exc: RequestValidationError) -> JSONResponse:
    # Normalize FastAPI/Pydantic body errors into our envelope: one line per violated field.
    message, fields = describe_errors(exc.errors(), strip_prefix="body")
    logger.warning(
        "Request validation failed: %s",
        message,
        extra={"method": req.method, "path": req.url.path, "status_code": 400},
    )
    return error_response(
        status_code=400,
        code="invalid_argument",
        message=message,
        details={"fields": fields},
    )


async def http_error_handler(req: Request, exc: StarletteHTTPException) -> JSONResponse:
    # 404/405 from the router mean no (method, path) pair matched.
    if exc.status_code in (404, 405):
        config = getattr(req.app.state, "config", None)
        status_code = config.api.unmatched_status if config is not None else 400
        message = "Unsupported method or path" if status_code == 400 else f"Method {req.method} not allowed"
        return error_response(status_code=status_code, code="unsupported_route", message=message)
    return error_response(status_code=exc.status_code, code="http_error", message=str(exc.detail))


async def unhandled_error_handler(req: Request, exc: Exception) -> JSONResponse:
    # Keep errors safe by default; details are only in server logs.
    logger.error(
        "Unhandled exception on %s %s",
        req.method,
        req.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"method": req.method, "path": req.url.path, "status_code": 500},
    )
    return error_response(status_code=500, code="internal", message="Internal Server Error")
