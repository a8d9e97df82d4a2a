from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse


CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}


def json_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    """Uniform envelope: JSON object body plus the fixed CORS headers."""
    return JSONResponse(
        status_code=int(status_code),
        content=body,
        headers={**CORS_HEADERS, "Content-Type": "application/json"},
    )


def apply_cors_headers(headers: Any) -> None:
    for k, v in CORS_HEADERS.items():
        headers[k] = v
