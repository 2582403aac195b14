"""Structured error envelope: every error response body is {"error": str, "details": any}."""

from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


def api_error(
    status_code: int,
    error: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    """Build an HTTPException whose body renders as the error envelope."""
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "details": details},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        body = {"error": detail["error"], "details": detail.get("details")}
    else:
        body = {"error": str(detail), "details": None}
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(body),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )
