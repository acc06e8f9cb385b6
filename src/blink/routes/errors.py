"""Translate Blink exceptions into the JSON error payload."""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from blink.errors import (
    BlinkError,
    ExecutionError,
    InvalidRequestError,
    NotFoundError,
    RateLimited,
    UrlBlockedError,
)
from blink.ratelimit import retry_after_header

logger = logging.getLogger(__name__)


def error_status(exc: BlinkError) -> int:
    if isinstance(exc, RateLimited):
        return 429
    if isinstance(exc, UrlBlockedError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidRequestError):
        return 400
    if isinstance(exc, ExecutionError):
        return 502
    return 500


def error_payload(kind: str, message: str, **extra: object) -> dict[str, object]:
    payload: dict[str, object] = {"error": kind, "message": message}
    payload.update(extra)
    return payload


async def blink_error_handler(request: Request, exc: BlinkError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.error("%s %s failed [%s]: %s", request.method, request.url.path, exc.kind, exc)
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = retry_after_header(exc.retry_after)
    if isinstance(exc, ExecutionError):
        content = error_payload("execution_error", str(exc), reason=exc.kind)
    else:
        content = error_payload(exc.kind, str(exc))
    return JSONResponse(status_code=status, content=content, headers=headers or None)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    del request
    errors = exc.errors()
    if any(error.get("loc", ("",))[0] == "path" for error in errors):
        return JSONResponse(
            status_code=400, content=error_payload("invalid_id", "ID must be a valid integer")
        )
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ())[1:]) or 'body'}: {error.get('msg')}"
        for error in errors
    )
    return JSONResponse(
        status_code=400, content=error_payload("validation_error", details or "invalid request")
    )
