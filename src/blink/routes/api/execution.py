"""Stored-request execution route."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from blink.catalog.postman import headers_to_mapping
from blink.config import get_settings
from blink.db.connection import get_conn
from blink.db.queries import get_item
from blink.errors import InvalidItemTypeError, InvalidRequestError, NotFoundError
from blink.execution.engine import ExecutionEngine
from blink.execution.types import ExecuteOverrides, ExecutionResult, RequestDescriptor
from blink.logging import bind_context, clear_context
from blink.ratelimit import enforce_execute_rate_limit
from blink.routes.errors import error_payload

router = APIRouter(tags=["api-execution"])


async def _read_overrides(request: Request) -> ExecuteOverrides | None:
    data = await request.body()
    limit = get_settings().max_request_size
    if len(data) > limit:
        raise InvalidRequestError(f"request body exceeds maximum size of {limit} bytes")
    if not data.strip():
        return None
    try:
        return ExecuteOverrides.model_validate_json(data)
    except PydanticValidationError as exc:
        raise InvalidRequestError(f"invalid request body: {exc}") from exc


def _failure_response(result: ExecutionResult) -> JSONResponse:
    if result.error_kind == "ssrf_protection":
        reason = result.verdict.outcome.value if result.verdict is not None else "blocked"
        return JSONResponse(
            status_code=403,
            content=error_payload(
                "ssrf_protection",
                f"URL blocked by SSRF protection: {result.error}",
                reason=reason,
            ),
        )
    return JSONResponse(
        status_code=502,
        content=error_payload(
            "execution_error",
            f"failed to execute request: {result.error}",
            reason=result.error_kind,
            duration_ms=result.duration_ms,
        ),
    )


@router.post(
    "/items/{item_id}/execute",
    dependencies=[Depends(enforce_execute_rate_limit)],
)
async def execute_item(item_id: int, request: Request) -> JSONResponse:
    overrides = await _read_overrides(request)
    with get_conn() as conn:
        item = get_item(conn, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    if item["item_type"] != "request":
        raise InvalidItemTypeError("only request items can be executed")

    descriptor = RequestDescriptor.merge(
        method=item.get("method"),
        url=item.get("url"),
        headers=headers_to_mapping(item.get("headers")),
        body=item.get("body"),
        overrides=overrides,
    )
    engine: ExecutionEngine = request.app.state.engine
    bind_context(item_id=item_id)
    try:
        result = await engine.execute(descriptor)
    finally:
        clear_context()
    if not result.ok:
        return _failure_response(result)
    return JSONResponse(status_code=200, content=result.to_payload())
