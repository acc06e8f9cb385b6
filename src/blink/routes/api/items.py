"""Collection item CRUD routes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from blink.catalog.postman import PostmanHeader, validate_request_url
from blink.config import get_settings
from blink.db.connection import get_conn
from blink.db.queries import (
    delete_item,
    get_collection,
    get_item,
    get_item_row,
    insert_item,
    next_sort_order,
    update_item,
)
from blink.errors import InvalidItemTypeError, InvalidRequestError, NotFoundError
from blink.execution.types import normalize_method

router = APIRouter(tags=["api-items"])

VALID_ITEM_TYPES = {"folder", "request"}


class ExtractionRule(BaseModel):
    enabled: bool = False
    json_path: str = ""
    variable_name: str = ""


class CreateItemBody(BaseModel):
    name: str
    item_type: str
    parent_id: int | None = None
    method: str = ""
    url: str = ""
    headers: list[PostmanHeader] = Field(default_factory=list)
    body: str = ""
    extraction_rules: list[ExtractionRule] = Field(default_factory=list)


class UpdateItemBody(BaseModel):
    name: str | None = None
    method: str | None = None
    url: str | None = None
    headers: list[PostmanHeader] | None = None
    body: str | None = None
    extraction_rules: list[ExtractionRule] | None = None


def _check_request_fields(
    method: str | None, url: str | None, headers: list[PostmanHeader] | None
) -> str | None:
    normalized = normalize_method(method) if method is not None else None
    if url:
        validate_request_url(url)
    limit = get_settings().max_header_count
    if headers is not None and len(headers) > limit:
        raise InvalidRequestError(
            f"request has {len(headers)} headers, exceeding limit of {limit}"
        )
    return normalized


@router.post("/collections/{collection_id}/items", status_code=201)
def create_item(collection_id: int, body: CreateItemBody) -> JSONResponse:
    if not body.name.strip():
        raise InvalidRequestError("name is required")
    if body.item_type not in VALID_ITEM_TYPES:
        raise InvalidItemTypeError("item_type must be 'folder' or 'request'")
    method: str | None = None
    if body.item_type == "request":
        if not body.method:
            raise InvalidRequestError("method is required for request items")
        method = _check_request_fields(body.method, body.url, body.headers)

    with get_conn() as conn:
        if get_collection(conn, collection_id) is None:
            raise NotFoundError("Collection not found")
        if body.parent_id is not None:
            parent = get_item_row(conn, body.parent_id)
            if parent is None:
                raise InvalidRequestError("parent item not found")
            if int(parent["collection_id"]) != collection_id:
                raise InvalidRequestError("parent item must belong to the same collection")
            if parent["item_type"] != "folder":
                raise InvalidRequestError("parent item must be a folder")
        is_request = body.item_type == "request"
        item_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=body.parent_id,
            name=body.name,
            item_type=body.item_type,
            sort_order=next_sort_order(conn, collection_id, body.parent_id),
            method=method,
            url=body.url if is_request else None,
            headers=[header.model_dump() for header in body.headers] if is_request else None,
            body=body.body if is_request else None,
            extraction_rules=[rule.model_dump() for rule in body.extraction_rules],
        )
        item = get_item(conn, item_id)
    return JSONResponse(status_code=201, content=item)


@router.get("/items/{item_id}")
def read_item(item_id: int) -> dict[str, object]:
    with get_conn() as conn:
        item = get_item(conn, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


@router.put("/items/{item_id}")
def modify_item(item_id: int, body: UpdateItemBody) -> dict[str, object]:
    """Partial update: only the fields present in the body change."""
    fields = body.model_dump(exclude_none=True)
    with get_conn() as conn:
        row = get_item_row(conn, item_id)
        if row is None:
            raise NotFoundError("Item not found")
        if row["item_type"] != "request":
            raise InvalidItemTypeError(
                "Only items of type 'request' can be updated with this endpoint"
            )
        if not fields:
            raise InvalidRequestError("no fields provided to update")
        method = _check_request_fields(body.method, body.url, body.headers)
        if method is not None:
            fields["method"] = method
        update_item(conn, item_id, fields)
        item = get_item(conn, item_id)
    return {"message": "Item updated successfully", "item": item}


@router.delete("/items/{item_id}")
def remove_item(item_id: int) -> dict[str, str]:
    with get_conn() as conn:
        if not delete_item(conn, item_id):
            raise NotFoundError("Item not found")
    return {"message": "Item deleted successfully"}
