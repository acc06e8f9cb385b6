"""Collection upload, listing and tree routes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from blink.catalog.postman import import_collection, parse_collection
from blink.catalog.tree import build_tree
from blink.config import get_settings
from blink.db.connection import get_conn
from blink.db.queries import get_collection, list_collection_items, list_collections, row_to_item
from blink.errors import InvalidRequestError, NotFoundError

router = APIRouter(tags=["api-collections"])


@router.post("/collections/upload", status_code=201)
async def upload_collection(request: Request) -> JSONResponse:
    settings = get_settings()
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > settings.max_request_size:
        raise InvalidRequestError(
            f"collection JSON exceeds maximum size of {settings.max_request_size} bytes"
        )
    data = await request.body()
    if not data.strip():
        raise InvalidRequestError("request body is empty")
    collection = parse_collection(
        data,
        max_size=settings.max_request_size,
        max_header_count=settings.max_header_count,
    )
    with get_conn() as conn:
        collection_id = import_collection(conn, collection)
    return JSONResponse(
        status_code=201,
        content={"collection_id": collection_id, "message": "Collection imported successfully"},
    )


@router.get("/collections")
def get_collections() -> dict[str, object]:
    with get_conn() as conn:
        return {"collections": list_collections(conn)}


@router.get("/collections/{collection_id}/tree")
def get_collection_tree(collection_id: int) -> dict[str, object]:
    with get_conn() as conn:
        collection = get_collection(conn, collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        rows = list_collection_items(conn, collection_id)
    return {"collection": collection, "items": build_tree(row_to_item(row) for row in rows)}
