"""Postman v2.0/v2.1 collection parsing, validation and import."""

from __future__ import annotations

import logging
import sqlite3
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from blink.db.connection import transaction
from blink.db.queries import insert_collection, insert_item
from blink.errors import InvalidRequestError
from blink.execution.types import ALLOWED_METHODS

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMAS = frozenset(
    {
        "https://schema.getpostman.com/json/collection/v2.0.0/collection.json",
        "https://schema.getpostman.com/json/collection/v2.1.0/collection.json",
        "https://schema.getpostman.com/json/collection/v2.0",
        "https://schema.getpostman.com/json/collection/v2.1",
    }
)


class _PostmanModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PostmanHeader(_PostmanModel):
    key: str
    value: str = ""
    disabled: bool = False


class PostmanBody(_PostmanModel):
    mode: str = ""
    raw: str = ""


class PostmanUrl(_PostmanModel):
    raw: str | None = None


class PostmanRequest(_PostmanModel):
    method: str = ""
    header: list[PostmanHeader] = Field(default_factory=list)
    body: PostmanBody | None = None
    url: str | PostmanUrl | None = None

    @property
    def url_text(self) -> str:
        if isinstance(self.url, str):
            return self.url
        if isinstance(self.url, PostmanUrl):
            return self.url.raw or ""
        return ""

    @property
    def body_text(self) -> str:
        if self.body is None:
            return ""
        return self.body.raw


class PostmanItem(_PostmanModel):
    name: str = ""
    item: list[PostmanItem] | None = None
    request: PostmanRequest | None = None

    @property
    def is_folder(self) -> bool:
        return self.item is not None


class PostmanInfo(_PostmanModel):
    name: str
    description: str | dict[str, object] | None = None
    schema_url: str = Field(default="", alias="schema")

    @property
    def description_text(self) -> str:
        if isinstance(self.description, dict):
            return str(self.description.get("content") or "")
        return self.description or ""


class PostmanCollection(_PostmanModel):
    info: PostmanInfo
    item: list[PostmanItem] = Field(default_factory=list)


def has_template_variables(url: str) -> bool:
    return "{{" in url and "}}" in url


def validate_request_url(url: str) -> None:
    # {{base_url}} style templates carry their scheme in the environment value
    if has_template_variables(url):
        return
    try:
        scheme = urlsplit(url).scheme
    except ValueError as exc:
        raise InvalidRequestError(f"invalid URL format: {exc}") from exc
    if scheme.lower() not in {"http", "https"}:
        raise InvalidRequestError(
            f"unsupported URL scheme: {scheme} (only http and https are allowed)"
        )


def validate_request(request: PostmanRequest, max_header_count: int) -> None:
    if request.method.upper() not in ALLOWED_METHODS:
        raise InvalidRequestError(
            f"unsupported HTTP method: {request.method} "
            f"(allowed: {', '.join(ALLOWED_METHODS)})"
        )
    url = request.url_text
    if url:
        validate_request_url(url)
    if len(request.header) > max_header_count:
        raise InvalidRequestError(
            f"request has {len(request.header)} headers, exceeding limit of {max_header_count}"
        )


def parse_collection(data: bytes, *, max_size: int, max_header_count: int) -> PostmanCollection:
    if len(data) > max_size:
        raise InvalidRequestError(f"collection JSON exceeds maximum size of {max_size} bytes")
    try:
        collection = PostmanCollection.model_validate_json(data)
    except PydanticValidationError as exc:
        raise InvalidRequestError(f"invalid JSON format: {exc}") from exc

    if collection.info.schema_url not in SUPPORTED_SCHEMAS:
        raise InvalidRequestError(
            f"unsupported Postman schema version: {collection.info.schema_url} "
            "(only v2.0 and v2.1 are supported)"
        )
    if not collection.item:
        raise InvalidRequestError("collection must contain at least one item")

    pending = list(collection.item)
    while pending:
        item = pending.pop()
        if item.is_folder:
            pending.extend(item.item or [])
        elif item.request is not None:
            try:
                validate_request(item.request, max_header_count)
            except InvalidRequestError as exc:
                raise InvalidRequestError(f"invalid request '{item.name}': {exc}") from exc
    return collection


def import_collection(conn: sqlite3.Connection, collection: PostmanCollection) -> int:
    """Store a validated collection in one transaction; return its id."""
    with transaction(conn):
        collection_id = insert_collection(
            conn, collection.info.name, collection.info.description_text
        )
        pending: list[tuple[int | None, list[PostmanItem]]] = [(None, collection.item)]
        folders = requests = 0
        while pending:
            parent_id, items = pending.pop()
            for sort_order, item in enumerate(items):
                if item.is_folder:
                    folder_id = insert_item(
                        conn,
                        collection_id=collection_id,
                        parent_id=parent_id,
                        name=item.name,
                        item_type="folder",
                        sort_order=sort_order,
                    )
                    pending.append((folder_id, item.item or []))
                    folders += 1
                elif item.request is not None:
                    request = item.request
                    insert_item(
                        conn,
                        collection_id=collection_id,
                        parent_id=parent_id,
                        name=item.name,
                        item_type="request",
                        sort_order=sort_order,
                        method=request.method.upper(),
                        url=request.url_text,
                        headers=[header.model_dump() for header in request.header],
                        body=request.body_text,
                    )
                    requests += 1
    logger.info(
        "imported collection %d (%s): %d folders, %d requests",
        collection_id,
        collection.info.name,
        folders,
        requests,
    )
    return collection_id


def headers_to_mapping(headers: object) -> dict[str, str]:
    """Stored ``[{key, value, disabled}]`` list to an ordered name->value mapping."""
    mapping: dict[str, str] = {}
    if not isinstance(headers, list):
        return mapping
    for entry in headers:
        if not isinstance(entry, dict) or entry.get("disabled"):
            continue
        key = entry.get("key")
        if isinstance(key, str) and key:
            mapping[key] = str(entry.get("value") or "")
    return mapping
