"""Query helpers for collections, items and environments."""

import json
import sqlite3
from datetime import UTC, datetime

ITEM_COLUMNS = (
    "id, collection_id, parent_id, name, item_type, sort_order, "
    "method, url, headers_json, body, extraction_rules_json, created_at, updated_at"
)


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _loads(raw: object, default: object) -> object:
    if not isinstance(raw, str) or not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def row_to_collection(row: sqlite3.Row) -> dict[str, object]:
    return {
        "id": int(row["id"]),
        "name": str(row["name"]),
        "description": str(row["description"] or ""),
        "created_at": str(row["created_at"]),
        "updated_at": str(row["updated_at"]),
    }


def row_to_item(row: sqlite3.Row) -> dict[str, object]:
    item: dict[str, object] = {
        "id": int(row["id"]),
        "collection_id": int(row["collection_id"]),
        "parent_id": int(row["parent_id"]) if row["parent_id"] is not None else None,
        "name": str(row["name"]),
        "item_type": str(row["item_type"]),
        "sort_order": int(row["sort_order"]),
        "created_at": str(row["created_at"]),
        "updated_at": str(row["updated_at"]),
    }
    if item["item_type"] == "request":
        item["method"] = row["method"]
        item["url"] = row["url"]
        item["headers"] = _loads(row["headers_json"], [])
        item["body"] = row["body"]
        item["extraction_rules"] = _loads(row["extraction_rules_json"], [])
    return item


def row_to_environment(row: sqlite3.Row) -> dict[str, object]:
    return {
        "id": int(row["id"]),
        "name": str(row["name"]),
        "description": str(row["description"] or ""),
        "created_by": str(row["created_by"] or ""),
        "variables": _loads(row["variables_json"], {}),
        "created_at": str(row["created_at"]),
        "updated_at": str(row["updated_at"]),
    }


# Collections


def insert_collection(conn: sqlite3.Connection, name: str, description: str = "") -> int:
    now = now_iso()
    cursor = conn.execute(
        "INSERT INTO collections(name, description, created_at, updated_at) VALUES(?,?,?,?)",
        (name, description, now, now),
    )
    return int(cursor.lastrowid)


def list_collections(conn: sqlite3.Connection) -> list[dict[str, object]]:
    rows = conn.execute(
        "SELECT id, name, description, created_at, updated_at FROM collections "
        "ORDER BY created_at DESC, id DESC"
    ).fetchall()
    return [row_to_collection(row) for row in rows]


def get_collection(conn: sqlite3.Connection, collection_id: int) -> dict[str, object] | None:
    row = conn.execute(
        "SELECT id, name, description, created_at, updated_at FROM collections WHERE id=?",
        (collection_id,),
    ).fetchone()
    return row_to_collection(row) if row is not None else None


# Items


def insert_item(
    conn: sqlite3.Connection,
    *,
    collection_id: int,
    parent_id: int | None,
    name: str,
    item_type: str,
    sort_order: int,
    method: str | None = None,
    url: str | None = None,
    headers: list[dict[str, object]] | None = None,
    body: str | None = None,
    extraction_rules: list[dict[str, object]] | None = None,
) -> int:
    now = now_iso()
    headers_json = json.dumps(headers or []) if item_type == "request" else None
    cursor = conn.execute(
        (
            "INSERT INTO collection_items("
            "collection_id, parent_id, name, item_type, sort_order, method, url, "
            "headers_json, body, extraction_rules_json, created_at, updated_at"
            ") VALUES(?,?,?,?,?,?,?,?,?,?,?,?)"
        ),
        (
            collection_id,
            parent_id,
            name,
            item_type,
            sort_order,
            method,
            url,
            headers_json,
            body,
            json.dumps(extraction_rules or []),
            now,
            now,
        ),
    )
    return int(cursor.lastrowid)


def get_item_row(conn: sqlite3.Connection, item_id: int) -> sqlite3.Row | None:
    return conn.execute(
        f"SELECT {ITEM_COLUMNS} FROM collection_items WHERE id=?", (item_id,)
    ).fetchone()


def get_item(conn: sqlite3.Connection, item_id: int) -> dict[str, object] | None:
    row = get_item_row(conn, item_id)
    return row_to_item(row) if row is not None else None


def list_collection_items(conn: sqlite3.Connection, collection_id: int) -> list[sqlite3.Row]:
    return conn.execute(
        f"SELECT {ITEM_COLUMNS} FROM collection_items WHERE collection_id=? "
        "ORDER BY sort_order, id",
        (collection_id,),
    ).fetchall()


def next_sort_order(conn: sqlite3.Connection, collection_id: int, parent_id: int | None) -> int:
    if parent_id is None:
        row = conn.execute(
            "SELECT MAX(sort_order) AS max_order FROM collection_items "
            "WHERE collection_id=? AND parent_id IS NULL",
            (collection_id,),
        ).fetchone()
    else:
        row = conn.execute(
            "SELECT MAX(sort_order) AS max_order FROM collection_items "
            "WHERE collection_id=? AND parent_id=?",
            (collection_id, parent_id),
        ).fetchone()
    if row is None or row["max_order"] is None:
        return 0
    return int(row["max_order"]) + 1


def update_item(conn: sqlite3.Connection, item_id: int, fields: dict[str, object]) -> bool:
    """Update the given columns; JSON-valued fields are encoded here."""
    columns = {
        "name": "name",
        "method": "method",
        "url": "url",
        "headers": "headers_json",
        "body": "body",
        "extraction_rules": "extraction_rules_json",
    }
    assignments: list[str] = []
    params: list[object] = []
    for key, value in fields.items():
        column = columns[key]
        if column.endswith("_json"):
            value = json.dumps(value)
        assignments.append(f"{column}=?")
        params.append(value)
    if not assignments:
        return False
    assignments.append("updated_at=?")
    params.extend([now_iso(), item_id])
    cursor = conn.execute(
        f"UPDATE collection_items SET {', '.join(assignments)} WHERE id=?", tuple(params)
    )
    return cursor.rowcount > 0


def delete_item(conn: sqlite3.Connection, item_id: int) -> bool:
    cursor = conn.execute("DELETE FROM collection_items WHERE id=?", (item_id,))
    return cursor.rowcount > 0


# Environments


def insert_environment(
    conn: sqlite3.Connection,
    *,
    name: str,
    description: str = "",
    created_by: str = "",
    variables: dict[str, str] | None = None,
) -> int:
    now = now_iso()
    cursor = conn.execute(
        (
            "INSERT INTO environments("
            "name, description, created_by, variables_json, created_at, updated_at"
            ") VALUES(?,?,?,?,?,?)"
        ),
        (name, description, created_by, json.dumps(variables or {}), now, now),
    )
    return int(cursor.lastrowid)


def list_environments(conn: sqlite3.Connection) -> list[dict[str, object]]:
    rows = conn.execute("SELECT * FROM environments ORDER BY created_at DESC, id DESC").fetchall()
    return [row_to_environment(row) for row in rows]


def get_environment(conn: sqlite3.Connection, env_id: int) -> dict[str, object] | None:
    row = conn.execute("SELECT * FROM environments WHERE id=?", (env_id,)).fetchone()
    return row_to_environment(row) if row is not None else None


def update_environment(conn: sqlite3.Connection, env_id: int, fields: dict[str, object]) -> bool:
    columns = {
        "name": "name",
        "description": "description",
        "created_by": "created_by",
        "variables": "variables_json",
    }
    assignments: list[str] = []
    params: list[object] = []
    for key, value in fields.items():
        column = columns[key]
        if column.endswith("_json"):
            value = json.dumps(value)
        assignments.append(f"{column}=?")
        params.append(value)
    assignments.append("updated_at=?")
    params.extend([now_iso(), env_id])
    cursor = conn.execute(
        f"UPDATE environments SET {', '.join(assignments)} WHERE id=?", tuple(params)
    )
    return cursor.rowcount > 0


def delete_environment(conn: sqlite3.Connection, env_id: int) -> bool:
    cursor = conn.execute("DELETE FROM environments WHERE id=?", (env_id,))
    return cursor.rowcount > 0
