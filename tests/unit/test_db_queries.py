"""Tests for collection, item and environment queries."""

from blink.db.connection import get_conn
from blink.db.migrations.runner import run_migrations
from blink.db.queries import (
    delete_item,
    get_environment,
    get_item,
    insert_collection,
    insert_environment,
    insert_item,
    list_collection_items,
    next_sort_order,
    update_environment,
    update_item,
)


def test_migrations_are_idempotent() -> None:
    assert run_migrations() == []


def test_next_sort_order_per_parent() -> None:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        assert next_sort_order(conn, collection_id, None) == 0
        folder_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="Folder",
            item_type="folder",
            sort_order=0,
        )
        assert next_sort_order(conn, collection_id, None) == 1
        assert next_sort_order(conn, collection_id, folder_id) == 0


def test_folder_has_no_request_fields() -> None:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        folder_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="Folder",
            item_type="folder",
            sort_order=0,
        )
        folder = get_item(conn, folder_id)
    assert folder is not None
    assert "headers" not in folder
    assert "method" not in folder


def test_update_item_encodes_json_fields() -> None:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        item_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="List",
            item_type="request",
            sort_order=0,
            method="GET",
            url="https://api.example.com/pets",
        )
        assert update_item(conn, item_id, {"headers": [{"key": "A", "value": "1"}]})
        assert update_item(conn, item_id, {}) is False
        item = get_item(conn, item_id)
    assert item is not None
    assert item["headers"] == [{"key": "A", "value": "1"}]
    assert item["extraction_rules"] == []


def test_deleting_folder_cascades_to_children() -> None:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        folder_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="Folder",
            item_type="folder",
            sort_order=0,
        )
        insert_item(
            conn,
            collection_id=collection_id,
            parent_id=folder_id,
            name="Child",
            item_type="request",
            sort_order=0,
            method="GET",
            url="https://api.example.com/",
        )
        assert delete_item(conn, folder_id)
        assert list_collection_items(conn, collection_id) == []
        assert delete_item(conn, folder_id) is False


def test_environment_variables_round_trip_as_mapping() -> None:
    with get_conn() as conn:
        env_id = insert_environment(conn, name="dev", variables={"base_url": "http://x"})
        update_environment(conn, env_id, {"variables": {"token": "t"}})
        env = get_environment(conn, env_id)
    assert env is not None
    assert env["variables"] == {"token": "t"}
    assert env["name"] == "dev"
