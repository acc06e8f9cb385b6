from blink.catalog.tree import build_tree


def _item(item_id: int, parent_id: int | None, sort_order: int, name: str = "") -> dict:
    return {
        "id": item_id,
        "collection_id": 1,
        "parent_id": parent_id,
        "sort_order": sort_order,
        "name": name or f"item-{item_id}",
    }


def test_nests_children_in_sibling_order() -> None:
    items = [
        _item(1, None, 1, "second root"),
        _item(2, None, 0, "first root"),
        _item(3, 2, 1),
        _item(4, 2, 0),
        _item(5, 4, 0),
    ]
    tree = build_tree(items)

    assert [node["name"] for node in tree] == ["first root", "second root"]
    first = tree[0]
    assert [child["id"] for child in first["children"]] == [4, 3]
    assert first["children"][0]["children"][0]["id"] == 5
    assert tree[1]["children"] == []
    assert "collection_id" not in first


def test_ties_broken_by_id() -> None:
    tree = build_tree([_item(9, None, 0), _item(3, None, 0)])
    assert [node["id"] for node in tree] == [3, 9]


def test_orphans_become_roots() -> None:
    tree = build_tree([_item(1, None, 0), _item(2, 99, 0)])
    assert {node["id"] for node in tree} == {1, 2}


def test_deep_nesting_does_not_recurse() -> None:
    depth = 5000
    items = [_item(1, None, 0)] + [_item(i, i - 1, 0) for i in range(2, depth + 1)]
    node = build_tree(items)[0]
    seen = 1
    while node["children"]:
        node = node["children"][0]
        seen += 1
    assert seen == depth


def test_empty_input() -> None:
    assert build_tree([]) == []
