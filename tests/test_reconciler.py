from __future__ import annotations

from datetime import datetime, timezone

import pytest

from bookmark_backend.client.reconciler import (
    TEMP_ID_PREFIX,
    apply_order,
    children_of,
    create_placeholder,
    discard,
    find_placeholders,
    generate_temp_id,
    is_temp_id,
    reconcile,
)
from bookmark_backend.errors import NotFoundError, ValidationError
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    CategoryNode,
    CollectionTree,
    ItemNode,
    SubcategoryNode,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _item(item_id: str, order_index: int, parent_id: str = "S1") -> ItemNode:
    return ItemNode(
        id=item_id,
        parent_id=parent_id,
        owner_id=1,
        order_index=order_index,
        created_at=T0,
        updated_at=T0,
        title=item_id,
        url=f"https://{item_id}.example",
    )


def _tree() -> CollectionTree:
    sub = SubcategoryNode(
        id="S1",
        parent_id="K1",
        owner_id=1,
        created_at=T0,
        updated_at=T0,
        name="Sub",
        items=[_item("i1", 0), _item("i2", 1)],
    )
    cat = CategoryNode(
        id="K1",
        parent_id="C1",
        owner_id=1,
        created_at=T0,
        updated_at=T0,
        name="Cat",
        subcategories=[sub],
    )
    return CollectionTree(
        id="C1", owner_id=1, created_at=T0, updated_at=T0, name="C1", categories=[cat]
    )


def _items(tree: CollectionTree) -> list[ItemNode]:
    return tree.categories[0].subcategories[0].items


def test_temp_ids_use_reserved_prefix() -> None:
    tid = generate_temp_id()
    assert tid.startswith(TEMP_ID_PREFIX)
    assert is_temp_id(tid)
    assert not is_temp_id("item_789")
    assert not is_temp_id(None)
    assert generate_temp_id() != tid


def test_placeholder_is_spliced_at_front_without_touching_input() -> None:
    tree = _tree()

    out, ph = create_placeholder(
        tree, EntityKind.ITEM, "S1", {"title": "Foo", "url": "https://foo.example"}, owner_id=1
    )

    assert [i.id for i in _items(tree)] == ["i1", "i2"]
    assert [i.id for i in _items(out)] == [ph.id, "i1", "i2"]
    assert ph.is_temporary
    assert ph.order_index == 0
    assert ph.parent_id == "S1"
    assert isinstance(ph, ItemNode) and ph.title == "Foo"
    assert find_placeholders(out) == [ph.id]


def test_foo_item_reconciles_in_place() -> None:
    out, ph = create_placeholder(
        _tree(), EntityKind.ITEM, "S1", {"title": "Foo", "url": "https://foo.example"}, owner_id=1
    )
    confirmed = ph.model_copy(update={"id": "item_789", "is_temporary": False})

    done = reconcile(out, "S1", ph.id, confirmed)

    assert _items(done)[0].id == "item_789"
    assert [i.id for i in _items(done)] == ["item_789", "i1", "i2"]
    assert find_placeholders(done) == []


def test_reconcile_accepts_a_plain_mapping() -> None:
    out, ph = create_placeholder(
        _tree(), EntityKind.ITEM, "S1", {"title": "Foo", "url": "https://foo.example"}, owner_id=1
    )
    payload = _item("item_789", 0).model_dump()

    done = reconcile(out, "S1", ph.id, payload)

    assert isinstance(_items(done)[0], ItemNode)
    assert _items(done)[0].id == "item_789"


def test_discard_restores_siblings() -> None:
    tree = _tree()
    out, ph = create_placeholder(
        tree, EntityKind.ITEM, "S1", {"title": "Foo", "url": "https://foo.example"}, owner_id=1
    )

    done = discard(out, "S1", ph.id)

    assert _items(done) == _items(tree)
    assert find_placeholders(done) == []


def test_placeholders_for_each_level() -> None:
    tree = _tree()

    t1, cat = create_placeholder(tree, EntityKind.CATEGORY, "C1", {"name": "New"}, owner_id=1)
    t2, sub = create_placeholder(t1, EntityKind.SUBCATEGORY, "K1", {"name": "New"}, owner_id=1)

    assert t2.categories[0].id == cat.id
    assert t2.categories[1].subcategories[0].id == sub.id
    assert find_placeholders(t2) == [cat.id, sub.id]


def test_kind_must_match_parent_depth() -> None:
    tree = _tree()

    with pytest.raises(ValidationError):
        create_placeholder(
            tree, EntityKind.ITEM, "K1", {"title": "x", "url": "https://x"}, owner_id=1
        )
    with pytest.raises(ValidationError):
        create_placeholder(tree, EntityKind.COLLECTION, "C1", {"name": "x"}, owner_id=1)
    with pytest.raises(NotFoundError):
        create_placeholder(tree, EntityKind.CATEGORY, "nowhere", {"name": "x"}, owner_id=1)


def test_invalid_fields_raise_domain_validation_error() -> None:
    with pytest.raises(ValidationError) as excinfo:
        create_placeholder(
            _tree(), EntityKind.ITEM, "S1", {"title": " ", "url": "nope"}, owner_id=1
        )
    assert isinstance(excinfo.value.details, list)


def test_only_placeholders_can_be_settled() -> None:
    tree = _tree()
    fields = {"title": "F", "url": "https://f.example"}
    out, ph = create_placeholder(tree, EntityKind.ITEM, "S1", fields, owner_id=1)

    with pytest.raises(ValidationError):
        discard(out, "S1", "i1")
    with pytest.raises(ValidationError):
        reconcile(out, "S1", "i1", _item("i9", 0))
    with pytest.raises(ValidationError):
        # A still-temporary node is not a confirmation.
        reconcile(out, "S1", ph.id, ph)
    wrong_kind = SubcategoryNode(
        id="s9", owner_id=1, created_at=T0, updated_at=T0, name="wrong kind"
    )
    with pytest.raises(ValidationError):
        reconcile(out, "S1", ph.id, wrong_kind)
    with pytest.raises(NotFoundError):
        discard(out, "S1", "temp_missing")


def test_apply_order_is_dense_and_keeps_unnamed_children_first() -> None:
    tree = _tree()
    fields = {"title": "F", "url": "https://f.example"}
    out, ph = create_placeholder(tree, EntityKind.ITEM, "S1", fields, owner_id=1)

    done = apply_order(out, "S1", ["i2", "i1"])

    assert [(i.id, i.order_index) for i in _items(done)] == [(ph.id, 0), ("i2", 0), ("i1", 1)]
    kind, children = children_of(done, "S1")
    assert kind == EntityKind.ITEM
    assert [c.id for c in children] == [ph.id, "i2", "i1"]

    with pytest.raises(NotFoundError):
        apply_order(tree, "S1", ["ghost"])


def test_children_of_only_resolves_container_nodes() -> None:
    tree = _tree()

    assert children_of(tree, "C1")[0] == EntityKind.CATEGORY
    assert children_of(tree, "K1")[0] == EntityKind.SUBCATEGORY
    kind, items = children_of(tree, "S1")
    assert kind == EntityKind.ITEM
    assert [i.id for i in items] == ["i1", "i2"]
    # Items hold no children, so they are never a parent scope.
    with pytest.raises(NotFoundError):
        children_of(tree, "i1")
