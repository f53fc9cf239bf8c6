"""Optimistic tree edits for a single collection.

Every function takes the current ``CollectionTree`` and returns a new one;
the input tree is never mutated. A placeholder is a node whose id carries the
reserved ``temp_`` prefix and ``is_temporary=True``. Each placeholder must be
settled by exactly one ``reconcile`` or ``discard`` call; ``find_placeholders``
lists the ones still waiting.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from bookmark_backend.errors import NotFoundError, ValidationError
from bookmark_backend.models import utc_now
from bookmark_backend.ordering.entities import EntityKind, kind_spec
from bookmark_backend.schemas_bookmarks import (
    AnyNode,
    CategoryNode,
    CollectionTree,
    ItemNode,
    NodeBase,
    SubcategoryNode,
    parse_input,
)

TEMP_ID_PREFIX = "temp_"

_CHILD_ATTR: dict[EntityKind, str] = {
    EntityKind.COLLECTION: "categories",
    EntityKind.CATEGORY: "subcategories",
    EntityKind.SUBCATEGORY: "items",
}

_NODE_TYPES: dict[EntityKind, type[NodeBase]] = {
    EntityKind.CATEGORY: CategoryNode,
    EntityKind.SUBCATEGORY: SubcategoryNode,
    EntityKind.ITEM: ItemNode,
}


def generate_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def is_temp_id(value: object) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


def _locate_parent(tree: CollectionTree, parent_id: str) -> tuple[EntityKind, NodeBase]:
    if tree.id == parent_id:
        return EntityKind.COLLECTION, tree
    for cat in tree.categories:
        if cat.id == parent_id:
            return EntityKind.CATEGORY, cat
        for sub in cat.subcategories:
            if sub.id == parent_id:
                return EntityKind.SUBCATEGORY, sub
    raise NotFoundError("parent not found in tree", details={"parent_id": parent_id})


def _children(parent_kind: EntityKind, parent: NodeBase) -> list[Any]:
    return getattr(parent, _CHILD_ATTR[parent_kind])


def _index_of(children: Sequence[NodeBase], node_id: str, parent_id: str) -> int:
    for i, child in enumerate(children):
        if child.id == node_id:
            return i
    raise NotFoundError(
        "node not found under parent", details={"id": node_id, "parent_id": parent_id}
    )


def children_of(tree: CollectionTree, parent_id: str) -> tuple[EntityKind, list[AnyNode]]:
    """Return the kind and a copy of the children of ``parent_id``."""
    parent_kind, parent = _locate_parent(tree, parent_id)
    child_kind = kind_spec(parent_kind).child_kind
    if child_kind is None:
        raise ValidationError(f"{parent_kind.value} has no children", details={"id": parent_id})
    return child_kind, list(_children(parent_kind, parent))


def create_placeholder(
    tree: CollectionTree,
    kind: EntityKind,
    parent_id: str,
    fields: Mapping[str, Any] | BaseModel,
    owner_id: int,
) -> tuple[CollectionTree, AnyNode]:
    """Insert a temporary node at the front of its parent's children."""
    expected_parent = kind_spec(kind).parent_kind
    if expected_parent is None:
        raise ValidationError("collections are not created inside a collection tree")

    data = parse_input(kind, fields)
    out = tree.model_copy(deep=True)
    parent_kind, parent = _locate_parent(out, parent_id)
    if parent_kind != expected_parent:
        raise ValidationError(
            f"a {kind.value} cannot be placed under a {parent_kind.value}",
            details={"parent_id": parent_id},
        )

    now = utc_now()
    placeholder = _NODE_TYPES[kind](
        id=generate_temp_id(),
        parent_id=parent_id,
        owner_id=owner_id,
        order_index=0,
        created_at=now,
        updated_at=now,
        is_temporary=True,
        **data.model_dump(),
    )
    _children(parent_kind, parent).insert(0, placeholder)
    return out, placeholder.model_copy(deep=True)  # type: ignore[return-value]


def reconcile(
    tree: CollectionTree,
    parent_id: str,
    placeholder_id: str,
    confirmed: AnyNode | Mapping[str, Any],
) -> CollectionTree:
    """Swap a placeholder for its server-confirmed entity at the same position."""
    out = tree.model_copy(deep=True)
    parent_kind, parent = _locate_parent(out, parent_id)
    children = _children(parent_kind, parent)
    idx = _index_of(children, placeholder_id, parent_id)
    current = children[idx]
    if not current.is_temporary:
        raise ValidationError(
            "only a placeholder can be reconciled", details={"id": placeholder_id}
        )

    node_type = type(current)
    if isinstance(confirmed, Mapping):
        confirmed = node_type.model_validate(confirmed)
    elif not isinstance(confirmed, node_type):
        raise ValidationError(
            f"confirmed entity must be a {node_type.__name__}",
            details={"id": placeholder_id},
        )
    if confirmed.is_temporary or is_temp_id(confirmed.id):
        raise ValidationError(
            "confirmed entity must carry a server-assigned id", details={"id": confirmed.id}
        )

    children[idx] = confirmed.model_copy(deep=True)
    return out


def discard(tree: CollectionTree, parent_id: str, placeholder_id: str) -> CollectionTree:
    out = tree.model_copy(deep=True)
    parent_kind, parent = _locate_parent(out, parent_id)
    children = _children(parent_kind, parent)
    idx = _index_of(children, placeholder_id, parent_id)
    if not children[idx].is_temporary:
        raise ValidationError("only a placeholder can be discarded", details={"id": placeholder_id})
    del children[idx]
    return out


def apply_order(tree: CollectionTree, parent_id: str, ordered_ids: Sequence[str]) -> CollectionTree:
    """Mirror a confirmed reorder into the tree.

    Named children take their position in ``ordered_ids`` with a dense
    ``order_index``. Children not named (placeholders, or entities created
    after the reorder was submitted) stay ahead of them in their current order.
    """
    out = tree.model_copy(deep=True)
    parent_kind, parent = _locate_parent(out, parent_id)
    children = _children(parent_kind, parent)
    by_id = {c.id: c for c in children}
    missing = [i for i in ordered_ids if i not in by_id]
    if missing:
        raise NotFoundError(
            "reordered ids not found under parent",
            details={"parent_id": parent_id, "ids": missing},
        )

    named = set(ordered_ids)
    rest = [c for c in children if c.id not in named]
    moved = [by_id[i].model_copy(update={"order_index": pos}) for pos, i in enumerate(ordered_ids)]
    children[:] = rest + moved
    return out


def find_placeholders(tree: CollectionTree) -> list[str]:
    found: list[str] = []
    for cat in tree.categories:
        if cat.is_temporary:
            found.append(cat.id)
        for sub in cat.subcategories:
            if sub.is_temporary:
                found.append(sub.id)
            found.extend(it.id for it in sub.items if it.is_temporary)
    return found
