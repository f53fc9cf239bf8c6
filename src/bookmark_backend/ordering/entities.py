from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlmodel import SQLModel

from bookmark_backend.models import (
    BookmarkCategory,
    BookmarkCollection,
    BookmarkItem,
    BookmarkSubcategory,
)


class EntityKind(str, Enum):
    COLLECTION = "collection"
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    ITEM = "item"


@dataclass(frozen=True)
class KindSpec:
    kind: EntityKind
    model: type[SQLModel]
    # Column holding the parent id; None for the root level.
    parent_field: str | None
    parent_kind: EntityKind | None
    child_kind: EntityKind | None


KINDS: dict[EntityKind, KindSpec] = {
    EntityKind.COLLECTION: KindSpec(
        kind=EntityKind.COLLECTION,
        model=BookmarkCollection,
        parent_field=None,
        parent_kind=None,
        child_kind=EntityKind.CATEGORY,
    ),
    EntityKind.CATEGORY: KindSpec(
        kind=EntityKind.CATEGORY,
        model=BookmarkCategory,
        parent_field="collection_id",
        parent_kind=EntityKind.COLLECTION,
        child_kind=EntityKind.SUBCATEGORY,
    ),
    EntityKind.SUBCATEGORY: KindSpec(
        kind=EntityKind.SUBCATEGORY,
        model=BookmarkSubcategory,
        parent_field="category_id",
        parent_kind=EntityKind.CATEGORY,
        child_kind=EntityKind.ITEM,
    ),
    EntityKind.ITEM: KindSpec(
        kind=EntityKind.ITEM,
        model=BookmarkItem,
        parent_field="subcategory_id",
        parent_kind=EntityKind.SUBCATEGORY,
        child_kind=None,
    ),
}


def kind_spec(kind: EntityKind) -> KindSpec:
    return KINDS[kind]


def parent_id_of(kind: EntityKind, row: Any) -> str | None:
    field = KINDS[kind].parent_field
    if field is None:
        return None
    return getattr(row, field)


@dataclass(frozen=True)
class OrderedEntity:
    """Store-agnostic snapshot of one orderable row."""

    id: str
    kind: EntityKind
    parent_id: str | None
    owner_id: int
    order_index: int
    created_at: datetime
    updated_at: datetime


def canonical_sort_key(entity: Any) -> tuple[int, datetime]:
    # Ties on order_index fall back to creation time.
    return (entity.order_index, entity.created_at)


def sort_canonical(entities: list[Any]) -> list[Any]:
    return sorted(entities, key=canonical_sort_key)
