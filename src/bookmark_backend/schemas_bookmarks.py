from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from bookmark_backend.errors import ValidationError
from bookmark_backend.ordering.entities import EntityKind

_SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _require_text(value: str, field_name: str) -> str:
    v = value.strip()
    if not v:
        raise ValueError(f"{field_name} is required")
    return v


# Inputs: per-kind form fields, validated once at the boundary.


class CollectionInput(BaseModel):
    name: str = Field(max_length=200)
    description: str = Field(default="", max_length=2000)
    is_public: bool = False
    slug: str | None = Field(default=None, max_length=100, pattern=_SLUG_PATTERN)
    cover_url: str | None = Field(default=None, max_length=2048)

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        return _require_text(v, "name")


class CategoryInput(BaseModel):
    name: str = Field(max_length=200)
    description: str = Field(default="", max_length=2000)

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        return _require_text(v, "name")


class SubcategoryInput(BaseModel):
    name: str = Field(max_length=200)
    description: str = Field(default="", max_length=2000)

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        return _require_text(v, "name")


class ItemInput(BaseModel):
    title: str = Field(max_length=500)
    url: str = Field(max_length=4096)
    description: str = Field(default="", max_length=2000)
    icon_url: str | None = Field(default=None, max_length=2048)

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        return _require_text(v, "title")

    @field_validator("url")
    @classmethod
    def _url_required(cls, v: str) -> str:
        v = _require_text(v, "url")
        if "://" not in v:
            raise ValueError("url must include a scheme")
        return v


EntityInput = Union[CollectionInput, CategoryInput, SubcategoryInput, ItemInput]

_INPUT_TYPES: dict[EntityKind, type[BaseModel]] = {
    EntityKind.COLLECTION: CollectionInput,
    EntityKind.CATEGORY: CategoryInput,
    EntityKind.SUBCATEGORY: SubcategoryInput,
    EntityKind.ITEM: ItemInput,
}


def parse_input(kind: EntityKind, data: Mapping[str, Any] | BaseModel) -> EntityInput:
    """Validate raw form fields for one entity kind.

    Accepts a mapping or any model carrying the fields; extra keys (such as a
    parent id) are ignored. Raises the domain ValidationError with the pydantic
    error list in ``details``.
    """
    model = _INPUT_TYPES[kind]
    raw = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else dict(data)
    try:
        parsed = model.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {kind.value} fields",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc
    return parsed  # type: ignore[return-value]


# Create requests: form fields + parent id (+ optional explicit position).


class CollectionCreateRequest(CollectionInput):
    order_index: int | None = Field(default=None, ge=0)


class CategoryCreateRequest(CategoryInput):
    collection_id: str = Field(min_length=1, max_length=36)
    order_index: int | None = Field(default=None, ge=0)


class SubcategoryCreateRequest(SubcategoryInput):
    category_id: str = Field(min_length=1, max_length=36)
    order_index: int | None = Field(default=None, ge=0)


class ItemCreateRequest(ItemInput):
    subcategory_id: str = Field(min_length=1, max_length=36)
    order_index: int | None = Field(default=None, ge=0)


class QuickAddRequest(ItemInput):
    """Bookmark plus its destination; the category and subcategory may be new.

    Each level takes either an existing id or a name for a new node. A new
    category has no subcategories yet, so it requires a new subcategory too.
    """

    collection_id: str = Field(min_length=1, max_length=36)
    category_id: str | None = Field(default=None, min_length=1, max_length=36)
    new_category_name: str | None = Field(default=None, max_length=200)
    subcategory_id: str | None = Field(default=None, min_length=1, max_length=36)
    new_subcategory_name: str | None = Field(default=None, max_length=200)

    @field_validator("new_category_name", "new_subcategory_name")
    @classmethod
    def _strip_new_names(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _require_text(v, "name")

    @model_validator(mode="after")
    def _one_target_per_level(self) -> "QuickAddRequest":
        if (self.category_id is None) == (self.new_category_name is None):
            raise ValueError("give exactly one of category_id or new_category_name")
        if (self.subcategory_id is None) == (self.new_subcategory_name is None):
            raise ValueError("give exactly one of subcategory_id or new_subcategory_name")
        if self.new_category_name is not None and self.subcategory_id is not None:
            raise ValueError("a new category needs new_subcategory_name")
        return self


# Patch requests. order_index is deliberately absent: only reorder moves rows.


class _PatchBase(BaseModel):
    @model_validator(mode="after")
    def _ensure_any_field_present(self) -> "_PatchBase":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self


class CollectionPatchRequest(_PatchBase):
    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool | None = None
    slug: str | None = Field(default=None, max_length=100, pattern=_SLUG_PATTERN)
    cover_url: str | None = Field(default=None, max_length=2048)


class CategoryPatchRequest(_PatchBase):
    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class SubcategoryPatchRequest(_PatchBase):
    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class ItemPatchRequest(_PatchBase):
    title: str | None = Field(default=None, max_length=500)
    url: str | None = Field(default=None, max_length=4096)
    description: str | None = Field(default=None, max_length=2000)
    icon_url: str | None = Field(default=None, max_length=2048)


# Entities. The same models describe the nested tree, which the client library
# also uses as its in-memory state (placeholders set is_temporary=True there).


class NodeBase(BaseModel):
    id: str
    parent_id: str | None = None
    owner_id: int
    order_index: int = 0
    created_at: datetime
    updated_at: datetime
    is_temporary: bool = False


class ItemNode(NodeBase):
    title: str
    url: str
    description: str = ""
    icon_url: str | None = None


class SubcategoryNode(NodeBase):
    name: str
    description: str = ""
    items: list[ItemNode] = Field(default_factory=list)


class CategoryNode(NodeBase):
    name: str
    description: str = ""
    subcategories: list[SubcategoryNode] = Field(default_factory=list)


class CollectionNode(NodeBase):
    name: str
    description: str = ""
    is_public: bool = False
    slug: str | None = None
    cover_url: str | None = None
    categories: list[CategoryNode] = Field(default_factory=list)


# The tree endpoint returns a collection with every level expanded.
CollectionTree = CollectionNode

AnyNode = Union[CollectionNode, CategoryNode, SubcategoryNode, ItemNode]


class CollectionList(BaseModel):
    items: list[CollectionNode] = Field(default_factory=list)
    total: int


class CategoryList(BaseModel):
    items: list[CategoryNode] = Field(default_factory=list)
    total: int


class SubcategoryList(BaseModel):
    items: list[SubcategoryNode] = Field(default_factory=list)
    total: int


class ItemList(BaseModel):
    items: list[ItemNode] = Field(default_factory=list)
    total: int



class QuickAddResponse(BaseModel):
    item: ItemNode
    category_id: str
    subcategory_id: str
    created_category: bool = False
    created_subcategory: bool = False


# Reorder wire contract.


class ReorderEntryIn(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    order_index: int


class ReorderRequest(BaseModel):
    entries: list[ReorderEntryIn]


class ReorderResponse(BaseModel):
    success: bool
