# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    __tablename__ = "users"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, min_length=1, max_length=64)
    # Opaque bearer credential, provisioned out of band.
    api_token: Optional[str] = Field(
        default=None, sa_column=Column(Text, nullable=True, unique=True)
    )

    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)


class OrderedRowBase(SQLModel):
    # owner_id is stored on every level so ownership checks never walk the parent chain.
    owner_id: int = Field(index=True, foreign_key="users.id")

    # Position among siblings; only the reorder service rewrites it.
    order_index: int = Field(default=0, index=True)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)


class BookmarkCollection(OrderedRowBase, table=True):
    __tablename__ = "bookmark_collections"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("owner_id", "slug", name="uq_bookmark_collections_owner_id_slug"),
    )

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    is_public: bool = Field(default=False, index=True)
    slug: Optional[str] = Field(default=None, index=True, max_length=100)
    cover_url: Optional[str] = Field(default=None, max_length=2048)


class BookmarkCategory(OrderedRowBase, table=True):
    __tablename__ = "bookmark_categories"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    collection_id: str = Field(index=True, foreign_key="bookmark_collections.id", max_length=36)
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class BookmarkSubcategory(OrderedRowBase, table=True):
    __tablename__ = "bookmark_subcategories"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    category_id: str = Field(index=True, foreign_key="bookmark_categories.id", max_length=36)
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class BookmarkItem(OrderedRowBase, table=True):
    __tablename__ = "bookmark_items"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    subcategory_id: str = Field(
        index=True, foreign_key="bookmark_subcategories.id", max_length=36
    )
    title: str = Field(min_length=1, max_length=500)
    url: str = Field(sa_column=Column(Text, nullable=False))
    description: str = Field(default="", max_length=2000)
    icon_url: Optional[str] = Field(default=None, max_length=2048)
