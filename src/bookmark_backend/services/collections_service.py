from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, cast

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import run_in_transaction
from bookmark_backend.errors import ConflictError, ForbiddenError, NotFoundError
from bookmark_backend.models import (
    BookmarkCategory,
    BookmarkCollection,
    BookmarkItem,
    BookmarkSubcategory,
    User,
    utc_now,
)
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    CategoryNode,
    CollectionCreateRequest,
    CollectionPatchRequest,
    CollectionTree,
    ItemNode,
    SubcategoryNode,
)
from bookmark_backend.services import nodes_service

logger = logging.getLogger(__name__)


def _ordered(model: Any) -> tuple[Any, Any]:
    return (model.order_index.asc(), model.created_at.asc())


async def create_collection(
    session: AsyncSession,
    *,
    owner_id: int,
    payload: CollectionCreateRequest,
) -> BookmarkCollection:
    async def _apply() -> BookmarkCollection:
        now = utc_now()
        row = BookmarkCollection(
            id=nodes_service.new_id(),
            owner_id=owner_id,
            name=payload.name,
            description=payload.description,
            is_public=payload.is_public,
            slug=payload.slug,
            cover_url=payload.cover_url,
            order_index=payload.order_index if payload.order_index is not None else 0,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        return row

    try:
        row = await run_in_transaction(session, _apply)
    except IntegrityError:
        raise ConflictError("slug already in use", details={"slug": payload.slug})
    logger.info("collection created id=%s owner=%s", row.id, owner_id)
    return row


async def patch_collection(
    session: AsyncSession,
    *,
    owner_id: int,
    collection_id: str,
    payload: CollectionPatchRequest,
) -> BookmarkCollection:
    try:
        row = await nodes_service.patch_node(
            session,
            kind=EntityKind.COLLECTION,
            owner_id=owner_id,
            entity_id=collection_id,
            payload=payload,
        )
    except IntegrityError:
        raise ConflictError("slug already in use", details={"slug": payload.slug})
    return cast(BookmarkCollection, row)


async def delete_collection(session: AsyncSession, *, owner_id: int, collection_id: str) -> int:
    return await nodes_service.delete_node(
        session, kind=EntityKind.COLLECTION, owner_id=owner_id, entity_id=collection_id
    )


async def list_collections(session: AsyncSession, *, owner_id: int) -> list[BookmarkCollection]:
    stmt = (
        select(BookmarkCollection)
        .where(BookmarkCollection.owner_id == owner_id)
        .order_by(*_ordered(BookmarkCollection))
    )
    return list((await session.exec(stmt)).all())


def _assert_readable(row: BookmarkCollection, requester_id: int | None) -> None:
    if row.is_public:
        return
    if requester_id is None or row.owner_id != requester_id:
        raise ForbiddenError("collection is private", details={"id": row.id})


async def get_readable_collection(
    session: AsyncSession, *, collection_id: str, requester_id: int | None
) -> BookmarkCollection:
    row = await session.get(BookmarkCollection, collection_id)
    if row is None:
        raise NotFoundError("collection not found", details={"id": collection_id})
    _assert_readable(row, requester_id)
    return row


async def get_collection_by_slug(
    session: AsyncSession, *, username: str, slug: str, requester_id: int | None
) -> BookmarkCollection:
    stmt = (
        select(BookmarkCollection)
        .join(User, cast(Any, User.id) == BookmarkCollection.owner_id)
        .where(User.username == username)
        .where(BookmarkCollection.slug == slug)
    )
    row = (await session.exec(stmt)).first()
    if row is None:
        raise NotFoundError("collection not found", details={"username": username, "slug": slug})
    _assert_readable(row, requester_id)
    return row


async def load_tree(session: AsyncSession, collection: BookmarkCollection) -> CollectionTree:
    """Expand a collection into its full tree, each level in canonical order."""
    categories = list(
        (
            await session.exec(
                select(BookmarkCategory)
                .where(BookmarkCategory.collection_id == collection.id)
                .order_by(*_ordered(BookmarkCategory))
            )
        ).all()
    )
    category_ids = [c.id for c in categories]

    subcategories: list[BookmarkSubcategory] = []
    if category_ids:
        subcategories = list(
            (
                await session.exec(
                    select(BookmarkSubcategory)
                    .where(cast(Any, BookmarkSubcategory.category_id).in_(category_ids))
                    .order_by(*_ordered(BookmarkSubcategory))
                )
            ).all()
        )
    subcategory_ids = [s.id for s in subcategories]

    items: list[BookmarkItem] = []
    if subcategory_ids:
        items = list(
            (
                await session.exec(
                    select(BookmarkItem)
                    .where(cast(Any, BookmarkItem.subcategory_id).in_(subcategory_ids))
                    .order_by(*_ordered(BookmarkItem))
                )
            ).all()
        )

    items_by_parent: dict[str, list[ItemNode]] = defaultdict(list)
    for it in items:
        items_by_parent[it.subcategory_id].append(
            cast(ItemNode, nodes_service.to_node(EntityKind.ITEM, it))
        )

    subs_by_parent: dict[str, list[SubcategoryNode]] = defaultdict(list)
    for sub in subcategories:
        node = cast(SubcategoryNode, nodes_service.to_node(EntityKind.SUBCATEGORY, sub))
        node.items = items_by_parent.get(sub.id, [])
        subs_by_parent[sub.category_id].append(node)

    category_nodes: list[CategoryNode] = []
    for cat in categories:
        node = cast(CategoryNode, nodes_service.to_node(EntityKind.CATEGORY, cat))
        node.subcategories = subs_by_parent.get(cat.id, [])
        category_nodes.append(node)

    tree = cast(CollectionTree, nodes_service.to_node(EntityKind.COLLECTION, collection))
    tree.categories = category_nodes
    return tree
