"""三个嵌套层级（category / subcategory / item）的创建、修改与删除。

各层级只在表、父级列和表单字段上不同，因此统一由
``bookmark_backend.ordering.entities`` 中的 kind 注册表驱动。
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, cast

from pydantic import BaseModel
from sqlalchemy import delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import run_in_transaction
from bookmark_backend.errors import ForbiddenError, NotFoundError, ValidationError
from bookmark_backend.models import utc_now
from bookmark_backend.ordering.entities import EntityKind, kind_spec, parent_id_of
from bookmark_backend.schemas_bookmarks import (
    CategoryNode,
    CollectionNode,
    ItemNode,
    NodeBase,
    SubcategoryNode,
)

logger = logging.getLogger(__name__)

_NODE_TYPES: dict[EntityKind, type[NodeBase]] = {
    EntityKind.COLLECTION: CollectionNode,
    EntityKind.CATEGORY: CategoryNode,
    EntityKind.SUBCATEGORY: SubcategoryNode,
    EntityKind.ITEM: ItemNode,
}

# 从 create/patch 请求体原样拷贝到行上的表单字段
_FORM_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.COLLECTION: ("name", "description", "is_public", "slug", "cover_url"),
    EntityKind.CATEGORY: ("name", "description"),
    EntityKind.SUBCATEGORY: ("name", "description"),
    EntityKind.ITEM: ("title", "url", "description", "icon_url"),
}

# patch 中不允许显式置为 null 的字段
_REQUIRED_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.COLLECTION: ("name", "description", "is_public"),
    EntityKind.CATEGORY: ("name", "description"),
    EntityKind.SUBCATEGORY: ("name", "description"),
    EntityKind.ITEM: ("title", "url", "description"),
}


def new_id() -> str:
    return str(uuid.uuid4())


def to_node(kind: EntityKind, row: Any) -> NodeBase:
    node_type = _NODE_TYPES[kind]
    data: dict[str, Any] = {f: getattr(row, f) for f in _FORM_FIELDS[kind]}
    return node_type(
        id=row.id,
        parent_id=parent_id_of(kind, row),
        owner_id=row.owner_id,
        order_index=row.order_index,
        created_at=row.created_at,
        updated_at=row.updated_at,
        **data,
    )


async def get_owned(session: AsyncSession, kind: EntityKind, entity_id: str, owner_id: int) -> Any:
    row = cast(Any, await session.get(kind_spec(kind).model, entity_id))
    if row is None:
        raise NotFoundError(f"{kind.value} not found", details={"id": entity_id})
    if row.owner_id != owner_id:
        raise ForbiddenError(f"not the owner of this {kind.value}", details={"id": entity_id})
    return row


def new_row(
    kind: EntityKind,
    *,
    owner_id: int,
    parent_id: str,
    fields: BaseModel,
    order_index: int | None = None,
) -> Any:
    """Build an unsaved row; new rows go to the front (order_index 0) by default."""
    spec = kind_spec(kind)
    now = utc_now()
    values = {f: getattr(fields, f) for f in _FORM_FIELDS[kind] if hasattr(fields, f)}
    return spec.model(
        id=new_id(),
        owner_id=owner_id,
        order_index=order_index if order_index is not None else 0,
        created_at=now,
        updated_at=now,
        **{cast(str, spec.parent_field): parent_id},
        **values,
    )


async def create_node(
    session: AsyncSession,
    *,
    kind: EntityKind,
    owner_id: int,
    parent_id: str,
    payload: BaseModel,
) -> Any:
    spec = kind_spec(kind)
    if spec.parent_kind is None or spec.parent_field is None:
        raise ValidationError(f"{kind.value} has no parent level")

    async def _apply() -> Any:
        # 在他人的父节点下创建：返回 403，而不是当作不存在
        await get_owned(session, spec.parent_kind, parent_id, owner_id)

        order_index = cast(int | None, getattr(payload, "order_index", None))
        row = new_row(
            kind,
            owner_id=owner_id,
            parent_id=parent_id,
            fields=payload,
            order_index=order_index,
        )
        session.add(row)
        return row

    row = await run_in_transaction(session, _apply)
    logger.info("%s created id=%s parent=%s owner=%s", kind.value, row.id, parent_id, owner_id)
    return row


def apply_patch(kind: EntityKind, row: Any, payload: BaseModel) -> None:
    changed = set(payload.model_fields_set)
    for f in _FORM_FIELDS[kind]:
        if f not in changed:
            continue
        value = getattr(payload, f)
        if value is None and f in _REQUIRED_FIELDS[kind]:
            raise ValidationError(f"{f} cannot be null")
        if f in ("name", "title", "url") and isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValidationError(f"{f} cannot be empty")
        setattr(row, f, value)
    row.updated_at = utc_now()


async def patch_node(
    session: AsyncSession,
    *,
    kind: EntityKind,
    owner_id: int,
    entity_id: str,
    payload: BaseModel,
) -> Any:
    async def _apply() -> Any:
        row = await get_owned(session, kind, entity_id, owner_id)
        apply_patch(kind, row, payload)
        session.add(row)
        return row

    return await run_in_transaction(session, _apply)


async def delete_subtree(session: AsyncSession, kind: EntityKind, ids: list[str]) -> int:
    """Delete rows and every descendant; returns the number of rows removed."""
    if not ids:
        return 0

    spec = kind_spec(kind)
    removed = 0
    if spec.child_kind is not None:
        child_spec = kind_spec(spec.child_kind)
        child_model = cast(Any, child_spec.model)
        parent_col = getattr(child_model, cast(str, child_spec.parent_field))
        stmt = select(child_model.id).where(parent_col.in_(ids))
        child_ids = list((await session.exec(stmt)).all())
        removed += await delete_subtree(session, spec.child_kind, child_ids)

    model = cast(Any, spec.model)
    _ = await session.execute(delete(model).where(model.id.in_(ids)))
    return removed + len(ids)


async def delete_node(
    session: AsyncSession,
    *,
    kind: EntityKind,
    owner_id: int,
    entity_id: str,
) -> int:
    async def _apply() -> int:
        _ = await get_owned(session, kind, entity_id, owner_id)
        return await delete_subtree(session, kind, [entity_id])

    removed = await run_in_transaction(session, _apply)
    logger.info("%s deleted id=%s rows=%d owner=%s", kind.value, entity_id, removed, owner_id)
    return removed


async def list_children(
    session: AsyncSession,
    *,
    kind: EntityKind,
    parent_id: str,
) -> list[Any]:
    spec = kind_spec(kind)
    model = cast(Any, spec.model)
    stmt = (
        select(model)
        .where(getattr(model, cast(str, spec.parent_field)) == parent_id)
        .order_by(model.order_index.asc(), model.created_at.asc())
    )
    return list((await session.exec(stmt)).all())
