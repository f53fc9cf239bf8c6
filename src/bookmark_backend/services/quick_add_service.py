"""快速添加书签（浏览器 bookmarklet 使用）。

书签本身，以及可选的新 category / subcategory，在对 collection 做一次归属校验后
于同一个事务中写入。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import run_in_transaction
from bookmark_backend.errors import NotFoundError
from bookmark_backend.ordering.entities import EntityKind, kind_spec, parent_id_of
from bookmark_backend.schemas_bookmarks import CategoryInput, QuickAddRequest, SubcategoryInput
from bookmark_backend.services import nodes_service

logger = logging.getLogger(__name__)


@dataclass
class QuickAddResult:
    item: Any
    category_id: str
    subcategory_id: str
    created_category: bool
    created_subcategory: bool


async def _existing_child(
    session: AsyncSession, kind: EntityKind, entity_id: str, parent_id: str
) -> Any:
    row = cast(Any, await session.get(kind_spec(kind).model, entity_id))
    if row is None or parent_id_of(kind, row) != parent_id:
        raise NotFoundError(
            f"{kind.value} not found in this scope",
            details={"id": entity_id, "parent_id": parent_id},
        )
    return row


async def quick_add(
    session: AsyncSession,
    *,
    owner_id: int,
    payload: QuickAddRequest,
) -> QuickAddResult:
    async def _apply() -> QuickAddResult:
        # 下级节点都经由该 collection 定位，只需校验这一次归属
        _ = await nodes_service.get_owned(
            session, EntityKind.COLLECTION, payload.collection_id, owner_id
        )

        if payload.new_category_name is not None:
            category = nodes_service.new_row(
                EntityKind.CATEGORY,
                owner_id=owner_id,
                parent_id=payload.collection_id,
                fields=CategoryInput(name=payload.new_category_name),
            )
            session.add(category)
            await session.flush()
        else:
            category = await _existing_child(
                session, EntityKind.CATEGORY, str(payload.category_id), payload.collection_id
            )

        if payload.new_subcategory_name is not None:
            subcategory = nodes_service.new_row(
                EntityKind.SUBCATEGORY,
                owner_id=owner_id,
                parent_id=category.id,
                fields=SubcategoryInput(name=payload.new_subcategory_name),
            )
            session.add(subcategory)
            await session.flush()
        else:
            subcategory = await _existing_child(
                session, EntityKind.SUBCATEGORY, str(payload.subcategory_id), category.id
            )

        item = nodes_service.new_row(
            EntityKind.ITEM,
            owner_id=owner_id,
            parent_id=subcategory.id,
            fields=payload,
        )
        session.add(item)
        return QuickAddResult(
            item=item,
            category_id=category.id,
            subcategory_id=subcategory.id,
            created_category=payload.new_category_name is not None,
            created_subcategory=payload.new_subcategory_name is not None,
        )

    result = await run_in_transaction(session, _apply)
    logger.info(
        "quick-add item=%s subcategory=%s new_category=%s new_subcategory=%s owner=%s",
        result.item.id,
        result.subcategory_id,
        result.created_category,
        result.created_subcategory,
        owner_id,
    )
    return result
