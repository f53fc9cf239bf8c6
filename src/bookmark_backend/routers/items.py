from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Depends, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import get_session
from bookmark_backend.deps import get_current_user, require_user_id
from bookmark_backend.models import User
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    ItemCreateRequest,
    ItemList,
    ItemNode,
    ItemPatchRequest,
    QuickAddRequest,
    QuickAddResponse,
)
from bookmark_backend.services import nodes_service, quick_add_service

router = APIRouter(tags=["items"])

_KIND = EntityKind.ITEM


def _to_schema(row: object) -> ItemNode:
    return cast(ItemNode, nodes_service.to_node(_KIND, row))


@router.get("/subcategories/{subcategory_id}/items", response_model=ItemList)
async def list_items(
    subcategory_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ItemList:
    owner_id = require_user_id(user)
    _ = await nodes_service.get_owned(session, EntityKind.SUBCATEGORY, subcategory_id, owner_id)
    rows = await nodes_service.list_children(session, kind=_KIND, parent_id=subcategory_id)
    return ItemList(items=[_to_schema(r) for r in rows], total=len(rows))


@router.post("/items", response_model=ItemNode, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: ItemCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ItemNode:
    owner_id = require_user_id(user)
    row = await nodes_service.create_node(
        session,
        kind=_KIND,
        owner_id=owner_id,
        parent_id=payload.subcategory_id,
        payload=payload,
    )
    return _to_schema(row)


@router.post(
    "/items/quick-add", response_model=QuickAddResponse, status_code=status.HTTP_201_CREATED
)
async def quick_add_item(
    payload: QuickAddRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> QuickAddResponse:
    owner_id = require_user_id(user)
    result = await quick_add_service.quick_add(session, owner_id=owner_id, payload=payload)
    return QuickAddResponse(
        item=_to_schema(result.item),
        category_id=result.category_id,
        subcategory_id=result.subcategory_id,
        created_category=result.created_category,
        created_subcategory=result.created_subcategory,
    )


@router.patch("/items/{item_id}", response_model=ItemNode)
async def patch_item(
    item_id: str,
    payload: ItemPatchRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ItemNode:
    owner_id = require_user_id(user)
    row = await nodes_service.patch_node(
        session, kind=_KIND, owner_id=owner_id, entity_id=item_id, payload=payload
    )
    return _to_schema(row)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Response:
    owner_id = require_user_id(user)
    await nodes_service.delete_node(session, kind=_KIND, owner_id=owner_id, entity_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
