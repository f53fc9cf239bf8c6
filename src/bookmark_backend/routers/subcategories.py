from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Depends, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import get_session
from bookmark_backend.deps import get_current_user, require_user_id
from bookmark_backend.models import User
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    SubcategoryCreateRequest,
    SubcategoryList,
    SubcategoryNode,
    SubcategoryPatchRequest,
)
from bookmark_backend.services import nodes_service

router = APIRouter(tags=["subcategories"])

_KIND = EntityKind.SUBCATEGORY


def _to_schema(row: object) -> SubcategoryNode:
    return cast(SubcategoryNode, nodes_service.to_node(_KIND, row))


@router.get("/categories/{category_id}/subcategories", response_model=SubcategoryList)
async def list_subcategories(
    category_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> SubcategoryList:
    owner_id = require_user_id(user)
    _ = await nodes_service.get_owned(session, EntityKind.CATEGORY, category_id, owner_id)
    rows = await nodes_service.list_children(session, kind=_KIND, parent_id=category_id)
    return SubcategoryList(items=[_to_schema(r) for r in rows], total=len(rows))


@router.post(
    "/subcategories",
    response_model=SubcategoryNode,
    status_code=status.HTTP_201_CREATED,
)
async def create_subcategory(
    payload: SubcategoryCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> SubcategoryNode:
    owner_id = require_user_id(user)
    row = await nodes_service.create_node(
        session,
        kind=_KIND,
        owner_id=owner_id,
        parent_id=payload.category_id,
        payload=payload,
    )
    return _to_schema(row)


@router.patch("/subcategories/{subcategory_id}", response_model=SubcategoryNode)
async def patch_subcategory(
    subcategory_id: str,
    payload: SubcategoryPatchRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> SubcategoryNode:
    owner_id = require_user_id(user)
    row = await nodes_service.patch_node(
        session, kind=_KIND, owner_id=owner_id, entity_id=subcategory_id, payload=payload
    )
    return _to_schema(row)


@router.delete("/subcategories/{subcategory_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subcategory(
    subcategory_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Response:
    owner_id = require_user_id(user)
    await nodes_service.delete_node(
        session, kind=_KIND, owner_id=owner_id, entity_id=subcategory_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
