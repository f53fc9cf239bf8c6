from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Depends, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import get_session
from bookmark_backend.deps import get_current_user, require_user_id
from bookmark_backend.models import User
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    CategoryCreateRequest,
    CategoryList,
    CategoryNode,
    CategoryPatchRequest,
)
from bookmark_backend.services import nodes_service

router = APIRouter(tags=["categories"])

_KIND = EntityKind.CATEGORY


def _to_schema(row: object) -> CategoryNode:
    return cast(CategoryNode, nodes_service.to_node(_KIND, row))


@router.get("/collections/{collection_id}/categories", response_model=CategoryList)
async def list_categories(
    collection_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CategoryList:
    owner_id = require_user_id(user)
    _ = await nodes_service.get_owned(session, EntityKind.COLLECTION, collection_id, owner_id)
    rows = await nodes_service.list_children(session, kind=_KIND, parent_id=collection_id)
    return CategoryList(items=[_to_schema(r) for r in rows], total=len(rows))


@router.post("/categories", response_model=CategoryNode, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CategoryNode:
    owner_id = require_user_id(user)
    row = await nodes_service.create_node(
        session,
        kind=_KIND,
        owner_id=owner_id,
        parent_id=payload.collection_id,
        payload=payload,
    )
    return _to_schema(row)


@router.patch("/categories/{category_id}", response_model=CategoryNode)
async def patch_category(
    category_id: str,
    payload: CategoryPatchRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CategoryNode:
    owner_id = require_user_id(user)
    row = await nodes_service.patch_node(
        session, kind=_KIND, owner_id=owner_id, entity_id=category_id, payload=payload
    )
    return _to_schema(row)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Response:
    owner_id = require_user_id(user)
    await nodes_service.delete_node(session, kind=_KIND, owner_id=owner_id, entity_id=category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
