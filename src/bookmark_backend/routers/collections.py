from __future__ import annotations

from typing import Annotated, cast

from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import get_session
from bookmark_backend.deps import get_current_user, get_optional_user, require_user_id
from bookmark_backend.models import User
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.schemas_bookmarks import (
    CollectionCreateRequest,
    CollectionList,
    CollectionNode,
    CollectionPatchRequest,
    CollectionTree,
)
from bookmark_backend.services import collections_service, nodes_service

router = APIRouter(tags=["collections"])


def _to_schema(row: object) -> CollectionNode:
    return cast(CollectionNode, nodes_service.to_node(EntityKind.COLLECTION, row))


@router.get("/collections", response_model=CollectionList)
async def list_my_collections(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CollectionList:
    owner_id = require_user_id(user)
    rows = await collections_service.list_collections(session, owner_id=owner_id)
    return CollectionList(items=[_to_schema(r) for r in rows], total=len(rows))


@router.post(
    "/collections",
    response_model=CollectionNode,
    status_code=status.HTTP_201_CREATED,
)
async def create_collection(
    payload: CollectionCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CollectionNode:
    owner_id = require_user_id(user)
    row = await collections_service.create_collection(session, owner_id=owner_id, payload=payload)
    return _to_schema(row)


# Static paths must be registered before /collections/{collection_id}.
@router.get("/collections/by-slug", response_model=CollectionTree)
async def get_collection_by_slug(
    username: Annotated[str, Query(min_length=1, max_length=64)],
    slug: Annotated[str, Query(min_length=1, max_length=100)],
    user: User | None = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
) -> CollectionTree:
    requester_id = int(user.id) if user is not None and user.id is not None else None
    row = await collections_service.get_collection_by_slug(
        session, username=username, slug=slug, requester_id=requester_id
    )
    return await collections_service.load_tree(session, row)


@router.get("/collections/{collection_id}/tree", response_model=CollectionTree)
async def get_collection_tree(
    collection_id: str,
    user: User | None = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
) -> CollectionTree:
    requester_id = int(user.id) if user is not None and user.id is not None else None
    row = await collections_service.get_readable_collection(
        session, collection_id=collection_id, requester_id=requester_id
    )
    return await collections_service.load_tree(session, row)


@router.patch("/collections/{collection_id}", response_model=CollectionNode)
async def patch_collection(
    collection_id: str,
    payload: CollectionPatchRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CollectionNode:
    owner_id = require_user_id(user)
    row = await collections_service.patch_collection(
        session, owner_id=owner_id, collection_id=collection_id, payload=payload
    )
    return _to_schema(row)


@router.delete("/collections/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(
    collection_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Response:
    owner_id = require_user_id(user)
    await collections_service.delete_collection(
        session, owner_id=owner_id, collection_id=collection_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
