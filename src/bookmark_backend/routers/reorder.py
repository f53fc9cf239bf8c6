"""Batch reorder endpoints, one per sibling scope.

Wire contract: body ``{"entries": [{"id", "order_index"}]}``, response
``{"success": true}``. Malformed bodies are 400 (not FastAPI's 422), a parent
mismatch is reported as 403 like any other authorization failure, and a
persistence fault is 500 with ``details.success = false``.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError as PydanticValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.config import settings
from bookmark_backend.db import get_session
from bookmark_backend.deps import get_current_user, require_user_id
from bookmark_backend.errors import (
    ForbiddenError,
    NotFoundError,
    PersistenceFault,
    ValidationError,
)
from bookmark_backend.models import User
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.ordering.reorder_service import ReorderEntry, ReorderService
from bookmark_backend.ordering.store import SqlOrderingStore
from bookmark_backend.schemas_bookmarks import ReorderRequest, ReorderResponse

router = APIRouter(tags=["reorder"])


class _ScopeMismatch(ForbiddenError):
    # Keeps the not_found code in the body while answering 403.
    error = "not_found"


def _parse_entries(body: Any) -> list[ReorderEntry]:
    try:
        req = ReorderRequest.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(
            "malformed reorder request",
            details=exc.errors(include_url=False, include_context=False),
        )
    if not req.entries:
        raise ValidationError("entries must not be empty")
    if len(req.entries) > settings.reorder_max_entries:
        raise ValidationError(
            "too many entries",
            details={"max_entries": settings.reorder_max_entries},
        )
    return [ReorderEntry(id=e.id, order_index=e.order_index) for e in req.entries]


async def _reorder(
    session: AsyncSession,
    *,
    kind: EntityKind,
    parent_scope_id: str | None,
    body: Any,
    user: User,
) -> ReorderResponse:
    requester_id = require_user_id(user)
    entries = _parse_entries(body)

    owner_scope = requester_id if kind == EntityKind.COLLECTION else None
    service = ReorderService(SqlOrderingStore(session, kind, owner_id=owner_scope))
    try:
        result = await service.reorder(parent_scope_id, entries, requester_id)
    except NotFoundError as exc:
        raise _ScopeMismatch(exc.message, details=exc.details) from exc

    if not result.success:
        raise PersistenceFault(
            "reorder failed; stored order is indeterminate, re-fetch before editing",
            details={"success": False, "failed_ids": result.failed_ids},
        )
    return ReorderResponse(success=True)


@router.put("/collections/reorder", response_model=ReorderResponse)
async def reorder_collections(
    body: Annotated[Any, Body()] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReorderResponse:
    return await _reorder(
        session, kind=EntityKind.COLLECTION, parent_scope_id=None, body=body, user=user
    )


@router.put("/collections/{collection_id}/categories/reorder", response_model=ReorderResponse)
async def reorder_categories(
    collection_id: str,
    body: Annotated[Any, Body()] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReorderResponse:
    return await _reorder(
        session,
        kind=EntityKind.CATEGORY,
        parent_scope_id=collection_id,
        body=body,
        user=user,
    )


@router.put("/categories/{category_id}/subcategories/reorder", response_model=ReorderResponse)
async def reorder_subcategories(
    category_id: str,
    body: Annotated[Any, Body()] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReorderResponse:
    return await _reorder(
        session,
        kind=EntityKind.SUBCATEGORY,
        parent_scope_id=category_id,
        body=body,
        user=user,
    )


@router.put("/subcategories/{subcategory_id}/items/reorder", response_model=ReorderResponse)
async def reorder_items(
    subcategory_id: str,
    body: Annotated[Any, Body()] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReorderResponse:
    return await _reorder(
        session,
        kind=EntityKind.ITEM,
        parent_scope_id=subcategory_id,
        body=body,
        user=user,
    )
