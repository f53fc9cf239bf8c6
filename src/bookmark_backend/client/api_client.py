"""HTTP client for the bookmark API.

Non-2xx responses are raised as ``BookmarkApiError`` carrying the fields of
the server's ErrorResponse. Transport errors (``httpx.HTTPError``) propagate
unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, cast
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bookmark_backend.config import settings
from bookmark_backend.errors import BookmarkError, ValidationError
from bookmark_backend.ordering.entities import EntityKind, kind_spec
from bookmark_backend.ordering.reorder_service import ReorderEntry
from bookmark_backend.schemas_bookmarks import (
    AnyNode,
    CategoryNode,
    CollectionList,
    CollectionNode,
    CollectionTree,
    ItemNode,
    NodeBase,
    QuickAddRequest,
    QuickAddResponse,
    ReorderEntryIn,
    ReorderRequest,
    SubcategoryNode,
    parse_input,
)

logger = logging.getLogger(__name__)

_NODE_TYPES: dict[EntityKind, type[NodeBase]] = {
    EntityKind.COLLECTION: CollectionNode,
    EntityKind.CATEGORY: CategoryNode,
    EntityKind.SUBCATEGORY: SubcategoryNode,
    EntityKind.ITEM: ItemNode,
}

_RESOURCE_PATHS: dict[EntityKind, str] = {
    EntityKind.COLLECTION: "/collections",
    EntityKind.CATEGORY: "/categories",
    EntityKind.SUBCATEGORY: "/subcategories",
    EntityKind.ITEM: "/items",
}


class BookmarkApiError(BookmarkError):
    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        details: object | None = None,
        *,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        self.error = error
        self.request_id = request_id

    def __str__(self) -> str:
        return f"{self.status_code} {self.error}: {self.message}"


def _reorder_path(kind: EntityKind, parent_id: str | None) -> str:
    if kind == EntityKind.COLLECTION:
        return "/collections/reorder"
    if not parent_id:
        raise ValidationError(f"reordering {kind.value} requires a parent id")
    parent_kind = kind_spec(kind).parent_kind
    if parent_kind is None:
        raise ValidationError(f"{kind.value} has no parent scope")
    parent = quote(parent_id, safe="")
    return f"{_RESOURCE_PATHS[parent_kind]}/{parent}{_RESOURCE_PATHS[kind]}/reorder"


class BookmarkApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if base_url is None:
            base_url = f"{settings.client_base_url.rstrip('/')}{settings.api_prefix}"
        self._base_url = base_url.rstrip("/")
        self._token = token.strip() if token else None
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.client_timeout_seconds
        )
        # Injected clients are owned by the caller and never closed here.
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        if self._client is not None:
            return await self._client.request(
                method, url, headers=self._headers(), json=json, params=params
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(
                method, url, headers=self._headers(), json=json, params=params
            )

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if 200 <= resp.status_code < 300:
            return
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            raise BookmarkApiError(
                resp.status_code,
                data["error"],
                str(data.get("message") or ""),
                data.get("details"),
                request_id=data.get("request_id"),
            )
        raise BookmarkApiError(resp.status_code, f"http_{resp.status_code}", resp.text)

    async def list_collections(self) -> list[CollectionNode]:
        resp = await self._send("GET", "/collections")
        self._raise_for_error(resp)
        return CollectionList.model_validate(resp.json()).items

    async def get_tree(self, collection_id: str) -> CollectionTree:
        resp = await self._send("GET", f"/collections/{quote(collection_id, safe='')}/tree")
        self._raise_for_error(resp)
        return CollectionTree.model_validate(resp.json())

    async def get_tree_by_slug(self, username: str, slug: str) -> CollectionTree:
        resp = await self._send(
            "GET", "/collections/by-slug", params={"username": username, "slug": slug}
        )
        self._raise_for_error(resp)
        return CollectionTree.model_validate(resp.json())

    async def create(
        self,
        kind: EntityKind,
        parent_id: str | None,
        fields: Mapping[str, Any] | BaseModel,
        *,
        order_index: int | None = None,
    ) -> AnyNode:
        """Create one entity; returns the server-confirmed node."""
        body: dict[str, Any] = parse_input(kind, fields).model_dump()
        parent_field = kind_spec(kind).parent_field
        if parent_field is not None:
            if not parent_id:
                raise ValidationError(f"creating a {kind.value} requires a parent id")
            body[parent_field] = parent_id
        if order_index is not None:
            body["order_index"] = order_index

        resp = await self._send("POST", _RESOURCE_PATHS[kind], json=body)
        self._raise_for_error(resp)
        return _NODE_TYPES[kind].model_validate(resp.json())  # type: ignore[return-value]

    async def create_collection(self, fields: Mapping[str, Any] | BaseModel) -> CollectionNode:
        return cast(CollectionNode, await self.create(EntityKind.COLLECTION, None, fields))

    async def create_category(
        self, collection_id: str, fields: Mapping[str, Any] | BaseModel
    ) -> CategoryNode:
        return cast(CategoryNode, await self.create(EntityKind.CATEGORY, collection_id, fields))

    async def create_subcategory(
        self, category_id: str, fields: Mapping[str, Any] | BaseModel
    ) -> SubcategoryNode:
        return cast(SubcategoryNode, await self.create(EntityKind.SUBCATEGORY, category_id, fields))

    async def create_item(
        self, subcategory_id: str, fields: Mapping[str, Any] | BaseModel
    ) -> ItemNode:
        return cast(ItemNode, await self.create(EntityKind.ITEM, subcategory_id, fields))

    async def quick_add(self, payload: Mapping[str, Any] | QuickAddRequest) -> QuickAddResponse:
        """Create an item, plus a new category or subcategory when named."""
        if isinstance(payload, QuickAddRequest):
            req = payload
        else:
            try:
                req = QuickAddRequest.model_validate(dict(payload))
            except PydanticValidationError as exc:
                raise ValidationError(
                    "invalid quick-add fields",
                    details=exc.errors(include_url=False, include_context=False),
                ) from exc
        resp = await self._send("POST", "/items/quick-add", json=req.model_dump(exclude_none=True))
        self._raise_for_error(resp)
        return QuickAddResponse.model_validate(resp.json())

    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        resp = await self._send("DELETE", f"{_RESOURCE_PATHS[kind]}/{quote(entity_id, safe='')}")
        self._raise_for_error(resp)

    async def reorder(
        self,
        kind: EntityKind,
        parent_id: str | None,
        entries: Sequence[ReorderEntry],
    ) -> bool:
        """Submit one reorder batch.

        Returns False when the server reports a persistence fault (the stored
        order is then indeterminate and the tree should be re-fetched). Every
        other error response raises ``BookmarkApiError``.
        """
        body = ReorderRequest(
            entries=[ReorderEntryIn(id=e.id, order_index=e.order_index) for e in entries]
        )
        resp = await self._send("PUT", _reorder_path(kind, parent_id), json=body.model_dump())
        try:
            self._raise_for_error(resp)
        except BookmarkApiError as exc:
            if exc.error == "persistence_fault":
                logger.warning(
                    "reorder persistence fault kind=%s parent=%s request_id=%s",
                    kind.value,
                    parent_id,
                    exc.request_id,
                )
                return False
            raise
        return bool(resp.json().get("success"))
