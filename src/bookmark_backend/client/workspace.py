"""Client-side state for one collection tree.

Glues the reconciler and drag controllers to the HTTP client: creates show up
immediately as placeholders, reorders are mirrored once the server confirms,
and every new tree is published to the ``StateCache`` under
``collection:<id>``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from bookmark_backend.client.api_client import BookmarkApiClient
from bookmark_backend.client.cache import StateCache, collection_key
from bookmark_backend.client.identity import IdentityProvider
from bookmark_backend.client.reconciler import (
    apply_order,
    children_of,
    create_placeholder,
    discard,
    find_placeholders,
    reconcile,
)
from bookmark_backend.client.sortable import DragController, SaveGate, SaveOutcome
from bookmark_backend.errors import UnauthorizedError
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.ordering.reorder_service import ReorderEntry
from bookmark_backend.schemas_bookmarks import AnyNode, CollectionTree, parse_input

logger = logging.getLogger(__name__)


class CollectionWorkspace:
    def __init__(
        self,
        api: BookmarkApiClient,
        identity: IdentityProvider,
        tree: CollectionTree,
        *,
        cache: StateCache | None = None,
        gate: SaveGate | None = None,
    ) -> None:
        self._api = api
        self._identity = identity
        self._tree = tree
        self.cache = cache if cache is not None else StateCache()
        self._gate = gate if gate is not None else SaveGate()
        # Set when a reorder came back with success=false; cleared by refresh().
        self.needs_refresh = False
        self._publish()

    @classmethod
    async def open(
        cls,
        api: BookmarkApiClient,
        identity: IdentityProvider,
        collection_id: str,
        **kwargs: Any,
    ) -> CollectionWorkspace:
        tree = await api.get_tree(collection_id)
        return cls(api, identity, tree, **kwargs)

    @property
    def tree(self) -> CollectionTree:
        return self._tree

    @property
    def cache_key(self) -> str:
        return collection_key(self._tree.id)

    def pending_placeholders(self) -> list[str]:
        return find_placeholders(self._tree)

    def _publish(self) -> None:
        self.cache.set(self.cache_key, self._tree)

    async def create(
        self,
        kind: EntityKind,
        parent_id: str,
        fields: Mapping[str, Any] | BaseModel,
    ) -> AnyNode:
        """Show a placeholder at once, then settle it with the server's answer.

        Raises whatever the create call raised, after the placeholder has been
        removed.
        """
        owner_id = self._identity.current_owner_id()
        if owner_id is None:
            raise UnauthorizedError("sign in to create bookmarks")
        data = parse_input(kind, fields)

        self._tree, placeholder = create_placeholder(self._tree, kind, parent_id, data, owner_id)
        self._publish()

        try:
            confirmed = await self._api.create(kind, parent_id, data)
        except Exception:
            self._settle(parent_id, placeholder.id, None)
            raise
        self._settle(parent_id, placeholder.id, confirmed)
        return confirmed

    def _settle(self, parent_id: str, placeholder_id: str, confirmed: AnyNode | None) -> None:
        if placeholder_id not in find_placeholders(self._tree):
            # A refresh replaced the tree while the create was in flight.
            logger.info("placeholder %s no longer in tree; skipping settle", placeholder_id)
            return
        if confirmed is None:
            self._tree = discard(self._tree, parent_id, placeholder_id)
        else:
            self._tree = reconcile(self._tree, parent_id, placeholder_id, confirmed)
        self._publish()

    def sortable(self, parent_id: str) -> DragController[Any]:
        """Drag controller over the confirmed children of ``parent_id``."""
        child_kind, children = children_of(self._tree, parent_id)
        confirmed = [c for c in children if not c.is_temporary]

        async def _reorder(entries: list[ReorderEntry]) -> bool:
            ok = await self._api.reorder(child_kind, parent_id, entries)
            if not ok:
                self.needs_refresh = True
            return ok

        def _on_settled(outcome: SaveOutcome, items: list[Any]) -> None:
            if outcome != SaveOutcome.SAVED:
                return
            self._tree = apply_order(self._tree, parent_id, [i.id for i in items])
            self._publish()

        return DragController(
            parent_id, confirmed, _reorder, gate=self._gate, on_settled=_on_settled
        )

    async def refresh(self) -> CollectionTree:
        self._tree = await self._api.get_tree(self._tree.id)
        self.needs_refresh = False
        self._publish()
        return self._tree
