from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from bookmark_backend.errors import (
    ForbiddenError,
    NotFoundError,
    PersistenceFault,
    UnauthorizedError,
    ValidationError,
)
from bookmark_backend.ordering.entities import OrderedEntity
from bookmark_backend.ordering.store import OrderingStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReorderEntry:
    id: str
    order_index: int


@dataclass(frozen=True)
class ReorderResult:
    success: bool
    applied: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    # "persistence_fault" when the stored order is indeterminate and must be re-fetched.
    fault: str | None = None


def dense_entries(ids: Sequence[str]) -> list[ReorderEntry]:
    """Build a gap-free batch from array position (0..n-1)."""
    return [ReorderEntry(id=entity_id, order_index=i) for i, entity_id in enumerate(ids)]


class ReorderService:
    """Applies one batch of (id, order_index) pairs inside a single sibling scope.

    Validation (identity, shape, scope, ownership) finishes before the first
    write; any failure there raises and leaves the store untouched. Write
    failures are reported through ``ReorderResult`` instead of raising, because
    on a non-transactional store some writes may already have landed.
    """

    def __init__(self, store: OrderingStore) -> None:
        self._store = store

    async def reorder(
        self,
        parent_scope_id: str | None,
        entries: Sequence[ReorderEntry],
        requester_id: int | None,
    ) -> ReorderResult:
        if requester_id is None:
            raise UnauthorizedError("missing requester")

        self._validate_shape(entries)
        await self._validate_scope(parent_scope_id, entries, requester_id)

        if self._store.transactional:
            result = await self._write_atomically(entries)
        else:
            result = await self._write_each(entries)

        if result.success:
            logger.info(
                "reorder applied scope=%s entries=%d requester=%s",
                parent_scope_id,
                len(entries),
                requester_id,
            )
        else:
            logger.warning(
                "reorder failed scope=%s failed_ids=%s applied=%d transactional=%s",
                parent_scope_id,
                result.failed_ids,
                len(result.applied),
                self._store.transactional,
            )
        return result

    @staticmethod
    def _validate_shape(entries: Sequence[ReorderEntry]) -> None:
        if not entries:
            raise ValidationError("entries must not be empty")

        ids = [e.id for e in entries]
        if len(set(ids)) != len(ids):
            raise ValidationError("duplicate ids in reorder batch")

        for e in entries:
            if not e.id:
                raise ValidationError("entry id must not be empty")
            if e.order_index < 0:
                raise ValidationError(
                    "order_index must be non-negative", details={"id": e.id}
                )

    async def _validate_scope(
        self,
        parent_scope_id: str | None,
        entries: Sequence[ReorderEntry],
        requester_id: int,
    ) -> None:
        siblings = await self._store.get_siblings(parent_scope_id)
        by_id: dict[str, OrderedEntity] = {s.id: s for s in siblings}

        for e in entries:
            entity = by_id.get(e.id)
            if entity is None:
                entity = await self._store.get_entity(e.id)
            if entity is None:
                raise NotFoundError("entity not found", details={"id": e.id})
            if entity.parent_id != parent_scope_id:
                raise NotFoundError(
                    "entity does not belong to the parent scope",
                    details={"id": e.id, "parent_id": parent_scope_id},
                )
            if entity.owner_id != requester_id:
                raise ForbiddenError("not the owner of this entity", details={"id": e.id})

    async def _write_atomically(self, entries: Sequence[ReorderEntry]) -> ReorderResult:
        current: str | None = None
        try:
            async with self._store.transaction():
                for e in entries:
                    current = e.id
                    await self._store.write_order_index(e.id, e.order_index)
        except PersistenceFault:
            failed = [current] if current is not None else []
            return ReorderResult(success=False, failed_ids=failed, fault="persistence_fault")
        return ReorderResult(success=True, applied=[e.id for e in entries])

    async def _write_each(self, entries: Sequence[ReorderEntry]) -> ReorderResult:
        applied: list[str] = []
        failed: list[str] = []
        for e in entries:
            try:
                await self._store.write_order_index(e.id, e.order_index)
            except PersistenceFault:
                logger.warning("order_index write failed id=%s", e.id, exc_info=True)
                failed.append(e.id)
            else:
                applied.append(e.id)

        if failed:
            return ReorderResult(
                success=False, applied=applied, failed_ids=failed, fault="persistence_fault"
            )
        return ReorderResult(success=True, applied=applied)
