from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, Protocol, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.errors import NotFoundError, PersistenceFault
from bookmark_backend.models import utc_now
from bookmark_backend.ordering.entities import (
    EntityKind,
    OrderedEntity,
    kind_spec,
    parent_id_of,
    sort_canonical,
)

logger = logging.getLogger(__name__)


class OrderingStore(Protocol):
    """Persistence interface consumed by the reorder service."""

    transactional: bool

    async def get_siblings(self, parent_id: str | None) -> list[OrderedEntity]: ...

    async def get_entity(self, entity_id: str) -> OrderedEntity | None: ...

    async def get_parent_of(self, entity_id: str) -> str | None: ...

    async def write_order_index(self, entity_id: str, value: int) -> None: ...

    def transaction(self) -> Any: ...


class SqlOrderingStore:
    """Ordering store over one SQLModel table, bound to a request session."""

    transactional = True

    def __init__(
        self, session: AsyncSession, kind: EntityKind, *, owner_id: int | None = None
    ) -> None:
        self._session = session
        self._kind = kind
        self._spec = kind_spec(kind)
        # 根节点（collection）没有父级，其同级范围按 owner 划分
        self._owner_id = owner_id

    def _snapshot(self, row: Any) -> OrderedEntity:
        return OrderedEntity(
            id=row.id,
            kind=self._kind,
            parent_id=parent_id_of(self._kind, row),
            owner_id=row.owner_id,
            order_index=row.order_index,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def get_siblings(self, parent_id: str | None) -> list[OrderedEntity]:
        model = cast(Any, self._spec.model)
        stmt = select(model)
        if self._spec.parent_field is None:
            if self._owner_id is not None:
                stmt = stmt.where(model.owner_id == self._owner_id)
        else:
            stmt = stmt.where(getattr(model, self._spec.parent_field) == parent_id)
        stmt = stmt.order_by(model.order_index.asc(), model.created_at.asc())
        rows = (await self._session.exec(stmt)).all()
        return [self._snapshot(r) for r in rows]

    async def get_entity(self, entity_id: str) -> OrderedEntity | None:
        row = await self._session.get(self._spec.model, entity_id)
        if row is None:
            return None
        return self._snapshot(row)

    async def get_parent_of(self, entity_id: str) -> str | None:
        entity = await self.get_entity(entity_id)
        if entity is None:
            raise NotFoundError(f"{self._kind.value} not found", details={"id": entity_id})
        return entity.parent_id

    async def write_order_index(self, entity_id: str, value: int) -> None:
        try:
            row = cast(Any, await self._session.get(self._spec.model, entity_id))
            if row is None:
                raise PersistenceFault(
                    f"{self._kind.value} vanished during reorder", details={"id": entity_id}
                )
            row.order_index = value
            row.updated_at = utc_now()
            self._session.add(row)
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFault(
                f"failed to write order_index for {self._kind.value}",
                details={"id": entity_id},
            ) from exc

    async def _rollback_quietly(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError:
            logger.warning("rollback failed after reorder error", exc_info=True)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            if self._session.in_transaction():
                yield
                await self._session.commit()
                return
            async with self._session.begin():
                yield
        except SQLAlchemyError as exc:
            await self._rollback_quietly()
            raise PersistenceFault(f"{self._kind.value} reorder was rolled back") from exc
        except Exception:
            await self._rollback_quietly()
            raise


class MemoryOrderingStore:
    """Dict-backed ordering store.

    With ``transactional=False`` it models a backend that cannot write several
    rows atomically: every write lands immediately and a failed batch leaves
    the earlier writes in place.
    """

    def __init__(self, rows: Iterable[OrderedEntity], *, transactional: bool = False) -> None:
        self.transactional = transactional
        self._rows: dict[str, OrderedEntity] = {r.id: r for r in rows}

    def rows(self) -> list[OrderedEntity]:
        return list(self._rows.values())

    async def get_siblings(self, parent_id: str | None) -> list[OrderedEntity]:
        return sort_canonical([r for r in self._rows.values() if r.parent_id == parent_id])

    async def get_entity(self, entity_id: str) -> OrderedEntity | None:
        return self._rows.get(entity_id)

    async def get_parent_of(self, entity_id: str) -> str | None:
        row = self._rows.get(entity_id)
        if row is None:
            raise NotFoundError("entity not found", details={"id": entity_id})
        return row.parent_id

    async def write_order_index(self, entity_id: str, value: int) -> None:
        row = self._rows.get(entity_id)
        if row is None:
            raise PersistenceFault("entity vanished during reorder", details={"id": entity_id})
        self._rows[entity_id] = replace(row, order_index=value, updated_at=utc_now())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = dict(self._rows)
        try:
            yield
        except Exception:
            self._rows = snapshot
            raise
