"""Drag-and-drop reordering for one sibling scope.

``DragController`` keeps the visible sequence in memory while the user drags,
and only talks to the server on an explicit ``save()``. A failed save puts
back the last sequence the server confirmed.

State machine::

    IDLE -> DRAGGING -> PENDING_SAVE -> IDLE   (save succeeded)
                                     -> IDLE   (save failed: rollback, or cancel)

Drags are still accepted while a save is in flight; a second save for the
same scope is suppressed by the shared ``SaveGate`` until the first resolves.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Generic, TypeVar

from bookmark_backend.errors import NotFoundError, ValidationError
from bookmark_backend.ordering.reorder_service import ReorderEntry, dense_entries
from bookmark_backend.schemas_bookmarks import NodeBase

logger = logging.getLogger(__name__)

N = TypeVar("N", bound=NodeBase)

ReorderCallable = Callable[[list[ReorderEntry]], Awaitable[bool]]


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING_SAVE = "pending_save"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    ROLLED_BACK = "rolled_back"
    # Another save for the same scope is in flight; nothing was sent.
    SUPPRESSED = "suppressed"
    NOTHING_TO_SAVE = "nothing_to_save"


class SaveGate:
    """At most one in-flight save per scope id."""

    def __init__(self) -> None:
        self._in_flight: set[str] = set()

    def is_busy(self, scope_id: str) -> bool:
        return scope_id in self._in_flight

    def try_acquire(self, scope_id: str) -> bool:
        if scope_id in self._in_flight:
            return False
        self._in_flight.add(scope_id)
        return True

    def release(self, scope_id: str) -> None:
        self._in_flight.discard(scope_id)


class DragController(Generic[N]):
    def __init__(
        self,
        scope_id: str,
        items: Sequence[N],
        reorder: ReorderCallable,
        *,
        gate: SaveGate | None = None,
        on_settled: Callable[[SaveOutcome, list[N]], None] | None = None,
    ) -> None:
        self.scope_id = scope_id
        self._items: list[N] = list(items)
        self._confirmed: list[N] = list(items)
        self._reorder = reorder
        self._gate = gate if gate is not None else SaveGate()
        self._on_settled = on_settled

        self.state = DragState.IDLE
        self.has_changes = False
        self._dragging_id: str | None = None
        self._drag_origin: list[str] = []

    @property
    def items(self) -> list[N]:
        return list(self._items)

    @property
    def ids(self) -> list[str]:
        return [i.id for i in self._items]

    @property
    def confirmed_ids(self) -> list[str]:
        return [i.id for i in self._confirmed]

    @property
    def dragging_id(self) -> str | None:
        return self._dragging_id

    @property
    def is_saving(self) -> bool:
        return self._gate.is_busy(self.scope_id)

    def start_drag(self, item_id: str) -> None:
        if self.state == DragState.DRAGGING:
            raise ValidationError(
                "a drag is already in progress", details={"id": self._dragging_id}
            )
        if item_id not in self.ids:
            raise NotFoundError("item not in this list", details={"id": item_id})
        self._drag_origin = self.ids
        self._dragging_id = item_id
        self.state = DragState.DRAGGING

    def drag_over(self, target_id: str) -> None:
        """Move the dragged item to the position of ``target_id``."""
        if self.state != DragState.DRAGGING or self._dragging_id is None:
            raise ValidationError("no drag in progress")
        if target_id == self._dragging_id:
            return
        ids = self.ids
        if target_id not in ids:
            raise NotFoundError("item not in this list", details={"id": target_id})
        src = ids.index(self._dragging_id)
        dst = ids.index(target_id)
        moved = self._items.pop(src)
        self._items.insert(dst, moved)

    def drop(self) -> bool:
        """End the gesture; returns True when the sequence changed."""
        if self.state != DragState.DRAGGING:
            raise ValidationError("no drag in progress")
        changed = self.ids != self._drag_origin
        self._dragging_id = None
        self._drag_origin = []
        # Pending is relative to the confirmed sequence, not to the drag origin.
        self.has_changes = self.ids != self.confirmed_ids
        self.state = DragState.PENDING_SAVE if self.has_changes else DragState.IDLE
        return changed

    async def save(self) -> SaveOutcome:
        if self.state == DragState.DRAGGING:
            raise ValidationError("finish the drag before saving")
        if not self.has_changes:
            return SaveOutcome.NOTHING_TO_SAVE
        if not self._gate.try_acquire(self.scope_id):
            logger.info("reorder save suppressed scope=%s (save in flight)", self.scope_id)
            return SaveOutcome.SUPPRESSED

        submitted = list(self._items)
        entries = dense_entries([i.id for i in submitted])
        try:
            try:
                ok = await self._reorder(entries)
            except Exception:
                logger.warning("reorder save raised scope=%s", self.scope_id, exc_info=True)
                self._rollback()
                raise
            if not ok:
                logger.warning("reorder save rejected scope=%s", self.scope_id)
                self._rollback()
                return SaveOutcome.ROLLED_BACK
            self._confirm(submitted)
            return SaveOutcome.SAVED
        finally:
            self._gate.release(self.scope_id)

    def cancel(self) -> None:
        """Drop unsaved local changes; never touches the network."""
        self._items = list(self._confirmed)
        self._reset()

    def replace_items(self, items: Sequence[N]) -> None:
        """Adopt a fresh server sequence (after a refetch)."""
        if self.state != DragState.IDLE or self.is_saving:
            raise ValidationError(
                "cannot replace items during a drag or save", details={"scope_id": self.scope_id}
            )
        self._items = list(items)
        self._confirmed = list(items)
        self.has_changes = False

    def _reset(self) -> None:
        self.has_changes = False
        self._dragging_id = None
        self._drag_origin = []
        self.state = DragState.IDLE

    def _rollback(self) -> None:
        self._items = list(self._confirmed)
        if self.state == DragState.DRAGGING:
            # Keep the open gesture; it continues from the restored sequence.
            self.has_changes = False
            self._drag_origin = self.ids
        else:
            self._reset()
        if self._on_settled is not None:
            self._on_settled(SaveOutcome.ROLLED_BACK, list(self._items))

    def _confirm(self, submitted: list[N]) -> None:
        confirmed = [item.model_copy(update={"order_index": i}) for i, item in enumerate(submitted)]
        self._confirmed = confirmed
        if self.ids == self.confirmed_ids:
            self._items = list(confirmed)
        # Drags made while the save was in flight remain unsaved.
        self.has_changes = self.ids != self.confirmed_ids
        if self.state != DragState.DRAGGING:
            self.state = DragState.PENDING_SAVE if self.has_changes else DragState.IDLE
        logger.info("reorder saved scope=%s entries=%d", self.scope_id, len(confirmed))
        if self._on_settled is not None:
            self._on_settled(SaveOutcome.SAVED, list(confirmed))
