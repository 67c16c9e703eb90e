"""Board reordering engine — the drag-and-drop state machine.

One engine instance owns the master item sequence of one board view. A drag
gesture runs ``start`` → any number of ``move_over`` → ``end``:

    IDLE --start--> DRAGGING --move_over--> DRAGGING --end--> (SETTLING) --> IDLE

``move_over`` mutates a private working copy optimistically so the projection
follows the pointer. ``end`` settles the active item's category, returns to
IDLE, and only then fires the commit callback (at most once per gesture).

The sequence is an immutable tuple of frozen ``WorkItem`` values. ``start``
keeps the pre-gesture tuple, so cancelling is a plain reassignment and the
snapshot handed in by the caller is never mutated.

Misuse (unknown ids, calls out of order) raises in strict mode and is logged
and ignored otherwise. The sequence is never left with a duplicate or a
missing id either way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from time import perf_counter

from swimlane.board import BoardSnapshot, Column, WorkItem
from swimlane.projection import column_position, project_columns
from swimlane.types.board import SettlementDict

logger = logging.getLogger(__name__)

CommitCallback = Callable[[str, str], object]


class GesturePhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    SETTLING = "settling"


class InvalidReferenceError(KeyError):
    """An id passed to the engine is neither a work item nor a column on this board."""


class GestureProtocolError(RuntimeError):
    """A transition was requested from the wrong phase."""


@dataclass(frozen=True)
class Settlement:
    """What ``end()`` decided for the active item."""

    item_id: str
    origin_category: str
    category: str
    order: int
    committed: bool
    cancelled: bool = False

    @property
    def category_changed(self) -> bool:
        return self.category != self.origin_category

    def to_dict(self) -> SettlementDict:
        return SettlementDict(
            item_id=self.item_id,
            origin_category=self.origin_category,
            category=self.category,
            order=self.order,
            committed=self.committed,
            cancelled=self.cancelled,
        )


class BoardEngine:
    """Ordered work items plus the transition rules for one drag gesture at a time."""

    def __init__(
        self,
        snapshot: BoardSnapshot,
        on_commit: CommitCallback | None = None,
        *,
        strict: bool = False,
    ) -> None:
        self.on_commit = on_commit
        self.strict = strict
        self._phase = GesturePhase.IDLE
        self._active_id: str | None = None
        self._origin: tuple[WorkItem, ...] | None = None
        self._origin_category: str | None = None
        self._last_over: str | None = None
        self._started_at = 0.0
        self._adopt(snapshot)

    # -- read side -----------------------------------------------------------

    @property
    def phase(self) -> GesturePhase:
        return self._phase

    @property
    def is_dragging(self) -> bool:
        return self._phase is GesturePhase.DRAGGING

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def items(self) -> tuple[WorkItem, ...]:
        return self._items

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._columns

    @property
    def category_ids(self) -> tuple[str, ...]:
        return tuple(c.id for c in self._columns)

    def item_ids(self) -> list[str]:
        return [i.id for i in self._items]

    def get(self, item_id: str) -> WorkItem:
        idx = self._index_of(item_id)
        if idx is None:
            msg = f"Work item not found: {item_id}"
            raise KeyError(msg)
        return self._items[idx]

    def kind_of(self, target_id: str) -> str | None:
        """Return ``"item"``, ``"column"``, or ``None`` for an unknown id."""
        if target_id in self._category_set:
            return "column"
        if self._index_of(target_id) is not None:
            return "item"
        return None

    def projection(self) -> dict[str, list[WorkItem]]:
        return project_columns(self._items, self.category_ids)

    def column_position(self, item_id: str) -> int:
        return column_position(self._items, item_id)

    def snapshot(self) -> BoardSnapshot:
        """Current displayed state (the working copy while dragging)."""
        return BoardSnapshot(items=self._items, columns=self._columns)

    # -- transitions ---------------------------------------------------------

    def reset(self, snapshot: BoardSnapshot) -> None:
        """Adopt a fresh snapshot and return to IDLE, abandoning any gesture."""
        if self._phase is not GesturePhase.IDLE:
            logger.info("Gesture abandoned by snapshot reset", extra={"item": self._active_id, "phase": self._phase.value})
        self._adopt(snapshot)
        self._clear_gesture()

    def start(self, item_id: str) -> bool:
        """Pick up *item_id*. Returns ``True`` when a gesture began."""
        if self._phase is not GesturePhase.IDLE:
            self._reject(GestureProtocolError, f"start({item_id!r}) while {self._phase.value}")
            return False
        idx = self._index_of(item_id)
        if idx is None:
            self._reject(InvalidReferenceError, f"start: unknown work item {item_id!r}")
            return False
        self._phase = GesturePhase.DRAGGING
        self._active_id = item_id
        self._origin = self._items
        self._origin_category = self._items[idx].category
        self._started_at = perf_counter()
        logger.debug("Drag started", extra={"item": item_id, "category": self._origin_category})
        return True

    def move_over(self, target_id: str) -> bool:
        """Hover the active item over an item or column. Returns ``True`` if the order changed."""
        if self._phase is not GesturePhase.DRAGGING or self._active_id is None:
            self._reject(GestureProtocolError, f"move_over({target_id!r}) while {self._phase.value}")
            return False
        if target_id == self._active_id:
            return False
        if self.kind_of(target_id) is None:
            self._reject(InvalidReferenceError, f"move_over: unknown target {target_id!r}")
            return False
        self._last_over = target_id
        moved = self._relocate(self._items, self._active_id, target_id)
        if moved == self._items:
            return False
        self._items = moved
        return True

    def cancel(self) -> Settlement | None:
        """Drop on nothing: shorthand for ``end(None)``."""
        return self.end(None)

    def end(self, target_id: str | None = None) -> Settlement | None:
        """Release the active item over *target_id* (``None`` = no drop target).

        Always returns the engine to IDLE. The commit callback runs after the
        state has settled, at most once, and only when the category or the
        position changed. Exceptions raised by the callback propagate to the
        caller; the engine state is already final at that point.
        """
        if self._phase is not GesturePhase.DRAGGING or self._active_id is None:
            self._reject(GestureProtocolError, f"end({target_id!r}) while {self._phase.value}")
            return None

        active_id = self._active_id
        origin_category = self._origin_category or ""
        elapsed_ms = round((perf_counter() - self._started_at) * 1000, 2)
        self._phase = GesturePhase.SETTLING

        if target_id is not None and self.kind_of(target_id) is None:
            self._revert()
            self._clear_gesture()
            self._reject(InvalidReferenceError, f"end: unknown target {target_id!r}")
            return None

        if target_id is None:
            self._revert()
            committed = False
        else:
            if target_id != active_id and target_id != self._last_over:
                # Dropped on a target that was never hovered; apply the hover first.
                self._items = self._relocate(self._items, active_id, target_id)
            committed = self.get(active_id).category != origin_category or target_id != active_id

        category = self.get(active_id).category
        settlement = Settlement(
            item_id=active_id,
            origin_category=origin_category,
            category=category,
            order=self.column_position(active_id),
            committed=committed,
            cancelled=target_id is None,
        )
        self._clear_gesture()

        if settlement.cancelled:
            logger.debug("Drag cancelled", extra={"item": active_id, "duration_ms": elapsed_ms})
        elif committed:
            logger.info(
                "Drag committed",
                extra={"item": active_id, "category": category, "target": target_id, "duration_ms": elapsed_ms},
            )
            if self.on_commit is not None:
                self.on_commit(active_id, category)
        return settlement

    # -- internals -----------------------------------------------------------

    def _adopt(self, snapshot: BoardSnapshot) -> None:
        self._items = snapshot.items
        self._columns = snapshot.columns
        self._category_set = frozenset(snapshot.category_ids)

    def _clear_gesture(self) -> None:
        self._phase = GesturePhase.IDLE
        self._active_id = None
        self._origin = None
        self._origin_category = None
        self._last_over = None

    def _revert(self) -> None:
        if self._origin is not None:
            self._items = self._origin

    def _index_of(self, item_id: str) -> int | None:
        for n, item in enumerate(self._items):
            if item.id == item_id:
                return n
        return None

    def _relocate(self, items: tuple[WorkItem, ...], active_id: str, target_id: str) -> tuple[WorkItem, ...]:
        """Return a new sequence with *active_id* moved relative to *target_id*."""
        active_idx = next(n for n, i in enumerate(items) if i.id == active_id)
        active = items[active_idx]
        rest = items[:active_idx] + items[active_idx + 1 :]

        if target_id in self._category_set:
            if active.category == target_id:
                return items
            moved = replace(active, category=target_id)
            last = max((n for n, i in enumerate(rest) if i.category == target_id), default=None)
            slot = active_idx if last is None else last + 1
            return rest[:slot] + (moved,) + rest[slot:]

        target_idx = next(n for n, i in enumerate(items) if i.id == target_id)
        target = items[target_idx]
        if target.category != active.category:
            # Land directly before the target; the target and its followers shift forward.
            moved = replace(active, category=target.category)
            slot = target_idx - 1 if active_idx < target_idx else target_idx
            return rest[:slot] + (moved,) + rest[slot:]
        # Same column: take the target's slot.
        return rest[:target_idx] + (active,) + rest[target_idx:]

    def _reject(self, exc_type: type[Exception], message: str) -> None:
        if self.strict:
            raise exc_type(message)
        logger.warning("Ignored gesture call: %s", message, extra={"phase": self._phase.value})
