"""Gesture plumbing: turns drag events from an input source into engine calls.

The engine only knows ``start`` / ``move_over`` / ``end``. This module sits
between it and whatever produces pointer or keyboard input:

- ``DragContext`` accepts start/over/end/cancel events, the shape most drag
  libraries emit, and forwards them.
- ``PointerSensor`` applies an activation distance so a press-and-release
  that barely moves is a click, not a drag.
- ``KeyboardSensor`` drives a gesture from arrow keys over the current
  projection.
- ``replay_gesture`` runs a whole gesture from a list of targets (CLI and
  dashboard use it).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from swimlane.engine import BoardEngine, Settlement

logger = logging.getLogger(__name__)

DroppableKind = Literal["item", "column"]

DEFAULT_ACTIVATION_DISTANCE = 5.0


@dataclass(frozen=True)
class Droppable:
    """Something the pointer can be over: a card or a column's empty region."""

    id: str
    kind: DroppableKind = "item"


@dataclass(frozen=True)
class DragStartEvent:
    active_id: str


@dataclass(frozen=True)
class DragOverEvent:
    active_id: str
    over: Droppable | None = None


@dataclass(frozen=True)
class DragEndEvent:
    active_id: str
    over: Droppable | None = None


@dataclass(frozen=True)
class DragCancelEvent:
    active_id: str


DragEvent = DragStartEvent | DragOverEvent | DragEndEvent | DragCancelEvent


def droppable_for(engine: BoardEngine, target_id: str) -> Droppable:
    """Classify *target_id* against the engine's board. Unknown ids are treated as items."""
    return Droppable(target_id, "column" if engine.kind_of(target_id) == "column" else "item")


class DragContext:
    """Routes drag events for one board to its engine."""

    def __init__(self, engine: BoardEngine) -> None:
        self.engine = engine

    def on_drag_start(self, event: DragStartEvent) -> bool:
        return self.engine.start(event.active_id)

    def on_drag_over(self, event: DragOverEvent) -> bool:
        if event.over is None:
            return False  # between targets
        if not self._owns(event.active_id) or not self._matches(event.over):
            return False
        return self.engine.move_over(event.over.id)

    def on_drag_end(self, event: DragEndEvent) -> Settlement | None:
        if not self._owns(event.active_id):
            return None
        over = event.over
        if over is not None and not self._matches(over):
            over = None  # released over something this board does not have; cancel
        return self.engine.end(over.id if over is not None else None)

    def on_drag_cancel(self, event: DragCancelEvent) -> Settlement | None:
        if not self._owns(event.active_id):
            return None
        return self.engine.end(None)

    def dispatch(self, event: DragEvent) -> bool | Settlement | None:
        if isinstance(event, DragStartEvent):
            return self.on_drag_start(event)
        if isinstance(event, DragOverEvent):
            return self.on_drag_over(event)
        if isinstance(event, DragEndEvent):
            return self.on_drag_end(event)
        return self.on_drag_cancel(event)

    def _owns(self, active_id: str) -> bool:
        """Events for a gesture this engine is not running are stale; the engine decides if idle."""
        current = self.engine.active_id
        if current is not None and current != active_id:
            logger.warning("Dropping event for %s while %s is active", active_id, current, extra={"item": active_id})
            return False
        return True

    def _matches(self, over: Droppable) -> bool:
        """A droppable must be the kind the board knows its id as. Unknown ids go to the engine."""
        actual = self.engine.kind_of(over.id)
        if actual is not None and actual != over.kind:
            logger.warning(
                "Droppable %s is kind %s, not %s", over.id, actual, over.kind, extra={"target": over.id}
            )
            return False
        return True


class PointerSensor:
    """Press / move / release with an activation distance."""

    def __init__(self, context: DragContext, *, activation_distance: float = DEFAULT_ACTIVATION_DISTANCE) -> None:
        if activation_distance < 0:
            msg = f"activation_distance must be >= 0, got {activation_distance}"
            raise ValueError(msg)
        self.context = context
        self.activation_distance = activation_distance
        self._pressed: str | None = None
        self._origin = (0.0, 0.0)
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def press(self, item_id: str, x: float, y: float) -> None:
        self._pressed = item_id
        self._origin = (x, y)
        self._active = False

    def move(self, x: float, y: float, over: Droppable | None = None) -> bool:
        """Track the pointer. Returns ``True`` if the board order changed."""
        if self._pressed is None:
            return False
        if not self._active:
            if math.hypot(x - self._origin[0], y - self._origin[1]) < self.activation_distance:
                return False
            self._active = self.context.on_drag_start(DragStartEvent(self._pressed))
            if not self._active:
                self._pressed = None
                return False
        return self.context.on_drag_over(DragOverEvent(self._pressed, over))

    def release(self, over: Droppable | None = None) -> Settlement | None:
        pressed, active = self._pressed, self._active
        self._pressed = None
        self._active = False
        if pressed is None or not active:
            return None  # a click
        return self.context.on_drag_end(DragEndEvent(pressed, over))

    def cancel(self) -> Settlement | None:
        pressed, active = self._pressed, self._active
        self._pressed = None
        self._active = False
        if pressed is None or not active:
            return None
        return self.context.on_drag_cancel(DragCancelEvent(pressed))


class KeyboardSensor:
    """Keyboard dragging: pick up, step through the projection, drop or cancel."""

    PICK_UP_KEYS = frozenset({"Space", "Enter"})
    CANCEL_KEYS = frozenset({"Escape"})

    def __init__(self, context: DragContext) -> None:
        self.context = context
        self.focused: str | None = None
        self._over: Droppable | None = None

    def focus(self, item_id: str) -> None:
        if self.context.engine.is_dragging:
            return
        self.focused = item_id

    def press(self, key: str) -> bool | Settlement | None:
        """Handle one key. Returns the settlement on drop, otherwise whether anything moved."""
        engine = self.context.engine
        if not engine.is_dragging:
            if key in self.PICK_UP_KEYS and self.focused is not None:
                self._over = None
                return self.context.on_drag_start(DragStartEvent(self.focused))
            return False

        active_id = engine.active_id
        if active_id is None:
            return False
        if key in self.CANCEL_KEYS:
            self._over = None
            return self.context.on_drag_cancel(DragCancelEvent(active_id))
        if key in self.PICK_UP_KEYS:
            over = self._over or Droppable(active_id)
            self._over = None
            return self.context.on_drag_end(DragEndEvent(active_id, over))

        target = self._neighbour(active_id, key)
        if target is None:
            return False
        self._over = target
        return self.context.on_drag_over(DragOverEvent(active_id, target))

    def _neighbour(self, active_id: str, key: str) -> Droppable | None:
        engine = self.context.engine
        projection = engine.projection()
        category = engine.get(active_id).category
        column = [i.id for i in projection[category]]
        idx = column.index(active_id)

        if key == "ArrowUp":
            return Droppable(column[idx - 1]) if idx > 0 else None
        if key == "ArrowDown":
            return Droppable(column[idx + 1]) if idx + 1 < len(column) else None
        if key in ("ArrowLeft", "ArrowRight"):
            order = list(projection)
            pos = order.index(category) + (1 if key == "ArrowRight" else -1)
            if not 0 <= pos < len(order):
                return None
            neighbours = projection[order[pos]]
            if neighbours:
                return Droppable(neighbours[min(idx, len(neighbours) - 1)].id)
            return Droppable(order[pos], "column")
        return None


def replay_gesture(
    engine: BoardEngine,
    item_id: str,
    overs: Iterable[str] = (),
    drop: str | None = None,
) -> Settlement | None:
    """Run one complete gesture: pick up *item_id*, hover each of *overs*, release on *drop*.

    ``drop=None`` releases over nothing, which cancels the gesture.
    """
    context = DragContext(engine)
    if not context.on_drag_start(DragStartEvent(item_id)):
        return None
    for target in overs:
        context.on_drag_over(DragOverEvent(item_id, droppable_for(engine, target)))
    over = droppable_for(engine, drop) if drop is not None else None
    return context.on_drag_end(DragEndEvent(item_id, over))
