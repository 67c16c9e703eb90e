"""TypedDicts for the board projection and gesture results."""

from __future__ import annotations

from typing import TypedDict

from swimlane.types.core import WorkItemDict


class ColumnViewDict(TypedDict):
    """One column of the projection, as served to the dashboard."""

    id: str
    title: str
    count: int
    items: list[WorkItemDict]


class BoardDict(TypedDict):
    """Full board view: columns in layout order with their items."""

    columns: list[ColumnViewDict]
    total: int


class SettlementDict(TypedDict):
    """Outcome of ``BoardEngine.end()``."""

    item_id: str
    origin_category: str
    category: str
    order: int
    committed: bool
    cancelled: bool


class DragResultDict(TypedDict):
    """Response of the replayed-gesture endpoint."""

    settlement: SettlementDict | None
    board: BoardDict
