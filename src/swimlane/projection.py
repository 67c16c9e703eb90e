"""Column projection: per-column views derived from the master sequence.

Pure functions. Nothing here is cached; callers recompute on every state
change, so a projection is always consistent with the sequence it came from.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from swimlane.board import Column, WorkItem
from swimlane.types.board import BoardDict, ColumnViewDict


def project_columns(items: Iterable[WorkItem], categories: Sequence[str]) -> dict[str, list[WorkItem]]:
    """Group *items* by category, keeping master-sequence order inside each group.

    The returned dict is keyed in *categories* order and has an entry (possibly
    empty) for every category. Raises ``ValueError`` for an item whose category
    is not in *categories*.
    """
    columns: dict[str, list[WorkItem]] = {c: [] for c in categories}
    for item in items:
        bucket = columns.get(item.category)
        if bucket is None:
            msg = f"Work item {item.id} has unknown category {item.category!r}"
            raise ValueError(msg)
        bucket.append(item)
    return columns


def flatten(projection: dict[str, list[WorkItem]]) -> list[str]:
    """Concatenate the projected columns back into one id list."""
    return [item.id for column in projection.values() for item in column]


def column_position(items: Iterable[WorkItem], item_id: str) -> int:
    """Return the index of *item_id* within its own column. Raises ``KeyError``."""
    sequence = list(items)
    for item in sequence:
        if item.id == item_id:
            category = item.category
            break
    else:
        msg = f"Work item not found: {item_id}"
        raise KeyError(msg)
    siblings = [i.id for i in sequence if i.category == category]
    return siblings.index(item_id)


def board_view(items: Iterable[WorkItem], columns: Sequence[Column]) -> BoardDict:
    """Render the projection as plain dicts for JSON surfaces."""
    projection = project_columns(items, [c.id for c in columns])
    views: list[ColumnViewDict] = []
    for col in columns:
        members = projection[col.id]
        views.append(
            ColumnViewDict(
                id=col.id,
                title=col.label,
                count=len(members),
                items=[i.to_dict() for i in members],
            )
        )
    return BoardDict(columns=views, total=sum(v["count"] for v in views))
