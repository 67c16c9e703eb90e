"""Board data model: work items, columns, and the snapshot the engine consumes.

Items and columns are frozen dataclasses. A ``BoardSnapshot`` pairs one
ordered tuple of items (the master sequence) with the ordered tuple of
columns (the board layout). Everything except ``id`` and ``category`` is
display payload and is carried through untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from swimlane.types.core import ColumnDict, ISOTimestamp, WorkItemDict


@dataclass(frozen=True)
class WorkItem:
    id: str
    category: str
    title: str = ""
    description: str = ""
    priority: str = "medium"
    assignee: str = ""
    tags: tuple[str, ...] = ()
    due_date: str | None = None
    created_at: str = ""
    updated_at: str = ""
    archived: bool = False

    def to_dict(self) -> WorkItemDict:
        return WorkItemDict(
            id=self.id,
            title=self.title,
            category=self.category,
            description=self.description,
            priority=self.priority,
            assignee=self.assignee,
            tags=list(self.tags),
            due_date=self.due_date,
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
            archived=self.archived,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> WorkItem:
        """Build an item from a mapping carrying at least ``id`` and ``category``.

        ``status`` is accepted as an alias for ``category``.
        """
        category = data.get("category", data.get("status"))
        if not data.get("id") or not category:
            msg = f"Work item needs 'id' and 'category': {dict(data)!r}"
            raise ValueError(msg)
        return cls(
            id=str(data["id"]),
            category=str(category),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            priority=str(data.get("priority", "medium")),
            assignee=str(data.get("assignee", "")),
            tags=tuple(data.get("tags") or ()),
            due_date=data.get("due_date"),
            created_at=str(data.get("created_at", "")),
            updated_at=str(data.get("updated_at", "")),
            archived=bool(data.get("archived", False)),
        )


@dataclass(frozen=True)
class Column:
    id: str
    title: str = ""

    @property
    def label(self) -> str:
        return self.title or self.id

    def to_dict(self) -> ColumnDict:
        return ColumnDict(id=self.id, title=self.label)


@dataclass(frozen=True)
class BoardSnapshot:
    """Immutable board state: master item sequence plus column layout.

    Construction validates the structural invariants and raises ``ValueError``
    when they do not hold: unique column ids, unique item ids, every item's
    category is a known column, and no item id doubles as a column id (drop
    targets are resolved by id alone).
    """

    items: tuple[WorkItem, ...]
    columns: tuple[Column, ...]

    def __post_init__(self) -> None:
        column_ids = [c.id for c in self.columns]
        if len(set(column_ids)) != len(column_ids):
            msg = f"Duplicate column ids in {column_ids}"
            raise ValueError(msg)
        known = set(column_ids)
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                msg = f"Duplicate work item id: {item.id}"
                raise ValueError(msg)
            if item.id in known:
                msg = f"Work item id {item.id!r} collides with a column id"
                raise ValueError(msg)
            if item.category not in known:
                msg = f"Work item {item.id} has unknown category {item.category!r}. Valid: {', '.join(column_ids)}"
                raise ValueError(msg)
            seen.add(item.id)

    @property
    def category_ids(self) -> tuple[str, ...]:
        return tuple(c.id for c in self.columns)

    @classmethod
    def build(
        cls,
        items: Iterable[WorkItem | Mapping[str, Any]],
        columns: Iterable[Column | str | Mapping[str, Any]],
    ) -> BoardSnapshot:
        """Build a snapshot from loosely-typed inputs (dicts, bare column ids)."""
        cols: list[Column] = []
        for c in columns:
            if isinstance(c, Column):
                cols.append(c)
            elif isinstance(c, str):
                cols.append(Column(id=c))
            else:
                cols.append(Column(id=str(c["id"]), title=str(c.get("title", ""))))
        work = [i if isinstance(i, WorkItem) else WorkItem.from_mapping(i) for i in items]
        return cls(items=tuple(work), columns=tuple(cols))
