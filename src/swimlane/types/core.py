"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .swimlane/config.json."""

    prefix: str
    name: str
    version: int
    strict_gestures: bool


class WorkItemDict(TypedDict):
    id: str
    title: str
    category: str
    description: str
    priority: str
    assignee: str
    tags: list[str]
    due_date: str | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    archived: bool


class ColumnDict(TypedDict):
    id: str
    title: str


class EventRecord(TypedDict):
    """Row from the events table (SELECT * FROM events)."""

    id: int
    item_id: str
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    created_at: ISOTimestamp
