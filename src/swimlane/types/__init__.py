# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, engine.py, or the outer surfaces.
"""Typed return-value contracts for swimlane core and API layers."""

from __future__ import annotations

from swimlane.types.board import (
    BoardDict,
    ColumnViewDict,
    DragResultDict,
    SettlementDict,
)
from swimlane.types.core import (
    ColumnDict,
    EventRecord,
    ISOTimestamp,
    ProjectConfig,
    WorkItemDict,
)

__all__ = [
    "BoardDict",
    "ColumnDict",
    "ColumnViewDict",
    "DragResultDict",
    "EventRecord",
    "ISOTimestamp",
    "ProjectConfig",
    "SettlementDict",
    "WorkItemDict",
]
