"""Swimlane — local Kanban board with a drag-and-drop reordering engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("swimlane")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from swimlane.board import BoardSnapshot, Column, WorkItem
from swimlane.core import BoardDB
from swimlane.engine import BoardEngine, Settlement
from swimlane.projection import project_columns

__all__ = [
    "BoardDB",
    "BoardEngine",
    "BoardSnapshot",
    "Column",
    "Settlement",
    "WorkItem",
    "__version__",
    "project_columns",
]
