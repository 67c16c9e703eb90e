"""Shared pytest fixtures for swimlane tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from swimlane.board import BoardSnapshot, Column, WorkItem
from swimlane.core import DB_FILENAME, SWIMLANE_DIR_NAME, BoardDB, write_config

COLUMNS = (Column("todo", "To Do"), Column("in-progress", "In Progress"), Column("done", "Done"))


@pytest.fixture
def columns() -> tuple[Column, ...]:
    return COLUMNS


@pytest.fixture
def snapshot() -> BoardSnapshot:
    """A, B in todo; C in done; in-progress empty."""
    return BoardSnapshot(
        items=(
            WorkItem("A", "todo", title="Task A"),
            WorkItem("B", "todo", title="Task B"),
            WorkItem("C", "done", title="Task C"),
        ),
        columns=COLUMNS,
    )


@pytest.fixture
def db(tmp_path: Path) -> Generator[BoardDB, None, None]:
    """Fresh BoardDB (default columns) for each test."""
    d = BoardDB(tmp_path / "swimlane.db", prefix="test")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def populated_db(db: BoardDB) -> BoardDB:
    """BoardDB pre-populated with a small board.

    Creates:
    - todo: A, B (in that order)
    - in-progress: (empty)
    - review: (empty)
    - done: C
    """
    a = db.create_item("Issue A", category="todo", priority="high", tags=["bug"])
    b = db.create_item("Issue B", category="todo")
    c = db.create_item("Issue C", category="done", priority="low")
    db._test_ids: dict[str, str] = {"a": a.id, "b": b.id, "c": c.id}  # type: ignore[attr-defined]
    return db


@pytest.fixture
def swimlane_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a swimlane project (.swimlane/ with config + db).

    Returns the project root (parent of .swimlane/).
    """
    swimlane_dir = tmp_path / SWIMLANE_DIR_NAME
    swimlane_dir.mkdir()
    write_config(swimlane_dir, {"prefix": "proj", "version": 1, "strict_gestures": False})

    d = BoardDB(swimlane_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
