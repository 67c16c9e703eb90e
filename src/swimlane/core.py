"""Core database operations for the board.

Single source of truth for all SQLite operations. The CLI and the dashboard
both import from this module. No daemon and no sync, just direct SQLite with
WAL mode.

``BoardDB`` is the persistence side of a drag gesture: it produces the
``BoardSnapshot`` an engine starts from and records the moves the engine
commits (``move_item``). ``make_engine`` wires the two together.

Convention-based discovery: each project has a `.swimlane/` directory
containing `swimlane.db` (SQLite) and `config.json` (project prefix, version,
engine strictness).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, cast

from swimlane.board import BoardSnapshot, Column, WorkItem
from swimlane.engine import BoardEngine, CommitCallback
from swimlane.projection import board_view
from swimlane.types.board import BoardDict
from swimlane.types.core import EventRecord, ProjectConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

SWIMLANE_DIR_NAME = ".swimlane"
DB_FILENAME = "swimlane.db"
CONFIG_FILENAME = "config.json"


def find_swimlane_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .swimlane/ directory.

    Returns the .swimlane/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / SWIMLANE_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {SWIMLANE_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(swimlane_dir: Path) -> ProjectConfig:
    """Read .swimlane/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="swimlane", version=1, strict_gestures=False)
    config_path = swimlane_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
        return result
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults


def write_config(swimlane_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .swimlane/config.json."""
    config_path = swimlane_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS columns (
    id        TEXT PRIMARY KEY,
    title     TEXT NOT NULL DEFAULT '',
    position  INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category    TEXT NOT NULL REFERENCES columns(id),
    position    INTEGER NOT NULL DEFAULT 0,
    priority    TEXT NOT NULL DEFAULT 'medium',
    assignee    TEXT NOT NULL DEFAULT '',
    tags        TEXT NOT NULL DEFAULT '[]',
    due_date    TEXT,
    archived    INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_category ON items(category, position);

CREATE TABLE IF NOT EXISTS events (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id     TEXT NOT NULL,
    event_type  TEXT NOT NULL,
    actor       TEXT NOT NULL DEFAULT '',
    old_value   TEXT,
    new_value   TEXT,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_item ON events(item_id, created_at);
"""

CURRENT_SCHEMA_VERSION = 1

DEFAULT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("todo", "To Do"),
    ("in-progress", "In Progress"),
    ("review", "Review"),
    ("done", "Done"),
)

VALID_PRIORITIES = frozenset({"low", "medium", "high"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _validate_due_date(due_date: str | None) -> str | None:
    if due_date is None or due_date == "":
        return None
    try:
        date.fromisoformat(due_date[:10])
    except ValueError:
        msg = f"Invalid due date {due_date!r} (expected YYYY-MM-DD)"
        raise ValueError(msg) from None
    return due_date


def _validate_tags(tags: list[str] | tuple[str, ...]) -> list[str]:
    cleaned: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            msg = f"Tags must be non-empty strings, got {tag!r}"
            raise ValueError(msg)
        if tag.strip() not in cleaned:
            cleaned.append(tag.strip())
    return cleaned


class BoardDB:
    """Direct SQLite operations for one board. Importable by CLI and dashboard."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "swimlane",
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> BoardDB:
        """Create a BoardDB by discovering .swimlane/ from project_path (or cwd)."""
        swimlane_dir = find_swimlane_root(project_path)
        config = read_config(swimlane_dir)
        db = cls(swimlane_dir / DB_FILENAME, prefix=config.get("prefix", "swimlane"))
        db.initialize()
        return db

    def __enter__(self) -> BoardDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables and seed the default columns on a fresh database."""
        if self.get_schema_version() == 0:
            self.conn.executescript(SCHEMA_SQL)
            for position, (column_id, title) in enumerate(DEFAULT_COLUMNS):
                self.conn.execute(
                    "INSERT OR IGNORE INTO columns (id, title, position) VALUES (?, ?, ?)",
                    (column_id, title, position),
                )
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def reconnect(self, *, check_same_thread: bool) -> None:
        """Reopen the connection with a different thread-affinity setting."""
        self.close()
        self._check_same_thread = check_same_thread

    def _generate_unique_id(self) -> str:
        for _ in range(10):
            candidate = f"{self.prefix}-{uuid.uuid4().hex[:6]}"
            if self.conn.execute("SELECT 1 FROM items WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}-{uuid.uuid4().hex[:12]}"

    def _record_event(
        self,
        item_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None:
        self.conn.execute(
            "INSERT INTO events (item_id, event_type, actor, old_value, new_value, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (item_id, event_type, actor, old_value, new_value, _now_iso()),
        )

    # -- Columns -------------------------------------------------------------

    def list_columns(self) -> list[Column]:
        rows = self.conn.execute("SELECT id, title FROM columns ORDER BY position").fetchall()
        return [Column(id=r["id"], title=r["title"]) for r in rows]

    def add_column(self, column_id: str, title: str = "", *, position: int | None = None) -> Column:
        """Add a column at *position* (default: last). Raises ``ValueError`` on a bad or taken id."""
        column_id = column_id.strip()
        if not column_id:
            msg = "Column id cannot be empty"
            raise ValueError(msg)
        if self.conn.execute("SELECT 1 FROM columns WHERE id = ?", (column_id,)).fetchone() is not None:
            msg = f"Column already exists: {column_id}"
            raise ValueError(msg)
        if self.conn.execute("SELECT 1 FROM items WHERE id = ?", (column_id,)).fetchone() is not None:
            msg = f"Column id {column_id!r} collides with a work item id"
            raise ValueError(msg)
        ids = [c.id for c in self.list_columns()]
        slot = len(ids) if position is None else max(0, min(position, len(ids)))
        ids.insert(slot, column_id)
        try:
            self.conn.execute(
                "INSERT INTO columns (id, title, position) VALUES (?, ?, ?)",
                (column_id, title.strip(), slot),
            )
            for pos, cid in enumerate(ids):
                self.conn.execute("UPDATE columns SET position = ? WHERE id = ?", (pos, cid))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return Column(id=column_id, title=title.strip())

    def _require_column(self, category: str) -> None:
        if self.conn.execute("SELECT 1 FROM columns WHERE id = ?", (category,)).fetchone() is None:
            valid = ", ".join(c.id for c in self.list_columns())
            msg = f"Unknown column '{category}'. Valid columns: {valid}"
            raise ValueError(msg)

    # -- Items ---------------------------------------------------------------

    def _build_item(self, row: sqlite3.Row) -> WorkItem:
        return WorkItem(
            id=row["id"],
            category=row["category"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            assignee=row["assignee"],
            tags=tuple(json.loads(row["tags"] or "[]")),
            due_date=row["due_date"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            archived=bool(row["archived"]),
        )

    def create_item(
        self,
        title: str,
        *,
        category: str | None = None,
        description: str = "",
        priority: str = "medium",
        assignee: str = "",
        tags: list[str] | None = None,
        due_date: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if priority not in VALID_PRIORITIES:
            msg = f"Priority must be one of {', '.join(sorted(VALID_PRIORITIES))}, got {priority!r}"
            raise ValueError(msg)
        if category is None:
            columns = self.list_columns()
            if not columns:
                msg = "Board has no columns"
                raise ValueError(msg)
            category = columns[0].id
        self._require_column(category)
        clean_tags = _validate_tags(tags or [])
        due = _validate_due_date(due_date)

        item_id = self._generate_unique_id()
        now = _now_iso()
        row = self.conn.execute(
            "SELECT COALESCE(MAX(position) + 1, 0) AS next FROM items WHERE category = ? AND archived = 0", (category,)
        ).fetchone()
        try:
            self.conn.execute(
                "INSERT INTO items (id, title, description, category, position, priority, assignee, "
                "tags, due_date, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    item_id,
                    title.strip(),
                    description,
                    category,
                    row["next"],
                    priority,
                    assignee,
                    json.dumps(clean_tags),
                    due,
                    now,
                    now,
                ),
            )
            self._record_event(item_id, "created", actor=actor, new_value=category)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_item(item_id)

    def get_item(self, item_id: str) -> WorkItem:
        row = self.conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            msg = f"Work item not found: {item_id}"
            raise KeyError(msg)
        return self._build_item(row)

    def list_items(
        self,
        *,
        category: str | None = None,
        assignee: str | None = None,
        priority: str | None = None,
        include_archived: bool = False,
    ) -> list[WorkItem]:
        """Items in board order: column position, then position inside the column.

        Archived items are left out unless *include_archived* is set.
        """
        conditions: list[str] = [] if include_archived else ["i.archived = 0"]
        params: list[Any] = []
        if category is not None:
            conditions.append("i.category = ?")
            params.append(category)
        if assignee is not None:
            conditions.append("i.assignee = ?")
            params.append(assignee)
        if priority is not None:
            conditions.append("i.priority = ?")
            params.append(priority)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.conn.execute(
            f"SELECT i.* FROM items i JOIN columns c ON i.category = c.id{where} "
            "ORDER BY c.position, i.position, i.created_at",
            params,
        ).fetchall()
        return [self._build_item(r) for r in rows]

    def update_item(
        self,
        item_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        priority: str | None = None,
        assignee: str | None = None,
        tags: list[str] | None = None,
        due_date: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Update display fields. Column and order change only through ``move_item``."""
        current = self.get_item(item_id)

        # --- Validate all inputs BEFORE any writes to prevent partial commits ---
        if title is not None and not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if priority is not None and priority not in VALID_PRIORITIES:
            msg = f"Priority must be one of {', '.join(sorted(VALID_PRIORITIES))}, got {priority!r}"
            raise ValueError(msg)
        clean_tags = _validate_tags(tags) if tags is not None else None
        due = _validate_due_date(due_date) if due_date is not None else None

        updates: list[str] = []
        params: list[Any] = []
        changes: list[tuple[str, str, Any, Any]] = [
            ("title", "title_changed", current.title, title.strip() if title is not None else None),
            ("description", "description_changed", current.description, description),
            ("priority", "priority_changed", current.priority, priority),
            ("assignee", "assignee_changed", current.assignee, assignee),
        ]
        try:
            for column, event_type, old, new in changes:
                if new is not None and new != old:
                    self._record_event(item_id, event_type, actor=actor, old_value=old, new_value=new)
                    updates.append(f"{column} = ?")
                    params.append(new)
            if clean_tags is not None and tuple(clean_tags) != current.tags:
                self._record_event(
                    item_id,
                    "tags_changed",
                    actor=actor,
                    old_value=json.dumps(list(current.tags)),
                    new_value=json.dumps(clean_tags),
                )
                updates.append("tags = ?")
                params.append(json.dumps(clean_tags))
            if due_date is not None and due != current.due_date:
                self._record_event(item_id, "due_date_changed", actor=actor, old_value=current.due_date, new_value=due)
                updates.append("due_date = ?")
                params.append(due)

            if updates:
                updates.append("updated_at = ?")
                params.append(_now_iso())
                params.append(item_id)
                self.conn.execute(f"UPDATE items SET {', '.join(updates)} WHERE id = ?", params)
                self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_item(item_id)

    def delete_item(self, item_id: str, *, actor: str = "") -> None:
        current = self.get_item(item_id)
        try:
            self.conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            self._renumber(current.category)
            self._record_event(item_id, "deleted", actor=actor, old_value=current.title)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def _column_ids(self, category: str, *, exclude: str | None = None) -> list[str]:
        rows = self.conn.execute(
            "SELECT id FROM items WHERE category = ? AND id != ? AND archived = 0 ORDER BY position, created_at",
            (category, exclude or ""),
        ).fetchall()
        return [r["id"] for r in rows]

    def _renumber(self, category: str, ordered: list[str] | None = None) -> None:
        for pos, iid in enumerate(ordered if ordered is not None else self._column_ids(category)):
            self.conn.execute("UPDATE items SET position = ? WHERE id = ?", (pos, iid))

    def move_item(self, item_id: str, category: str, *, order: int | None = None, actor: str = "") -> WorkItem:
        """Put *item_id* into *category* at index *order* (default: last).

        *order* past the end of the column is clamped. Positions in the source
        and target columns are renumbered densely. Records a ``moved`` event
        on a column change and ``reordered`` on a pure reorder; a no-op move
        records nothing.
        """
        current = self.get_item(item_id)
        if current.archived:
            msg = f"Work item {item_id} is archived"
            raise ValueError(msg)
        self._require_column(category)
        if order is not None and order < 0:
            msg = f"Order must be >= 0, got {order}"
            raise ValueError(msg)

        old_slot = self._column_ids(current.category).index(item_id)
        siblings = self._column_ids(category, exclude=item_id)
        slot = len(siblings) if order is None else min(order, len(siblings))
        if category == current.category and slot == old_slot:
            return current

        siblings.insert(slot, item_id)
        try:
            self.conn.execute(
                "UPDATE items SET category = ?, updated_at = ? WHERE id = ?",
                (category, _now_iso(), item_id),
            )
            self._renumber(category, siblings)
            if category != current.category:
                self._renumber(current.category)
                self._record_event(item_id, "moved", actor=actor, old_value=current.category, new_value=category)
            else:
                self._record_event(item_id, "reordered", actor=actor, old_value=str(old_slot), new_value=str(slot))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Item moved", extra={"item": item_id, "category": category})
        return self.get_item(item_id)

    def archive_items(self, item_ids: list[str], *, actor: str = "") -> list[WorkItem]:
        """Archive *item_ids*, taking them off the board. Already archived items are skipped.

        Every id is checked before anything is written. The columns they leave
        are renumbered and each newly archived item gets an ``archived`` event.
        """
        current = [self.get_item(iid) for iid in dict.fromkeys(item_ids)]
        pending = [item for item in current if not item.archived]
        if pending:
            now = _now_iso()
            try:
                for item in pending:
                    self.conn.execute(
                        "UPDATE items SET archived = 1, updated_at = ? WHERE id = ?",
                        (now, item.id),
                    )
                    self._record_event(item.id, "archived", actor=actor, old_value=item.category)
                for category in dict.fromkeys(item.category for item in pending):
                    self._renumber(category)
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
            logger.info("Archived %d item(s)", len(pending))
        return [self.get_item(item.id) for item in current]

    # -- Board views ---------------------------------------------------------

    def snapshot(self) -> BoardSnapshot:
        """The board as the engine consumes it: items in board order plus columns."""
        return BoardSnapshot(items=tuple(self.list_items()), columns=tuple(self.list_columns()))

    def board(self) -> BoardDict:
        return board_view(self.list_items(), self.list_columns())

    def get_events(self, item_id: str | None = None, *, limit: int = 50) -> list[EventRecord]:
        """Events newest first, optionally for one item."""
        if item_id is not None:
            rows = self.conn.execute(
                "SELECT * FROM events WHERE item_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (item_id, limit),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM events ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])


# ---------------------------------------------------------------------------
# Engine wiring
# ---------------------------------------------------------------------------


def make_commit_handler(db: BoardDB, engine: BoardEngine, *, actor: str = "") -> CommitCallback:
    """Build the commit callback that persists a settled gesture to *db*.

    The engine is already idle when the callback runs, so its projection holds
    the final order; the item's index in its column is sent as the order hint.
    """

    def _commit(item_id: str, category: str) -> None:
        db.move_item(item_id, category, order=engine.column_position(item_id), actor=actor)

    return _commit


def make_engine(db: BoardDB, *, strict: bool = False, actor: str = "") -> BoardEngine:
    """Engine over *db*'s current snapshot that commits back into *db*."""
    engine = BoardEngine(db.snapshot(), strict=strict)
    engine.on_commit = make_commit_handler(db, engine, actor=actor)
    return engine
