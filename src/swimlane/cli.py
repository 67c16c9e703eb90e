"""CLI for the swimlane board.

Convention-based: discovers .swimlane/ by walking up from cwd.

Usage:
    swimlane init                                   # Initialize .swimlane/ in cwd
    swimlane create "Fix the bug" --column todo     # Create a work item
    swimlane show <id>                              # Show item details
    swimlane list --column done                     # List items in board order
    swimlane update <id> --priority high            # Update display fields
    swimlane delete <id>                            # Delete an item
    swimlane archive <id> [<id>...]                 # Archive items (hidden from the board)
    swimlane board                                  # Print the board by column
    swimlane columns                                # List columns
    swimlane add-column blocked --title Blocked     # Add a column
    swimlane move <id> done --order 0               # Move directly (no gesture)
    swimlane drag <id> --over <id> --drop <id>      # Replay a drag gesture
    swimlane history [<id>]                         # Recent events
    swimlane dashboard                              # Web API on localhost
"""

from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

import click

from swimlane import __version__
from swimlane.cli_common import echo_json, fail, get_config, get_db
from swimlane.core import (
    DB_FILENAME,
    SWIMLANE_DIR_NAME,
    VALID_PRIORITIES,
    BoardDB,
    find_swimlane_root,
    make_engine,
    read_config,
    write_config,
)
from swimlane.engine import GestureProtocolError, InvalidReferenceError
from swimlane.gestures import replay_gesture
from swimlane.validation import sanitize_actor


def _missing(e: KeyError) -> str:
    return str(e.args[0]) if e.args else "not found"


@click.group()
@click.version_option(version=__version__, prog_name="swimlane")
@click.option("--actor", default="cli", help="Actor identity for the event log (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Swimlane — local Kanban board with drag-and-drop reordering."""
    cleaned, err = sanitize_actor(actor)
    if err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)
    ctx.ensure_object(dict)
    ctx.obj["actor"] = cleaned


@cli.command()
@click.option("--prefix", default=None, help="ID prefix for work items (default: directory name)")
@click.option("--strict", is_flag=True, help="Fail fast on invalid gesture calls instead of ignoring them")
def init(prefix: str | None, strict: bool) -> None:
    """Initialize .swimlane/ in the current directory."""
    cwd = Path.cwd()
    swimlane_dir = cwd / SWIMLANE_DIR_NAME

    if swimlane_dir.exists():
        click.echo(f"{SWIMLANE_DIR_NAME}/ already exists in {cwd}")
        config = read_config(swimlane_dir)
        with BoardDB(swimlane_dir / DB_FILENAME, prefix=config.get("prefix", "swimlane")) as db:
            db.initialize()
        return

    prefix = prefix or cwd.name
    swimlane_dir.mkdir()
    write_config(swimlane_dir, {"prefix": prefix, "version": 1, "strict_gestures": strict})

    with BoardDB(swimlane_dir / DB_FILENAME, prefix=prefix) as db:
        db.initialize()
        columns = ", ".join(c.id for c in db.list_columns())

    click.echo(f"Initialized {SWIMLANE_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix:   {prefix}")
    click.echo(f"  Columns:  {columns}")
    click.echo(f"  Database: {swimlane_dir / DB_FILENAME}")


@cli.command()
@click.argument("title")
@click.option("--column", "-c", default=None, help="Column id (default: first column)")
@click.option("--priority", "-p", default="medium", type=click.Choice(sorted(VALID_PRIORITIES)), help="Priority")
@click.option("--assignee", default="", help="Assignee")
@click.option("--description", "-d", default="", help="Description")
@click.option("--tag", "-t", multiple=True, help="Tag (repeatable)")
@click.option("--due", default=None, help="Due date (YYYY-MM-DD)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    column: str | None,
    priority: str,
    assignee: str,
    description: str,
    tag: tuple[str, ...],
    due: str | None,
    as_json: bool,
) -> None:
    """Create a work item at the bottom of a column."""
    with get_db() as db:
        try:
            item = db.create_item(
                title,
                category=column,
                description=description,
                priority=priority,
                assignee=assignee,
                tags=list(tag),
                due_date=due,
                actor=ctx.obj["actor"],
            )
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(item.to_dict())
        else:
            click.echo(f"Created {item.id}: {item.title} [{item.category}]")


@cli.command()
@click.argument("item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(item_id: str, as_json: bool) -> None:
    """Show work item details."""
    with get_db() as db:
        try:
            item = db.get_item(item_id)
        except KeyError:
            click.echo(f"Not found: {item_id}", err=True)
            sys.exit(1)

        if as_json:
            echo_json(item.to_dict())
            return

        click.echo(f"ID:       {item.id}")
        click.echo(f"Title:    {item.title}")
        click.echo(f"Column:   {item.category}")
        click.echo(f"Priority: {item.priority}")
        if item.assignee:
            click.echo(f"Assignee: {item.assignee}")
        if item.tags:
            click.echo(f"Tags:     {', '.join(item.tags)}")
        if item.due_date:
            click.echo(f"Due:      {item.due_date}")
        click.echo(f"Created:  {item.created_at}")
        if item.description:
            click.echo(f"\n--- Description ---\n{item.description}")


@cli.command("list")
@click.option("--column", "-c", default=None, help="Filter by column")
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--priority", "-p", default=None, type=click.Choice(sorted(VALID_PRIORITIES)), help="Filter by priority")
@click.option("--archived", "include_archived", is_flag=True, help="Include archived items")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_items(
    column: str | None, assignee: str | None, priority: str | None, include_archived: bool, as_json: bool
) -> None:
    """List work items in board order."""
    with get_db() as db:
        items = db.list_items(
            category=column, assignee=assignee, priority=priority, include_archived=include_archived
        )
        if as_json:
            echo_json([i.to_dict() for i in items])
            return
        for item in items:
            click.echo(f"{item.id}  [{item.category}] {item.priority:<6} {item.title}")
        click.echo(f"\n{len(items)} item(s)")


@cli.command()
@click.argument("item_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--priority", "-p", default=None, type=click.Choice(sorted(VALID_PRIORITIES)), help="New priority")
@click.option("--assignee", default=None, help="New assignee")
@click.option("--tag", "-t", multiple=True, help="Replace tags (repeatable)")
@click.option("--due", default=None, help="New due date (YYYY-MM-DD, empty string to clear)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    item_id: str,
    title: str | None,
    description: str | None,
    priority: str | None,
    assignee: str | None,
    tag: tuple[str, ...],
    due: str | None,
    as_json: bool,
) -> None:
    """Update display fields of a work item. Use 'move' or 'drag' to change its column."""
    with get_db() as db:
        try:
            item = db.update_item(
                item_id,
                title=title,
                description=description,
                priority=priority,
                assignee=assignee,
                tags=list(tag) if tag else None,
                due_date=due,
                actor=ctx.obj["actor"],
            )
        except KeyError as e:
            fail(_missing(e), as_json=as_json)
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(item.to_dict())
        else:
            click.echo(f"Updated {item.id}: {item.title}")


@cli.command()
@click.argument("item_id")
@click.pass_context
def delete(ctx: click.Context, item_id: str) -> None:
    """Delete a work item."""
    with get_db() as db:
        try:
            db.delete_item(item_id, actor=ctx.obj["actor"])
        except KeyError as e:
            fail(_missing(e), as_json=False)
        click.echo(f"Deleted {item_id}")


@cli.command()
@click.argument("item_ids", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def archive(ctx: click.Context, item_ids: tuple[str, ...], as_json: bool) -> None:
    """Archive work items, taking them off the board."""
    with get_db() as db:
        try:
            items = db.archive_items(list(item_ids), actor=ctx.obj["actor"])
        except KeyError as e:
            fail(_missing(e), as_json=as_json)
        if as_json:
            echo_json([i.to_dict() for i in items])
            return
        for item in items:
            click.echo(f"Archived {item.id}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def board(as_json: bool) -> None:
    """Print the board, one column after another."""
    with get_db() as db:
        view = db.board()
    if as_json:
        echo_json(view)
        return
    for column in view["columns"]:
        click.echo(f"== {column['title']} ({column['count']})")
        if not column["items"]:
            click.echo("   (empty)")
        for n, item in enumerate(column["items"]):
            click.echo(f"   {n}. {item['id']}  {item['title']}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def columns(as_json: bool) -> None:
    """List board columns in layout order."""
    with get_db() as db:
        cols = db.list_columns()
    if as_json:
        echo_json([c.to_dict() for c in cols])
        return
    for col in cols:
        click.echo(f"{col.id:<14} {col.label}")


@cli.command("add-column")
@click.argument("column_id")
@click.option("--title", default="", help="Display title")
@click.option("--position", default=None, type=int, help="Insert position (default: last)")
def add_column(column_id: str, title: str, position: int | None) -> None:
    """Add a column to the board."""
    with get_db() as db:
        try:
            col = db.add_column(column_id, title, position=position)
        except ValueError as e:
            fail(str(e), as_json=False)
    click.echo(f"Added column {col.id}: {col.label}")


@cli.command()
@click.argument("item_id")
@click.argument("column")
@click.option("--order", default=None, type=int, help="Index inside the column (default: last)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def move(ctx: click.Context, item_id: str, column: str, order: int | None, as_json: bool) -> None:
    """Move a work item into a column without a gesture."""
    with get_db() as db:
        try:
            item = db.move_item(item_id, column, order=order, actor=ctx.obj["actor"])
        except KeyError as e:
            fail(_missing(e), as_json=as_json)
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(item.to_dict())
        else:
            click.echo(f"Moved {item.id} to {item.category}")


@cli.command()
@click.argument("item_id")
@click.option("--over", "overs", multiple=True, help="Item or column hovered during the drag (repeatable, in order)")
@click.option("--drop", default=None, help="Item or column released over")
@click.option("--cancel", is_flag=True, help="Release over nothing (cancels the gesture)")
@click.option("--strict", is_flag=True, help="Fail fast on invalid ids (also enabled by strict_gestures in config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def drag(
    ctx: click.Context,
    item_id: str,
    overs: tuple[str, ...],
    drop: str | None,
    cancel: bool,
    strict: bool,
    as_json: bool,
) -> None:
    """Replay a drag gesture through the reordering engine and persist the result.

    Without --drop or --cancel the item is released over the last --over
    target, or over itself when there is none.
    """
    if cancel and drop is not None:
        fail("--drop and --cancel are mutually exclusive", as_json=as_json)
    strict = strict or bool(get_config().get("strict_gestures", False))
    _setup_project_logging()

    target: str | None = None
    if not cancel:
        target = drop if drop is not None else (overs[-1] if overs else item_id)

    with get_db() as db:
        engine = make_engine(db, strict=strict, actor=ctx.obj["actor"])
        try:
            settlement = replay_gesture(engine, item_id, overs, target)
        except (InvalidReferenceError, GestureProtocolError) as e:
            fail(_missing(e) if isinstance(e, KeyError) else str(e), as_json=as_json)
        except (KeyError, ValueError, sqlite3.Error) as e:
            # Commit rejected: the engine already settled; reload what is actually stored.
            engine.reset(db.snapshot())
            fail(f"commit failed: {_missing(e) if isinstance(e, KeyError) else e}", as_json=as_json)

        if settlement is None:
            fail(f"Gesture ignored for {item_id}", as_json=as_json)
        if as_json:
            echo_json({"settlement": settlement.to_dict(), "board": db.board()})
        elif settlement.cancelled:
            click.echo(f"Cancelled: {item_id} stays in {settlement.category}")
        elif settlement.committed:
            click.echo(f"Dropped {item_id} into {settlement.category} at position {settlement.order}")
        else:
            click.echo(f"No change for {item_id}")


@cli.command()
@click.argument("item_id", required=False)
@click.option("--limit", default=20, type=int, help="Max events (default 20)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(item_id: str | None, limit: int, as_json: bool) -> None:
    """Show recent events, optionally for one item."""
    with get_db() as db:
        events = db.get_events(item_id, limit=limit)
    if as_json:
        echo_json(events)
        return
    for ev in events:
        change = ""
        if ev["old_value"] is not None or ev["new_value"] is not None:
            change = f" {ev['old_value'] or ''} -> {ev['new_value'] or ''}"
        actor = f" by {ev['actor']}" if ev["actor"] else ""
        click.echo(f"{ev['created_at']}  {ev['item_id']}  {ev['event_type']}{change}{actor}")


@cli.command()
@click.option("--port", default=8377, type=int, help="Port (default 8377)")
@click.option("--no-browser", is_flag=True, help="Do not open a browser")
def dashboard(port: int, no_browser: bool) -> None:
    """Launch the board web API (requires swimlane[dashboard])."""
    try:
        from swimlane.dashboard import main as dashboard_main
    except ImportError:
        click.echo('Dashboard requires extra dependencies. Install with: pip install "swimlane[dashboard]"', err=True)
        sys.exit(1)
    dashboard_main(port=port, no_browser=no_browser)


def _setup_project_logging() -> None:
    from swimlane.logging import setup_logging

    try:
        setup_logging(find_swimlane_root())
    except FileNotFoundError:
        pass  # get_db() reports the missing project


if __name__ == "__main__":
    cli()
