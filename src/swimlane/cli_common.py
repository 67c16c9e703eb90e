"""Shared CLI helpers.

Provides ``get_db()`` and ``get_config()`` so that command modules can reach
the project database without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from swimlane.core import (
    DB_FILENAME,
    SWIMLANE_DIR_NAME,
    BoardDB,
    find_swimlane_root,
    read_config,
)
from swimlane.types.core import ProjectConfig


def get_db() -> BoardDB:
    """Discover .swimlane/ and return an initialized BoardDB."""
    try:
        swimlane_dir = find_swimlane_root()
    except FileNotFoundError:
        click.echo(f"No {SWIMLANE_DIR_NAME}/ found. Run 'swimlane init' first.", err=True)
        sys.exit(1)
    config = read_config(swimlane_dir)
    db = BoardDB(swimlane_dir / DB_FILENAME, prefix=config.get("prefix", "swimlane"))
    db.initialize()
    return db


def get_config() -> ProjectConfig:
    """Config of the discovered project (defaults when there is none)."""
    try:
        return read_config(find_swimlane_root())
    except FileNotFoundError:
        return ProjectConfig(prefix="swimlane", version=1, strict_gestures=False)


def fail(message: str, *, as_json: bool) -> NoReturn:
    """Report *message* in the requested format and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def echo_json(payload: Any) -> None:
    click.echo(json_mod.dumps(payload, indent=2, default=str))
