"""Web API for the swimlane board.

Single-project local server. A module-level ``_db`` is set at startup (or by
test fixtures) and injected via ``Depends(_get_db)``.

Drag gestures posted to ``/api/board/drag`` are replayed through a fresh
``BoardEngine`` built from the stored snapshot, with the database as the
commit collaborator, so the HTTP surface and the CLI settle moves the same way.

Usage:
    swimlane dashboard                    # Opens browser at localhost:8377
    swimlane dashboard --port 9000        # Custom port
    swimlane dashboard --no-browser       # Skip auto-open
"""

from __future__ import annotations

import logging
import sqlite3
import webbrowser
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from swimlane.core import (
    DB_FILENAME,
    BoardDB,
    find_swimlane_root,
    make_engine,
    read_config,
)
from swimlane.engine import GestureProtocolError, InvalidReferenceError
from swimlane.gestures import replay_gesture
from swimlane.types.board import DragResultDict
from swimlane.validation import parse_drop_target, sanitize_actor, split_tags

DEFAULT_PORT = 8377

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: BoardDB | None = None
_strict_gestures = False


def _get_db() -> BoardDB:
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _actor_from(body: dict[str, Any]) -> str | JSONResponse:
    actor, err = sanitize_actor(body.get("actor", "dashboard"))
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400)
    return actor


def _optional_int(body: dict[str, Any], name: str) -> int | None | JSONResponse:
    value = body.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return _error_response(f"{name} must be an integer or null", "VALIDATION_ERROR", 400, {"param": name})
    return value


def _not_found(e: KeyError) -> JSONResponse:
    return _error_response(str(e.args[0]) if e.args else "Not found", "ITEM_NOT_FOUND", 404)


# ---------------------------------------------------------------------------
# Board router
# ---------------------------------------------------------------------------


def _create_board_router() -> Any:
    """Build the APIRouter containing the board, column, item and event endpoints."""
    from fastapi import APIRouter, Depends, Request
    from fastapi.responses import JSONResponse

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    router = APIRouter()

    # NOTE: handlers are async despite synchronous SQLite I/O so that DB access
    # stays serialized on the event loop thread.

    @router.get("/board")
    async def api_board(db: BoardDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse(db.board())

    @router.get("/columns")
    async def api_columns(db: BoardDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([c.to_dict() for c in db.list_columns()])

    @router.post("/columns")
    async def api_add_column(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        column_id = body.get("id")
        if not isinstance(column_id, str):
            return _error_response("id is required and must be a string", "VALIDATION_ERROR", 400)
        title = body.get("title", "")
        if not isinstance(title, str):
            return _error_response("title must be a string", "VALIDATION_ERROR", 400)
        position = _optional_int(body, "position")
        if isinstance(position, JSONResponse):
            return position
        try:
            column = db.add_column(column_id, title, position=position)
        except ValueError as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(column.to_dict(), status_code=201)

    @router.get("/items")
    async def api_items(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        params = request.query_params
        items = db.list_items(
            category=params.get("category"),
            assignee=params.get("assignee"),
            priority=params.get("priority"),
            include_archived=params.get("archived", "").lower() in ("1", "true"),
        )
        return JSONResponse([i.to_dict() for i in items])

    @router.post("/items")
    async def api_create_item(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor_from(body)
        if isinstance(actor, JSONResponse):
            return actor
        title = body.get("title", "")
        if not isinstance(title, str):
            return _error_response("title must be a string", "VALIDATION_ERROR", 400)
        try:
            item = db.create_item(
                title,
                category=body.get("category"),
                description=body.get("description", ""),
                priority=body.get("priority", "medium"),
                assignee=body.get("assignee", ""),
                tags=split_tags(body.get("tags")),
                due_date=body.get("due_date"),
                actor=actor,
            )
        except (ValueError, TypeError) as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(item.to_dict(), status_code=201)

    @router.post("/items/archive")
    async def api_archive_items(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        """Archive ``{"ids": [...]}``. Unknown ids fail the whole request."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor_from(body)
        if isinstance(actor, JSONResponse):
            return actor
        ids = body.get("ids")
        if not isinstance(ids, list) or not ids or not all(isinstance(i, str) for i in ids):
            return _error_response("ids must be a non-empty list of ids", "VALIDATION_ERROR", 400, {"param": "ids"})
        try:
            items = db.archive_items(ids, actor=actor)
        except KeyError as e:
            return _not_found(e)
        return JSONResponse([i.to_dict() for i in items])

    @router.get("/item/{item_id}")
    async def api_item_detail(item_id: str, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        try:
            item = db.get_item(item_id)
        except KeyError as e:
            return _not_found(e)
        data: dict[str, Any] = dict(item.to_dict())
        data["events"] = db.get_events(item_id, limit=20)
        return JSONResponse(data)

    @router.patch("/item/{item_id}")
    async def api_update_item(item_id: str, request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor_from(body)
        if isinstance(actor, JSONResponse):
            return actor
        if "category" in body or "status" in body:
            return _error_response(
                "Column changes go through /move or /api/board/drag",
                "VALIDATION_ERROR",
                400,
                {"param": "category"},
            )
        try:
            item = db.update_item(
                item_id,
                title=body.get("title"),
                description=body.get("description"),
                priority=body.get("priority"),
                assignee=body.get("assignee"),
                tags=split_tags(body.get("tags")),
                due_date=body.get("due_date"),
                actor=actor,
            )
        except KeyError as e:
            return _not_found(e)
        except (ValueError, TypeError) as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(item.to_dict())

    @router.delete("/item/{item_id}")
    async def api_delete_item(item_id: str, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        try:
            db.delete_item(item_id, actor="dashboard")
        except KeyError as e:
            return _not_found(e)
        return JSONResponse({"deleted": item_id})

    @router.post("/item/{item_id}/move")
    async def api_move_item(item_id: str, request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        """Direct move with an explicit column and order, bypassing the gesture engine."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor_from(body)
        if isinstance(actor, JSONResponse):
            return actor
        category = body.get("category")
        if not isinstance(category, str) or not category:
            return _error_response("category is required", "VALIDATION_ERROR", 400, {"param": "category"})
        order = _optional_int(body, "order")
        if isinstance(order, JSONResponse):
            return order
        try:
            item = db.move_item(item_id, category, order=order, actor=actor)
        except KeyError as e:
            return _not_found(e)
        except ValueError as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(item.to_dict())

    @router.post("/board/drag")
    async def api_drag(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        """Replay one gesture: ``{"item": id, "over": [ids...], "drop": id | null}``.

        ``drop: null`` releases over nothing and cancels. Unknown ids are
        ignored by a lenient engine and rejected with 409 by a strict one.
        """
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor_from(body)
        if isinstance(actor, JSONResponse):
            return actor
        item_id = body.get("item")
        if not isinstance(item_id, str) or not item_id:
            return _error_response("item is required", "VALIDATION_ERROR", 400, {"param": "item"})
        overs = body.get("over", [])
        if not isinstance(overs, list) or not all(isinstance(o, str) for o in overs):
            return _error_response("over must be a list of ids", "VALIDATION_ERROR", 400, {"param": "over"})
        drop, err = parse_drop_target(body.get("drop"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400, {"param": "drop"})

        engine = make_engine(db, strict=_strict_gestures, actor=actor)
        try:
            settlement = replay_gesture(engine, item_id, overs, drop)
        except (InvalidReferenceError, GestureProtocolError) as e:
            message = str(e.args[0]) if e.args else type(e).__name__
            return _error_response(message, "GESTURE_ERROR", 409, {"item": item_id})
        except (KeyError, ValueError, sqlite3.Error) as e:
            engine.reset(db.snapshot())
            logger.error("Drag commit failed", extra={"item": item_id, "error": str(e)})
            return _error_response(f"Commit failed: {e}", "GESTURE_ERROR", 409, {"item": item_id})

        result = DragResultDict(
            settlement=settlement.to_dict() if settlement is not None else None,
            board=db.board(),
        )
        return JSONResponse(result)

    @router.get("/events")
    async def api_events(request: Request, db: BoardDB = Depends(_get_db)) -> JSONResponse:
        raw = request.query_params.get("limit", "50")
        try:
            limit = int(raw)
        except ValueError:
            return _error_response(
                f'Invalid value for limit: "{raw}". Must be an integer.', "VALIDATION_ERROR", 400
            )
        if limit < 1:
            return _error_response(f"Invalid value for limit: {limit}. Must be >= 1.", "VALIDATION_ERROR", 400)
        return JSONResponse(db.get_events(request.query_params.get("item"), limit=limit))

    return router


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app() -> Any:
    """Create the FastAPI application with all board endpoints."""
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse

    app = FastAPI(title="Swimlane Board", docs_url=None, redoc_url=None)
    app.include_router(_create_board_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "prefix": _db.prefix if _db is not None else ""})

    return app


def main(port: int = DEFAULT_PORT, *, no_browser: bool = False) -> None:
    """Start the board server for the project discovered from cwd."""
    import threading

    import uvicorn

    from swimlane.logging import setup_logging

    global _db, _strict_gestures

    swimlane_dir = find_swimlane_root()
    setup_logging(swimlane_dir)
    config = read_config(swimlane_dir)
    _strict_gestures = bool(config.get("strict_gestures", False))
    _db = BoardDB(
        swimlane_dir / DB_FILENAME,
        prefix=config.get("prefix", "swimlane"),
        check_same_thread=False,
    )
    _db.initialize()

    app = create_app()

    if not no_browser:
        threading.Timer(0.5, lambda: webbrowser.open(f"http://localhost:{port}/api/board")).start()

    print(f"Swimlane board API: http://localhost:{port}")
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
