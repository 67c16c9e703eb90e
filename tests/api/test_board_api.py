"""Tests for the board web API."""

from __future__ import annotations

import sqlite3

import pytest
from httpx import AsyncClient

from swimlane.core import BoardDB


def _ids(db: BoardDB) -> dict[str, str]:
    return db._test_ids  # type: ignore[attr-defined]


def _column(board: dict, category: str) -> list[str]:
    for column in board["columns"]:
        if column["id"] == category:
            return [i["id"] for i in column["items"]]
    raise AssertionError(f"no column {category}")


class TestReadEndpoints:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "prefix": "test"}

    async def test_board(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.get("/api/board")
        assert resp.status_code == 200
        board = resp.json()
        assert board["total"] == 3
        assert _column(board, "todo") == [ids["a"], ids["b"]]
        assert _column(board, "in-progress") == []

    async def test_columns(self, client: AsyncClient) -> None:
        resp = await client.get("/api/columns")
        assert [c["id"] for c in resp.json()] == ["todo", "in-progress", "review", "done"]

    async def test_items_filtered(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.get("/api/items", params={"category": "done"})
        assert [i["id"] for i in resp.json()] == [_ids(dashboard_db)["c"]]

    async def test_item_detail(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.get(f"/api/item/{_ids(dashboard_db)['a']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Issue A"
        assert data["events"][0]["event_type"] == "created"

    async def test_item_not_found(self, client: AsyncClient) -> None:
        resp = await client.get("/api/item/test-000000")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ITEM_NOT_FOUND"

    async def test_events(self, client: AsyncClient) -> None:
        resp = await client.get("/api/events", params={"limit": "2"})
        assert resp.status_code == 200
        assert len(resp.json()) == 2

    async def test_events_bad_limit(self, client: AsyncClient) -> None:
        resp = await client.get("/api/events", params={"limit": "many"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestWriteEndpoints:
    async def test_create_item(self, client: AsyncClient) -> None:
        resp = await client.post("/api/items", json={"title": "New", "category": "review", "tags": "a, b"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["category"] == "review"
        assert data["tags"] == ["a", "b"]

    async def test_create_item_invalid(self, client: AsyncClient) -> None:
        resp = await client.post("/api/items", json={"title": ""})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_invalid_json(self, client: AsyncClient) -> None:
        resp = await client.post("/api/items", content=b"{nope", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    async def test_body_must_be_object(self, client: AsyncClient) -> None:
        resp = await client.post("/api/items", json=["title"])
        assert resp.status_code == 400

    async def test_bad_actor(self, client: AsyncClient) -> None:
        resp = await client.post("/api/items", json={"title": "x", "actor": "a\x00b"})
        assert resp.status_code == 400

    async def test_update_item(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.patch(f"/api/item/{_ids(dashboard_db)['b']}", json={"priority": "high"})
        assert resp.status_code == 200
        assert resp.json()["priority"] == "high"

    async def test_update_rejects_category(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.patch(f"/api/item/{_ids(dashboard_db)['b']}", json={"category": "done"})
        assert resp.status_code == 400

    async def test_update_missing(self, client: AsyncClient) -> None:
        resp = await client.patch("/api/item/test-000000", json={"title": "x"})
        assert resp.status_code == 404

    async def test_delete_item(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        item_id = _ids(dashboard_db)["b"]
        resp = await client.delete(f"/api/item/{item_id}")
        assert resp.status_code == 200
        assert (await client.get(f"/api/item/{item_id}")).status_code == 404

    async def test_add_column(self, client: AsyncClient) -> None:
        resp = await client.post("/api/columns", json={"id": "blocked", "title": "Blocked"})
        assert resp.status_code == 201
        assert resp.json() == {"id": "blocked", "title": "Blocked"}
        dup = await client.post("/api/columns", json={"id": "blocked"})
        assert dup.status_code == 400

    async def test_move_item(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post(f"/api/item/{ids['a']}/move", json={"category": "done", "order": 0})
        assert resp.status_code == 200
        board = (await client.get("/api/board")).json()
        assert _column(board, "done") == [ids["a"], ids["c"]]

    async def test_move_item_bad_order(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.post(f"/api/item/{_ids(dashboard_db)['a']}/move", json={"category": "done", "order": "1"})
        assert resp.status_code == 400


class TestDragEndpoint:
    async def test_drag_onto_item(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/board/drag", json={"item": ids["a"], "over": [ids["c"]], "drop": ids["c"]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["settlement"]["committed"] is True
        assert data["settlement"]["category"] == "done"
        assert _column(data["board"], "done") == [ids["a"], ids["c"]]
        assert _column(data["board"], "todo") == [ids["b"]]

    async def test_drag_to_empty_column(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/board/drag", json={"item": ids["b"], "drop": "in-progress"})
        assert _column(resp.json()["board"], "in-progress") == [ids["b"]]

    async def test_drag_cancel(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/board/drag", json={"item": ids["a"], "over": ["done"], "drop": None})
        assert resp.status_code == 200
        data = resp.json()
        assert data["settlement"]["cancelled"] is True
        assert _column(data["board"], "todo") == [ids["a"], ids["b"]]

    async def test_drag_unknown_item_lenient(self, client: AsyncClient) -> None:
        resp = await client.post("/api/board/drag", json={"item": "test-000000", "drop": "done"})
        assert resp.status_code == 200
        assert resp.json()["settlement"] is None

    async def test_drag_unknown_item_strict(self, strict_client: AsyncClient) -> None:
        resp = await strict_client.post("/api/board/drag", json={"item": "test-000000", "drop": "done"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "GESTURE_ERROR"

    async def test_drag_requires_item(self, client: AsyncClient) -> None:
        resp = await client.post("/api/board/drag", json={"drop": "done"})
        assert resp.status_code == 400

    async def test_drag_over_must_be_list(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        resp = await client.post("/api/board/drag", json={"item": _ids(dashboard_db)["a"], "over": "done"})
        assert resp.status_code == 400

    async def test_drag_records_actor(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        await client.post("/api/board/drag", json={"item": ids["a"], "drop": "review", "actor": "erin"})
        events = (await client.get("/api/events", params={"item": ids["a"]})).json()
        assert (events[0]["event_type"], events[0]["actor"]) == ("moved", "erin")

    async def test_drop_on_unhovered_item(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/board/drag", json={"item": ids["a"], "drop": ids["b"]})
        data = resp.json()
        assert data["settlement"]["order"] == 1
        assert _column(data["board"], "todo") == [ids["b"], ids["a"]]

    async def test_drag_commit_failure(
        self, client: AsyncClient, dashboard_db: BoardDB, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ids = _ids(dashboard_db)

        def locked(*args: object, **kwargs: object) -> None:
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(BoardDB, "move_item", locked)
        resp = await client.post("/api/board/drag", json={"item": ids["a"], "drop": "done"})
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "GESTURE_ERROR"
        assert error["message"] == "Commit failed: database is locked"
        assert error["details"] == {"item": ids["a"]}
        assert dashboard_db.get_item(ids["a"]).category == "todo"


class TestArchiveEndpoint:
    async def test_archive(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/items/archive", json={"ids": [ids["a"], ids["c"]], "actor": "erin"})
        assert resp.status_code == 200
        assert [(i["id"], i["archived"]) for i in resp.json()] == [(ids["a"], True), (ids["c"], True)]
        board = (await client.get("/api/board")).json()
        assert board["total"] == 1
        assert _column(board, "todo") == [ids["b"]]
        assert _column(board, "done") == []

    async def test_items_include_archived(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        await client.post("/api/items/archive", json={"ids": [ids["a"]]})
        visible = (await client.get("/api/items")).json()
        everything = (await client.get("/api/items", params={"archived": "true"})).json()
        assert ids["a"] not in [i["id"] for i in visible]
        assert ids["a"] in [i["id"] for i in everything]

    async def test_archive_unknown_id(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        resp = await client.post("/api/items/archive", json={"ids": [ids["a"], "test-000000"]})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ITEM_NOT_FOUND"
        assert not dashboard_db.get_item(ids["a"]).archived

    async def test_archive_requires_ids(self, client: AsyncClient) -> None:
        for body in ({}, {"ids": []}, {"ids": "x"}, {"ids": [1]}):
            resp = await client.post("/api/items/archive", json=body)
            assert resp.status_code == 400
            assert resp.json()["error"]["details"] == {"param": "ids"}

    async def test_archived_item_cannot_be_moved(self, client: AsyncClient, dashboard_db: BoardDB) -> None:
        ids = _ids(dashboard_db)
        await client.post("/api/items/archive", json={"ids": [ids["a"]]})
        resp = await client.post(f"/api/item/{ids['a']}/move", json={"category": "done"})
        assert resp.status_code == 400
        assert "archived" in resp.json()["error"]["message"]
