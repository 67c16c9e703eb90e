"""Fixtures for HTTP board API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import swimlane.dashboard as dash_module
from swimlane.core import BoardDB
from swimlane.dashboard import create_app


@pytest.fixture
def dashboard_db(populated_db: BoardDB) -> BoardDB:
    """Populated DB reconnected with check_same_thread=False for the ASGI app."""
    populated_db.reconnect(check_same_thread=False)
    return populated_db


@pytest.fixture
async def client(dashboard_db: BoardDB) -> AsyncIterator[AsyncClient]:
    """Test client backed by the populated board (lenient gestures)."""
    dash_module._db = dashboard_db
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None


@pytest.fixture
async def strict_client(dashboard_db: BoardDB) -> AsyncIterator[AsyncClient]:
    """Same board, with strict gesture checking enabled."""
    dash_module._db = dashboard_db
    dash_module._strict_gestures = True
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None
    dash_module._strict_gestures = False
