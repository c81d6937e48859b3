"""
Tests for the push-only WebSocket channel
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import set_scan_queue
from api.websocket import ConnectionManager, ws_router
from models.scan import ScanJob, ScanStatus


@pytest.fixture
def ws_app():
    app = FastAPI()
    app.include_router(ws_router)
    yield app
    set_scan_queue(None)


def test_late_joiner_receives_active_scans(ws_app):
    job = ScanJob(scan_id="scan-abc", base_request_id="9",
                  base_request_url="http://shop.local/item?id=7", status=ScanStatus.RUNNING)
    queue = MagicMock()
    queue.snapshot.return_value = [job]
    set_scan_queue(queue)

    with TestClient(ws_app) as client, client.websocket_connect("/ws") as ws:
        message = ws.receive_json()

    assert message == {
        "type": "scan_status",
        "data": {
            "scan_id": "scan-abc",
            "status": "Running",
            "base_request_id": "9",
            "base_request_url": "http://shop.local/item?id=7",
        },
    }


@pytest.mark.asyncio
async def test_broadcast_drops_dead_clients():
    manager = ConnectionManager()
    alive, dead = MagicMock(), MagicMock()
    alive.send_json = AsyncMock()
    dead.send_json = AsyncMock(side_effect=RuntimeError("closed"))
    manager.clients = {alive, dead}

    await manager.broadcast({"type": "issue", "data": {}})

    alive.send_json.assert_awaited_once_with({"type": "issue", "data": {}})
    assert manager.clients == {alive}
