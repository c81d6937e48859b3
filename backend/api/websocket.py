import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.routes import get_scan_queue

log = logging.getLogger(__name__)
ws_router = APIRouter()


class ConnectionManager:
    """Fan-out of backend events to every connected UI client.

    Messages are ``{"type": "request_log" | "issue" | "scan_status", "data": {...}}``.
    """

    def __init__(self) -> None:
        self.clients: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.add(websocket)
        log.info("ws client connected (%d total)", len(self.clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)
        log.info("ws client disconnected (%d total)", len(self.clients))

    async def broadcast(self, message: dict) -> None:
        clients = list(self.clients)
        if not clients:
            return
        results = await asyncio.gather(
            *(client.send_json(message) for client in clients),
            return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                self.disconnect(client)


manager = ConnectionManager()


async def _replay_active_scans(websocket: WebSocket) -> None:
    # Late joiners get the current Queued/Running rows to upsert by scan_id
    queue = get_scan_queue()
    if queue is None:
        return
    for job in queue.snapshot():
        await websocket.send_json({"type": "scan_status", "data": job.to_update().model_dump(mode="json")})


@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await manager.connect(websocket)
    try:
        await _replay_active_scans(websocket)
        while True:
            # push-only; inbound frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
