import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import (
    BACKEND_HOST,
    BACKEND_PORT,
    PASSIVE_SCAN_ENABLED,
    QUEUE_POLL_INTERVAL,
    QUEUE_POLL_ERROR_DELAY,
)
from proxy.proxy_manager import ProxyManager
from api.events import ScanEvents
from api.routes import router, set_scan_queue
from api.websocket import ws_router, manager
from models.http import BaseRequest, HttpResponse, RequestLog
from scanner.active import ActiveScanner
from scanner.passive import run_passive_checks
from scanner.queue_manager import ScanQueueManager
from scanner.sender import HttpxSender
from storage.db import init_db, save_request_log, get_base_request

# ── Logging ────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

# ── Shared instances ───────────────────────────────────────────────
proxy = ProxyManager()
events = ScanEvents()
sender = HttpxSender()
scan_queue = ScanQueueManager(
    lookup=get_base_request,
    scanner=ActiveScanner(sender.send, events.issue_sink),
    on_status=events.status_listener,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start proxy, scan queue and pollers on boot, tear down on shutdown."""
    # mitmproxy imports happen in the proxy thread while the database initialises
    try:
        proxy.start()
    except Exception as e:
        log.error("failed to start proxy: %s", e)

    await init_db()
    log.info("database initialised")

    set_scan_queue(scan_queue)
    scan_queue.start()
    poll_task = asyncio.create_task(_poll_proxy_queue())
    events_task = asyncio.create_task(events.run(manager.broadcast))
    yield
    await asyncio.to_thread(proxy.stop)
    await scan_queue.stop()
    set_scan_queue(None)
    for task in (poll_task, events_task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await sender.aclose()


async def _handle_captured(entry: dict) -> None:
    """Store one captured exchange, broadcast it, then run the passive checks."""
    captured = RequestLog(**entry)
    captured = captured.model_copy(update={"id": await save_request_log(captured)})
    await manager.broadcast({"type": "request_log", "data": captured.model_dump()})
    if PASSIVE_SCAN_ENABLED:
        run_passive_checks(
            BaseRequest.from_log(captured),
            HttpResponse.from_log(captured),
            events.issue_sink,
        )


async def _poll_proxy_queue() -> None:
    """Move captured traffic from mitmproxy's thread-safe queue onto the event loop."""
    while True:
        try:
            for entry in proxy.drain():
                await _handle_captured(entry)
            await asyncio.sleep(QUEUE_POLL_INTERVAL)
        except asyncio.CancelledError:
            break
        except Exception as e:
            log.error("queue poll error: %s", e)
            await asyncio.sleep(QUEUE_POLL_ERROR_DELAY)


app = FastAPI(title="Endpoint Scanner", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.include_router(ws_router)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=BACKEND_HOST, port=BACKEND_PORT)


if __name__ == "__main__":
    run()
