import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from injectors.analyzer import ANALYZERS
from scanner.errors import RequestNotFoundError
from scanner.queue_manager import ScanQueueManager
from storage.db import (
    get_request_logs,
    get_request_log_by_id,
    clear_request_logs,
    get_issues,
    clear_issues,
)

log = logging.getLogger(__name__)
router = APIRouter()

# Set by main.py on startup
_scan_queue: ScanQueueManager | None = None


def set_scan_queue(queue: ScanQueueManager | None) -> None:
    global _scan_queue
    _scan_queue = queue


def get_scan_queue() -> ScanQueueManager | None:
    return _scan_queue


def _queue_unavailable() -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": "Scan queue not running"})


# ──────────────────────────── Health ────────────────────────────────


@router.get("/health")
async def health():
    return {"status": "ok"}


# ──────────────────────────── Captured traffic ──────────────────────


@router.get("/logs")
async def list_logs(
    limit: int = 500,
    method: str = None,
    host: str = None,
    search: str = None,
):
    return await get_request_logs(
        limit=limit, method_filter=method, host_filter=host, search=search,
    )


@router.get("/logs/{log_id}")
async def get_log(log_id: int):
    entry = await get_request_log_by_id(log_id)
    if not entry:
        return JSONResponse(status_code=404, content={"error": "Log not found"})
    return entry


@router.delete("/logs")
async def delete_logs():
    await clear_request_logs()
    return {"ok": True}


# ──────────────────────────── Active scanning ───────────────────────


@router.post("/scan/{request_id}")
async def start_scan(request_id: str):
    """Queue an active scan of a captured request (idempotent while queued/running)."""
    queue = get_scan_queue()
    if queue is None:
        return _queue_unavailable()
    try:
        scan_id = await queue.on_scan_requested(request_id)
    except RequestNotFoundError:
        log.error("scan requested for unknown request %s", request_id)
        return JSONResponse(status_code=404, content={"error": f"Request {request_id} not found"})
    job = queue.get_job(scan_id)
    return {
        "scan_id": scan_id,
        "status": job.status.value if job else None,
        "base_request_id": job.base_request_id if job else request_id,
    }


@router.get("/scan/queue")
async def scan_queue():
    queue = get_scan_queue()
    if queue is None:
        return _queue_unavailable()
    return {
        "max_concurrent": queue.max_concurrent,
        "running": queue.running_count,
        "queued": queue.queued_count,
        "jobs": [job.model_dump(mode="json") for job in queue.snapshot()],
    }


@router.get("/payloads")
async def list_payloads():
    return [
        {
            "category": injector.name,
            "description": injector.description,
            "payloads": list(injector.get_payloads()),
        }
        for injector in ANALYZERS.values()
    ]


# ──────────────────────────── Issues ────────────────────────────────


@router.get("/issues")
async def list_issues(limit: int = 500, request_id: str = None):
    return await get_issues(limit=limit, request_id=request_id)


@router.delete("/issues")
async def delete_issues():
    await clear_issues()
    return {"ok": True}
