"""
Scan queue: deduplicating, concurrency-bounded scheduler for active scans.

All job state lives on one ScanQueueManager and is only touched from the
event loop, between awaits.  A single scheduler task waits on a
work-available event that is set after every submit and every terminal
transition, then starts queued jobs (FIFO) until the running ceiling is
reached or nothing is queued.

There is no per-job cancellation: a running job ends when its sweep ends.
Timeouts belong to the sender; a send that never returns keeps its job
Running and its slot reserved.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Optional

from config import MAX_CONCURRENT_SCANS
from models.http import BaseRequest
from models.scan import ScanJob, ScanStatus, StatusUpdate
from scanner.active import ActiveScanner
from scanner.errors import RequestNotFoundError

log = logging.getLogger(__name__)

RequestLookup = Callable[[str], Awaitable[Optional[BaseRequest]]]
StatusListener = Callable[[StatusUpdate], None]


def _new_scan_id() -> str:
    return f"scan-{uuid.uuid4().hex[:12]}"


class ScanQueueManager:
    """Owns the active job set and the running counter."""

    def __init__(
        self,
        lookup: RequestLookup,
        scanner: ActiveScanner,
        max_concurrent: int = MAX_CONCURRENT_SCANS,
        on_status: StatusListener | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._lookup = lookup
        self._scanner = scanner
        self._max_concurrent = max_concurrent
        self._on_status = on_status

        self._jobs: list[ScanJob] = []   # active set, submission order
        self._running = 0
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._scheduler_task: asyncio.Task | None = None
        self._job_tasks: set[asyncio.Task] = set()
        self._closed = False

    # ── Introspection ─────────────────────────────────────────────────

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def running_count(self) -> int:
        return self._running

    @property
    def queued_count(self) -> int:
        return sum(1 for job in self._jobs if job.status is ScanStatus.QUEUED)

    def snapshot(self) -> list[ScanJob]:
        """Copies of the active jobs, oldest first."""
        return [job.model_copy() for job in self._jobs]

    def get_job(self, scan_id: str) -> ScanJob | None:
        return next((job for job in self._jobs if job.scan_id == scan_id), None)

    def find_active(self, base_request_id: str) -> ScanJob | None:
        for job in self._jobs:
            if job.base_request_id == base_request_id and job.is_active:
                return job
        return None

    # ── Public API ────────────────────────────────────────────────────

    def submit(self, base_request_id: str, base_request_url: str | None = None) -> str:
        """Queue a scan for *base_request_id*; idempotent while one is active.

        Must be called from the running event loop.
        """
        existing = self.find_active(base_request_id)
        if existing is not None:
            log.info("scan for request %s already %s as %s, skipping",
                     base_request_id, existing.status.value, existing.scan_id)
            return existing.scan_id

        job = ScanJob(
            scan_id=_new_scan_id(),
            base_request_id=base_request_id,
            base_request_url=base_request_url,
        )
        self._jobs.append(job)
        self._idle.clear()
        log.info("queued scan %s for request %s", job.scan_id, base_request_id)
        self._emit(job)
        self._signal()
        return job.scan_id

    async def on_scan_requested(self, request_id: str) -> str:
        """Active trigger: resolve *request_id*, then submit it."""
        base = await self._lookup(request_id)
        if base is None:
            raise RequestNotFoundError(request_id)
        # Aliases of one row ("7", "07") dedup under the canonical id
        return self.submit(base.id or request_id, base.full_url)

    def start(self) -> None:
        """Start the scheduler loop (no-op if already running)."""
        if self._closed:
            return
        if self._scheduler_task is None or self._scheduler_task.done():
            self._scheduler_task = asyncio.create_task(
                self._scheduler_loop(), name="scan-scheduler",
            )

    async def stop(self) -> None:
        """Host shutdown: stop scheduling and abandon running sweeps."""
        self._closed = True
        tasks = list(self._job_tasks)
        if self._scheduler_task is not None:
            tasks.append(self._scheduler_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._scheduler_task = None
        # Tasks cancelled before their first step never reach _execute's finally
        for job in [j for j in self._jobs if j.status is ScanStatus.RUNNING]:
            self._finish(job, ScanStatus.ERROR)

    async def join(self) -> None:
        """Wait until the active set is empty."""
        await self._idle.wait()

    # ── Scheduling ────────────────────────────────────────────────────

    def _signal(self) -> None:
        if self._closed:
            return
        self._wakeup.set()
        self.start()

    async def _scheduler_loop(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            while self._tick():
                pass

    def _tick(self) -> bool:
        """Start the oldest queued job if a slot is free.  Returns False when idle."""
        if self._running >= self._max_concurrent:
            return False
        job = next((j for j in self._jobs if j.status is ScanStatus.QUEUED), None)
        if job is None:
            return False

        self._running += 1
        job.advance(ScanStatus.RUNNING)
        log.info("starting scan %s for request %s. running scans: %d",
                 job.scan_id, job.base_request_id, self._running)
        self._emit(job)

        task = asyncio.create_task(self._execute(job), name=job.scan_id)
        self._job_tasks.add(task)
        task.add_done_callback(self._job_tasks.discard)
        return True

    async def _execute(self, job: ScanJob) -> None:
        outcome = ScanStatus.ERROR
        try:
            base = await self._lookup(job.base_request_id)
            if base is None:
                raise RequestNotFoundError(job.base_request_id)
            await self._scanner.scan(base, job.scan_id)
            outcome = ScanStatus.COMPLETED
        except RequestNotFoundError as e:
            log.error("[%s] %s, marking as Error", job.scan_id, e)
        except Exception:
            log.exception("[%s] scan failed", job.scan_id)
        finally:
            self._finish(job, outcome)

    def _finish(self, job: ScanJob, outcome: ScanStatus) -> None:
        job.advance(outcome)
        self._emit(job)
        self._jobs.remove(job)
        self._running -= 1
        if not self._jobs:
            self._idle.set()
        log.info("finished scan %s (%s). running scans: %d, queue length: %d",
                 job.scan_id, outcome.value, self._running, len(self._jobs))
        self._signal()

    def _emit(self, job: ScanJob) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(job.to_update())
        except Exception:
            log.exception("status listener failed for %s", job.scan_id)
