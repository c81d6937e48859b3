"""
Issue sink + status channel for the host.

The scanning core reports through plain synchronous callbacks.  They only
enqueue; one consumer task persists issues and broadcasts everything, in
the order it was reported.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from models.finding import Issue
from models.scan import StatusUpdate
from storage.db import save_issue

log = logging.getLogger(__name__)

Broadcast = Callable[[dict], Awaitable[None]]


class ScanEvents:
    """Buffers issues and status updates between the core and the UI."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()

    def issue_sink(self, issue: Issue) -> None:
        self._queue.put_nowait(issue)

    def status_listener(self, update: StatusUpdate) -> None:
        self._queue.put_nowait(update)

    async def _dispatch(self, event, broadcast: Broadcast) -> None:
        if isinstance(event, Issue):
            issue_id = await save_issue(event)
            data = event.model_dump(mode="json")
            data["id"] = issue_id
            await broadcast({"type": "issue", "data": data})
        else:
            await broadcast({"type": "scan_status", "data": event.model_dump(mode="json")})

    async def run(self, broadcast: Broadcast) -> None:
        """Consume events forever; cancel to stop."""
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event, broadcast)
            except Exception as e:
                log.error("event dispatch error: %s", e)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._queue.join()
