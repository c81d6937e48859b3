"""
Tests for the issue sink / status channel consumer
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from api.events import ScanEvents
from models.finding import Confidence, Issue, Severity
from models.scan import ScanStatus, StatusUpdate
from storage.db import get_issues, init_db


@pytest.mark.asyncio
async def test_events_are_persisted_and_broadcast_in_order(tmp_db):
    await init_db()
    events = ScanEvents()
    broadcast = AsyncMock()
    consumer = asyncio.create_task(events.run(broadcast))

    events.status_listener(StatusUpdate(scan_id="scan-1", status=ScanStatus.RUNNING, base_request_id="3"))
    events.issue_sink(Issue(
        timestamp="2024-01-01T00:00:00+00:00",
        plugin_id="endpoint-scanner",
        title="SQL Injection Error in parameter: id",
        severity=Severity.HIGH,
        confidence=Confidence.FIRM,
        affected_request_id="3",
    ))
    events.status_listener(StatusUpdate(scan_id="scan-1", status=ScanStatus.COMPLETED, base_request_id="3"))

    await asyncio.wait_for(events.drain(), 2)
    consumer.cancel()

    messages = [call.args[0] for call in broadcast.await_args_list]
    assert [m["type"] for m in messages] == ["scan_status", "issue", "scan_status"]
    assert messages[0]["data"]["status"] == "Running"
    assert messages[1]["data"]["severity"] == "high"
    assert messages[1]["data"]["id"] is not None

    stored = await get_issues(request_id="3")
    assert [i["title"] for i in stored] == ["SQL Injection Error in parameter: id"]


@pytest.mark.asyncio
async def test_dispatch_errors_do_not_stop_the_consumer(tmp_db):
    await init_db()
    events = ScanEvents()
    broadcast = AsyncMock(side_effect=[RuntimeError("socket gone"), None])
    consumer = asyncio.create_task(events.run(broadcast))

    for status in (ScanStatus.RUNNING, ScanStatus.ERROR):
        events.status_listener(StatusUpdate(scan_id="scan-2", status=status, base_request_id="4"))

    await asyncio.wait_for(events.drain(), 2)
    consumer.cancel()
    assert broadcast.await_count == 2
