"""
Tests for the mitmproxy capture addon and the proxy queue drain
"""
import queue

import pytest
from mitmproxy.test import tflow

from proxy.mitm_addon import CaptureAddon, SCAN_MARKER_HEADER
from proxy.proxy_manager import ProxyManager


class TestCaptureAddon:

    @pytest.mark.asyncio
    async def test_observed_exchange_is_queued(self):
        log_queue = queue.Queue()
        addon = CaptureAddon(log_queue)
        flow = tflow.tflow(resp=True)

        await addon.request(flow)
        await addon.response(flow)

        entry = log_queue.get_nowait()
        assert entry["method"] == flow.request.method
        assert entry["url"] == flow.request.pretty_url
        assert entry["host"] == flow.request.host
        assert entry["status_code"] == flow.response.status_code
        assert entry["response_body"] == flow.response.get_text()
        assert "id" not in entry
        assert entry["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_scan_traffic_is_forwarded_unmarked_and_not_captured(self):
        log_queue = queue.Queue()
        addon = CaptureAddon(log_queue)
        flow = tflow.tflow(resp=True)
        flow.request.headers[SCAN_MARKER_HEADER] = "1"

        await addon.request(flow)
        await addon.response(flow)

        assert SCAN_MARKER_HEADER not in flow.request.headers
        assert log_queue.empty()

    @pytest.mark.asyncio
    async def test_options_requests_skipped(self):
        log_queue = queue.Queue()
        addon = CaptureAddon(log_queue)
        flow = tflow.tflow(resp=True)
        flow.request.method = "OPTIONS"

        await addon.request(flow)
        await addon.response(flow)

        assert log_queue.empty()

    @pytest.mark.asyncio
    async def test_full_queue_drops_entry(self, caplog):
        log_queue = queue.Queue(maxsize=1)
        log_queue.put_nowait({"url": "earlier"})
        addon = CaptureAddon(log_queue)
        flow = tflow.tflow(resp=True)

        await addon.request(flow)
        await addon.response(flow)

        assert log_queue.qsize() == 1
        assert "capture queue full" in caplog.text


class TestProxyManagerDrain:

    def test_drain_respects_limit(self):
        proxy = ProxyManager()
        for i in range(5):
            proxy.log_queue.put_nowait({"n": i})

        assert [e["n"] for e in proxy.drain(limit=3)] == [0, 1, 2]
        assert [e["n"] for e in proxy.drain()] == [3, 4]
        assert proxy.drain() == []
        assert not proxy.running
