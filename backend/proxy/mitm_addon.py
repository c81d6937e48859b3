import logging
import queue
import time
from datetime import datetime, timezone
from itertools import count

from mitmproxy import http

from config import LOG_BODY_CAP, LOG_OPTIONS_REQUESTS

log = logging.getLogger(__name__)

# Set by the scan sender on every mutated request
SCAN_MARKER_HEADER = "x-ept-scan"


def _message_text(message: http.Message, undecodable: str) -> str:
    try:
        return (message.get_text(strict=False) or "")[:LOG_BODY_CAP]
    except ValueError:
        return undecodable


def build_log_entry(flow: http.HTTPFlow, duration_ms: float = 0.0) -> dict:
    """Flatten a finished flow into the request_logs row shape (no id yet)."""
    request, response = flow.request, flow.response
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "url": request.pretty_url,
        "host": request.host,
        "path": request.path,
        "request_headers": dict(request.headers),
        "request_body": _message_text(request, ""),
        "status_code": response.status_code,
        "response_headers": dict(response.headers),
        "response_body": _message_text(response, "<binary content>"),
        "content_type": response.headers.get("content-type", ""),
        "duration_ms": duration_ms,
    }


class CaptureAddon:
    """mitmproxy addon: every observed exchange goes onto *log_queue*.

    Runs on the proxy thread.  Scanner traffic (marked by the sender) is
    forwarded with the marker removed but never captured; passive checks
    happen later on the backend's event loop.
    """

    def __init__(self, log_queue: queue.Queue) -> None:
        self.log_queue = log_queue
        self._seq = count(1)

    async def request(self, flow: http.HTTPFlow) -> None:
        if SCAN_MARKER_HEADER in flow.request.headers:
            del flow.request.headers[SCAN_MARKER_HEADER]
            flow.metadata["is_scan"] = True
        flow.metadata["flow_seq"] = next(self._seq)
        flow.metadata["started"] = time.monotonic()

    def _should_capture(self, flow: http.HTTPFlow) -> bool:
        if flow.metadata.get("is_scan") or flow.response is None:
            return False
        return LOG_OPTIONS_REQUESTS or flow.request.method != "OPTIONS"

    async def response(self, flow: http.HTTPFlow) -> None:
        if not self._should_capture(flow):
            return
        started = flow.metadata.get("started")
        elapsed = round((time.monotonic() - started) * 1000, 2) if started else 0.0
        entry = build_log_entry(flow, elapsed)
        try:
            self.log_queue.put_nowait(entry)
        except queue.Full:
            log.warning("capture queue full, dropping flow #%s (%s)",
                        flow.metadata.get("flow_seq"), entry["url"])
