"""
Centralised configuration, all tunables in one place.
Override via environment variables where noted.
"""

import os
from pathlib import Path

# ── Network ────────────────────────────────────────────────────────
PROXY_HOST = os.getenv("PROXY_HOST", "127.0.0.1")
PROXY_PORT = int(os.getenv("PROXY_PORT", "8080"))
BACKEND_HOST = os.getenv("BACKEND_HOST", "127.0.0.1")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))

# ── Storage ────────────────────────────────────────────────────────
DB_PATH = Path(os.getenv("DB_PATH", str(Path(__file__).parent / "storage" / "scanner.db")))
ISSUE_LIST_LIMIT = 500

# ── Proxy / Capture ───────────────────────────────────────────────
PROXY_QUEUE_MAX = 10_000
LOG_BODY_CAP = 50_000          # max chars stored per request/response body
LOG_OPTIONS_REQUESTS = False   # set True to capture OPTIONS (CORS preflight) requests

# ── Polling ────────────────────────────────────────────────────────
QUEUE_POLL_INTERVAL = 0.05     # seconds between proxy-queue drain cycles
QUEUE_POLL_ERROR_DELAY = 0.1

# ── Passive scanning ──────────────────────────────────────────────
PASSIVE_SCAN_ENABLED = os.getenv("PASSIVE_SCAN_ENABLED", "1") == "1"

# ── Active scanning ───────────────────────────────────────────────
PLUGIN_ID = "endpoint-scanner"
MAX_CONCURRENT_SCANS = int(os.getenv("MAX_CONCURRENT_SCANS", "5"))
REQUEST_THROTTLE = float(os.getenv("REQUEST_THROTTLE", "0.5"))   # seconds after every dispatch
SCAN_DEFAULT_TIMEOUT = 10.0    # seconds per request
SCAN_VIA_PROXY = os.getenv("SCAN_VIA_PROXY", "1") == "1"

# ── Default request headers ──────────────────────────────────────
# Applied under the captured request's own headers on every scan request.
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
