import logging

import httpx

from config import DEFAULT_HEADERS, PROXY_HOST, PROXY_PORT, SCAN_DEFAULT_TIMEOUT, SCAN_VIA_PROXY
from models.http import BaseRequest, HttpResponse
from scanner.errors import TransientDispatchError

log = logging.getLogger(__name__)

# Headers managed by httpx; sending them alongside httpx's own values
# can produce duplicates that confuse servers / reverse proxies
_DROP_HEADERS = frozenset({
    "host", "content-length", "transfer-encoding", "connection",
    "accept-encoding",
})

# Marker header so the capture addon skips logging scan traffic
SCAN_MARKER = {"x-ept-scan": "1"}


class HttpxSender:
    """HTTP-send collaborator: dispatches one mutated request over httpx.

    The client is created lazily and reused across sends; call
    :meth:`aclose` on shutdown.
    """

    def __init__(
        self,
        timeout: float = SCAN_DEFAULT_TIMEOUT,
        via_proxy: bool = SCAN_VIA_PROXY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._proxy = f"http://{PROXY_HOST}:{PROXY_PORT}" if via_proxy and transport is None else None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=False,
                timeout=self._timeout,
                proxy=self._proxy,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    @staticmethod
    def _prepare_headers(request: BaseRequest) -> dict[str, str]:
        # Defaults go under the captured headers; captured ones win
        captured = {k.lower() for k in request.headers}
        headers = {k: v for k, v in DEFAULT_HEADERS.items() if k.lower() not in captured}
        headers.update(request.headers)
        headers = {k: v for k, v in headers.items() if k.lower() not in _DROP_HEADERS}
        headers.update(SCAN_MARKER)
        return headers

    async def send(self, request: BaseRequest) -> HttpResponse:
        client = self._get_client()
        params = [(p.name, p.value) for p in request.query_params]
        log.debug("-> %s %s", request.method, request.full_url)
        try:
            # Always content= (raw body) so the captured Content-Type is used as-is
            resp = await client.request(
                request.method,
                request.url,
                params=params or None,
                headers=self._prepare_headers(request),
                content=request.body.encode("utf-8") if request.body else None,
            )
        except httpx.HTTPError as e:
            raise TransientDispatchError(f"{request.method} {request.url}: {e}") from e
        return HttpResponse(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            body=resp.text,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
