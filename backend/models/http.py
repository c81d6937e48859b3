from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import BaseModel, ConfigDict


def _lookup_header(headers: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return str(value)
    return None


class RequestLog(BaseModel):
    """Captured request/response pair as stored by the request log."""
    id: Optional[int] = None
    timestamp: str = ""
    method: str = ""
    url: str = ""
    host: str = ""
    path: str = ""
    request_headers: dict = {}
    request_body: str = ""
    status_code: int = 0
    response_headers: dict = {}
    response_body: str = ""
    content_type: str = ""
    duration_ms: float = 0.0


class QueryParam(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""


class BaseRequest(BaseModel):
    """Immutable snapshot of a request the scanner may mutate.

    ``url`` never carries a query string: query parameters live in
    ``query_params`` (ordered, names not unique) so that a single
    parameter can be swapped without touching the others.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    method: str = "GET"
    url: str
    headers: dict[str, str] = {}
    query_params: tuple[QueryParam, ...] = ()
    body: str = ""

    def header(self, name: str) -> Optional[str]:
        return _lookup_header(self.headers, name)

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").lower()

    @property
    def full_url(self) -> str:
        if not self.query_params:
            return self.url
        query = urlencode([(p.name, p.value) for p in self.query_params])
        return f"{self.url}?{query}"

    @classmethod
    def from_url(
        cls,
        url: str,
        method: str = "GET",
        headers: dict | None = None,
        body: str = "",
        id: str | None = None,
    ) -> "BaseRequest":
        """Split any query string embedded in *url* into ``query_params``."""
        parsed = urlparse(url)
        params = tuple(
            QueryParam(name=k, value=v)
            for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        )
        clean_url = urlunparse(parsed._replace(query="", fragment=""))
        return cls(
            id=id,
            method=method.upper() or "GET",
            url=clean_url,
            headers={str(k): str(v) for k, v in (headers or {}).items()},
            query_params=params,
            body=body or "",
        )

    @classmethod
    def from_log(cls, entry: RequestLog) -> "BaseRequest":
        return cls.from_url(
            entry.url,
            method=entry.method,
            headers=entry.request_headers,
            body=entry.request_body,
            id=str(entry.id) if entry.id is not None else None,
        )


class HttpResponse(BaseModel):
    """Response to an observed or dispatched request."""
    status_code: int = 0
    headers: dict[str, str] = {}
    body: str = ""

    def header(self, name: str) -> Optional[str]:
        return _lookup_header(self.headers, name)

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").lower()

    @classmethod
    def from_log(cls, entry: RequestLog) -> "HttpResponse":
        return cls(
            status_code=entry.status_code,
            headers={str(k): str(v) for k, v in entry.response_headers.items()},
            body=entry.response_body,
        )
