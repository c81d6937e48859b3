"""
Tests for the httpx-backed sender, using httpx.MockTransport
"""
import httpx
import pytest

from scanner.errors import TransientDispatchError
from scanner.sender import SCAN_MARKER, HttpxSender


class TestHttpxSender:

    @pytest.mark.asyncio
    async def test_dispatches_mutated_request(self, make_request):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(
                201, headers={"Server": "nginx/1.25.3", "Content-Type": "text/html"}, text="<p>ok</p>",
            )

        sender = HttpxSender(transport=httpx.MockTransport(handler))
        request = make_request(
            "http://target.local/login?next=%2Fhome&q=a+b", method="POST",
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Host": "stale.example",
                "Content-Length": "999",
                "user-agent": "captured-agent",
                "Cookie": "session=abc",
            },
            body="user=alice&pass=%27",
        )

        response = await sender.send(request)
        await sender.aclose()

        sent = seen["request"]
        assert sent.method == "POST"
        assert sent.url.path == "/login"
        assert sent.url.params.multi_items() == [("next", "/home"), ("q", "a b")]
        assert sent.content == b"user=alice&pass=%27"
        assert sent.headers["x-ept-scan"] == SCAN_MARKER["x-ept-scan"]
        assert sent.headers["cookie"] == "session=abc"
        assert sent.headers["host"] == "target.local"
        assert sent.headers.get_list("user-agent") == ["captured-agent"]
        assert sent.headers["content-length"] == str(len(b"user=alice&pass=%27"))

        assert response.status_code == 201
        assert response.header("server") == "nginx/1.25.3"
        assert response.content_type == "text/html"
        assert response.body == "<p>ok</p>"

    @pytest.mark.asyncio
    async def test_default_headers_fill_gaps(self, make_request):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200)

        sender = HttpxSender(transport=httpx.MockTransport(handler))
        await sender.send(make_request("http://target.local/"))
        await sender.aclose()

        assert "Mozilla/5.0" in seen["headers"]["user-agent"]
        assert seen["headers"]["accept-language"] == "en-US,en;q=0.5"

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, make_request):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        sender = HttpxSender(transport=httpx.MockTransport(handler))
        with pytest.raises(TransientDispatchError):
            await sender.send(make_request("http://target.local/"))
        await sender.aclose()

    @pytest.mark.asyncio
    async def test_redirects_are_not_followed(self, make_request):
        def handler(request):
            return httpx.Response(302, headers={"Location": "http://target.local/elsewhere"})

        sender = HttpxSender(transport=httpx.MockTransport(handler))
        response = await sender.send(make_request("http://target.local/"))
        await sender.aclose()

        assert response.status_code == 302
        assert response.header("location") == "http://target.local/elsewhere"
