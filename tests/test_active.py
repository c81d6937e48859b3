"""
Unit tests for the active scan sweep
"""
from unittest.mock import AsyncMock

import pytest

from injectors.payloads import PayloadCategory
from models.finding import Severity
from models.http import HttpResponse
from scanner.active import ActiveScanner
from scanner.errors import TransientDispatchError, UnhandledSweepError

SQLI_ONLY = {PayloadCategory.SQLI: ("'",)}
SQL_ERROR = HttpResponse(status_code=500, body="You have an error in your SQL syntax")
CLEAN = HttpResponse(status_code=200, body="<html>ok</html>")


def _param_of(request, name):
    return next((p.value for p in request.query_params if p.name == name), None)


class TestActiveScanner:

    @pytest.mark.asyncio
    async def test_reports_issue_for_vulnerable_parameter(self, make_request):
        async def send(request):
            return SQL_ERROR if _param_of(request, "id") == "'" else CLEAN

        issues = []
        scanner = ActiveScanner(send, issues.append, catalog=SQLI_ONLY, throttle=0)
        base = make_request("http://target.local/item?id=7&lang=en", id="12")

        found = await scanner.scan(base, "scan-test")

        assert found == 1
        [issue] = issues
        assert issue.title == "SQL Injection Error in parameter: id"
        assert issue.severity is Severity.HIGH
        assert issue.affected_request_id == "12"
        assert "Affected Parameter: id" in issue.description
        assert "Payload: '" in issue.description
        assert "Original Request: GET http://target.local/item?id=7&lang=en" in issue.description

    @pytest.mark.asyncio
    async def test_appended_parameter_title(self, make_request):
        async def send(request):
            return SQL_ERROR if _param_of(request, "ept_probe_sqli") else CLEAN

        issues = []
        scanner = ActiveScanner(send, issues.append, catalog=SQLI_ONLY, throttle=0)
        await scanner.scan(make_request("http://target.local/"), "scan-test")

        assert [i.title for i in issues] == ["SQL Injection Error via new parameter: ept_probe_sqli"]

    @pytest.mark.asyncio
    async def test_form_and_json_titles(self, make_request):
        send = AsyncMock(return_value=SQL_ERROR)
        issues = []
        scanner = ActiveScanner(send, issues.append, catalog=SQLI_ONLY, throttle=0)

        form = make_request(
            "http://target.local/login", method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"}, body="user=a",
        )
        await scanner.scan(form, "scan-form")
        assert [i.title for i in issues] == [
            "SQL Injection Error via new parameter: ept_probe_sqli",
            "SQL Injection Error in FORM parameter: user",
            "SQL Injection Error via new FORM parameter: ept_probe_form_sqli",
        ]

        issues.clear()
        body = make_request(
            "http://target.local/api", method="POST",
            headers={"Content-Type": "application/json"}, body='{"name": "bob"}',
        )
        await scanner.scan(body, "scan-json")
        assert issues[-1].title == "SQL Injection Error in JSON key: name"

    @pytest.mark.asyncio
    async def test_transient_errors_do_not_stop_the_sweep(self, make_request):
        send = AsyncMock(side_effect=[TransientDispatchError("timeout"), SQL_ERROR, CLEAN])
        issues = []
        scanner = ActiveScanner(send, issues.append, catalog=SQLI_ONLY, throttle=0)

        found = await scanner.scan(make_request("http://target.local/?a=1&b=2"), "scan-test")

        assert send.await_count == 3
        assert found == 1
        assert issues[0].title.endswith("in parameter: b")

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, make_request):
        send = AsyncMock(side_effect=RuntimeError("boom"))
        scanner = ActiveScanner(send, lambda issue: None, catalog=SQLI_ONLY, throttle=0)

        with pytest.raises(UnhandledSweepError) as exc_info:
            await scanner.scan(make_request("http://target.local/?a=1"), "scan-x")
        assert exc_info.value.scan_id == "scan-x"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_one_request_at_a_time_with_throttle(self, make_request, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("scanner.active.asyncio.sleep", fake_sleep)
        send = AsyncMock(side_effect=[CLEAN, TransientDispatchError("reset"), CLEAN])
        scanner = ActiveScanner(send, lambda issue: None, catalog=SQLI_ONLY, throttle=0.5)

        await scanner.scan(make_request("http://target.local/?a=1&b=2"), "scan-test")

        # Throttle applies after every mutation, failed sends included
        assert sleeps == [0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_sink_failure_is_logged_not_raised(self, make_request):
        def broken_sink(issue):
            raise RuntimeError("sink down")

        scanner = ActiveScanner(AsyncMock(return_value=SQL_ERROR), broken_sink,
                                catalog=SQLI_ONLY, throttle=0)
        assert await scanner.scan(make_request("http://target.local/"), "scan-test") == 1
