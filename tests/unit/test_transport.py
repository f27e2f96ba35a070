"""
Tests for the HTTP transport and SSE line parsing.
"""

import asyncio

import httpx
import pytest

from model_gateway.core.transport import (
    HttpTransport,
    extract_error_message,
    parse_sse_line,
    redact_headers,
)


async def collect(events):
    return [event async for event in events]


class TestParseSseLine:
    """Test single-line SSE decoding."""

    def test_data_line(self):
        event = parse_sse_line('data: {"a": 1}')
        assert event.ok
        assert event.data == {"a": 1}

    def test_done_sentinel_skipped(self):
        assert parse_sse_line("data: [DONE]") is None

    def test_non_data_lines_skipped(self):
        assert parse_sse_line("event: message_start") is None
        assert parse_sse_line("") is None
        assert parse_sse_line(": keep-alive") is None

    def test_malformed_json_is_non_fatal_error(self):
        event = parse_sse_line("data: {not json")
        assert not event.ok
        assert not event.fatal
        assert "JSON parse error" in event.error


class TestErrorMessages:
    """Test human-readable failure messages."""

    def test_prefers_nested_error_message(self):
        response = httpx.Response(400, json={"error": {"message": "bad model"}, "message": "outer"})
        assert extract_error_message(response) == "bad model"

    def test_falls_back_to_top_level_message(self):
        response = httpx.Response(400, json={"message": "quota exhausted"})
        assert extract_error_message(response) == "quota exhausted"

    def test_falls_back_to_status_line(self):
        response = httpx.Response(503, text="<html>down</html>")
        assert extract_error_message(response) == "HTTP 503: Service Unavailable"

    def test_redacts_credentials(self):
        headers = redact_headers({"Authorization": "Bearer sk", "x-api-key": "k", "Accept": "json"})
        assert headers["Authorization"] == "[REDACTED]"
        assert headers["x-api-key"] == "[REDACTED]"
        assert headers["Accept"] == "json"


class TestRequest:
    """Test non-streaming requests."""

    @pytest.mark.asyncio
    async def test_success_returns_json(self, json_vendor):
        vendor = json_vendor({"ok": True})
        result = await vendor.transport().request("https://vendor.test/x", body={"q": 1})

        assert result.ok
        assert result.status == 200
        assert result.data == {"ok": True}
        assert vendor.last.method == "POST"
        assert vendor.last.headers["Content-Type"] == "application/json"
        assert vendor.last_json() == {"q": 1}

    @pytest.mark.asyncio
    async def test_error_status_is_tagged_not_raised(self, json_vendor):
        vendor = json_vendor({"error": {"message": "invalid x-api-key"}}, status_code=401)
        result = await vendor.transport().request("https://vendor.test/x")

        assert not result.ok
        assert result.status == 401
        assert result.error == "invalid x-api-key"
        assert not result.aborted

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, vendor):
        fake = vendor(lambda request: httpx.Response(200, text="not json"))
        result = await fake.transport().request("https://vendor.test/x")

        assert not result.ok
        assert result.status == 200
        assert "Invalid JSON" in result.error

    @pytest.mark.asyncio
    async def test_network_failure(self, vendor):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await vendor(handler).transport().request("https://vendor.test/x")
        assert not result.ok
        assert result.status is None
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_abort(self, vendor):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        transport = vendor(handler).transport(timeout=0.05)
        result = await transport.request("https://vendor.test/x")

        assert not result.ok
        assert result.aborted
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, json_vendor):
        vendor = json_vendor({})
        cancel = asyncio.Event()
        cancel.set()

        result = await vendor.transport().request("https://vendor.test/x", cancel=cancel)
        assert result.aborted
        assert result.error == "Request was cancelled"
        assert vendor.requests == []


class TestStream:
    """Test SSE streaming."""

    @pytest.mark.asyncio
    async def test_events_then_terminal(self, stream_vendor):
        vendor = stream_vendor({"n": 1}, {"n": 2})
        events = await collect(vendor.transport().stream("https://vendor.test/s"))

        assert [e.data for e in events[:-1]] == [{"n": 1}, {"n": 2}]
        assert events[-1].done
        assert sum(1 for e in events if e.done) == 1

    @pytest.mark.asyncio
    async def test_malformed_line_does_not_end_stream(self, stream_vendor):
        vendor = stream_vendor({"n": 1}, "{broken", {"n": 2})
        events = await collect(vendor.transport().stream("https://vendor.test/s"))

        assert events[0].data == {"n": 1}
        assert not events[1].ok and not events[1].fatal
        assert events[2].data == {"n": 2}
        assert events[3].done

    @pytest.mark.asyncio
    async def test_error_status_yields_one_fatal_element(self, json_vendor):
        vendor = json_vendor({"error": {"message": "overloaded"}}, status_code=529)
        events = await collect(vendor.transport().stream("https://vendor.test/s"))

        assert len(events) == 1
        assert events[0].fatal
        assert events[0].status == 529
        assert events[0].error == "overloaded"

    @pytest.mark.asyncio
    async def test_cancel_stops_without_terminal(self, stream_vendor):
        vendor = stream_vendor({"n": 1}, {"n": 2}, {"n": 3})
        cancel = asyncio.Event()

        events = []
        async for event in vendor.transport().stream("https://vendor.test/s", cancel=cancel):
            events.append(event)
            cancel.set()

        assert len(events) == 1
        assert events[0].data == {"n": 1}
        assert not any(e.done for e in events)

    @pytest.mark.asyncio
    async def test_each_call_issues_a_new_request(self, stream_vendor):
        vendor = stream_vendor({"n": 1})
        transport = vendor.transport()

        await collect(transport.stream("https://vendor.test/s"))
        await collect(transport.stream("https://vendor.test/s"))
        assert len(vendor.requests) == 2

    def test_default_timeout(self):
        assert HttpTransport().timeout == 30.0
