"""
HTTP transport shared by all adapters.

Executes requests with a fixed timeout and reads Server-Sent-Events
bodies into a lazy sequence of parsed JSON fragments. Neither entry
point raises: callers receive tagged results.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, AsyncIterator

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

_SECRET_HEADERS = {"authorization", "x-api-key", "x-goog-api-key", "api-key"}


@dataclass(frozen=True)
class TransportResult:
    """Outcome of a non-streaming request."""
    ok: bool
    status: Optional[int] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    aborted: bool = False
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class StreamEvent:
    """
    One element of a streaming body.

    ``done`` marks the single terminal element of a cleanly completed
    stream. ``fatal`` errors end the sequence; non-fatal errors (a line
    that failed to parse) are followed by further elements.
    """
    ok: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    done: bool = False
    fatal: bool = False
    status: Optional[int] = None
    aborted: bool = False
    retry_after: Optional[float] = None


class RequestCancelled(Exception):
    """Internal signal that the caller's cancel event fired."""


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of headers with credentials masked, for logging."""
    return {
        k: ("[REDACTED]" if k.lower() in _SECRET_HEADERS else v)
        for k, v in headers.items()
    }


def extract_error_message(response: httpx.Response) -> str:
    """
    Human-readable message for a non-success response.

    Prefers a vendor ``error.message`` field, then a top-level
    ``message``, falling back to the status line.
    """
    message = f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        data = response.json()
    except (ValueError, httpx.ResponseNotRead):
        return message

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return message


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header; None when absent or a date."""
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


async def _race(awaitable, cancel: Optional[asyncio.Event], timeout: Optional[float]):
    """
    Await ``awaitable`` unless ``cancel`` fires or ``timeout`` elapses first.

    Raises:
        RequestCancelled: the cancel event was set
        asyncio.TimeoutError: the timeout elapsed
    """
    if cancel is not None and cancel.is_set():
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        raise RequestCancelled()

    task = asyncio.ensure_future(awaitable)
    if cancel is None:
        return await asyncio.wait_for(task, timeout)

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done and waiter not in done:
            return task.result()
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif not task.cancelled():
            # Cancellation wins over a result that arrived in the same step
            task.exception()
        if waiter in done:
            raise RequestCancelled()
        raise asyncio.TimeoutError()
    finally:
        waiter.cancel()


class HttpTransport:
    """
    Bounded-timeout HTTP execution over httpx.

    A short-lived ``httpx.AsyncClient`` is opened per call, so the
    transport holds no connection state between requests. ``transport``
    lets tests inject an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    @staticmethod
    def _headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        return {"Content-Type": "application/json", **(headers or {})}

    async def request(
        self,
        url: str,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TransportResult:
        """
        Execute a request and decode the JSON body.

        Args:
            url: Absolute request URL
            method: HTTP method
            headers: Extra headers (Content-Type is always JSON)
            body: JSON body, omitted when None
            cancel: Optional external cancellation signal

        Returns:
            Tagged result; never raises for transport failures
        """
        headers = self._headers(headers)
        logger.debug(f"{method} {url} headers={redact_headers(headers)}")

        async with self._client() as client:
            try:
                response = await _race(
                    client.request(method, url, headers=headers, json=body),
                    cancel,
                    self.timeout,
                )
            except RequestCancelled:
                return TransportResult(ok=False, error="Request was cancelled", aborted=True)
            except asyncio.TimeoutError:
                return TransportResult(
                    ok=False,
                    error=f"Request timed out after {self.timeout:g}s",
                    aborted=True,
                )
            except httpx.TimeoutException as e:
                return TransportResult(ok=False, error=f"Request timed out: {e}", aborted=True)
            except httpx.HTTPError as e:
                return TransportResult(ok=False, error=str(e) or e.__class__.__name__)

        logger.debug(f"{method} {url} -> {response.status_code}")

        if not response.is_success:
            return TransportResult(
                ok=False,
                status=response.status_code,
                error=extract_error_message(response),
                retry_after=parse_retry_after(response),
            )

        try:
            data = response.json()
        except ValueError as e:
            return TransportResult(
                ok=False,
                status=response.status_code,
                error=f"Invalid JSON in response: {e}",
            )
        return TransportResult(ok=True, status=response.status_code, data=data)

    async def stream(
        self,
        url: str,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Execute a request and lazily parse its SSE body.

        Each ``data:`` line is decoded as JSON; the ``[DONE]`` sentinel and
        non-data lines are skipped. The sequence ends with one ``done``
        element on clean completion. On cancellation it stops without a
        terminal element; on a connection failure it yields one fatal
        error element and stops. Each call issues a new request.
        """
        headers = self._headers(headers)
        logger.debug(f"{method} {url} (stream) headers={redact_headers(headers)}")

        async with self._client() as client:
            http_request = client.build_request(method, url, headers=headers, json=body)
            try:
                response = await _race(
                    client.send(http_request, stream=True),
                    cancel,
                    self.timeout,
                )
            except RequestCancelled:
                return
            except asyncio.TimeoutError:
                yield StreamEvent(
                    ok=False,
                    error=f"Request timed out after {self.timeout:g}s",
                    fatal=True,
                    aborted=True,
                )
                return
            except httpx.HTTPError as e:
                yield StreamEvent(ok=False, error=str(e) or e.__class__.__name__, fatal=True)
                return

            try:
                if not response.is_success:
                    await response.aread()
                    yield StreamEvent(
                        ok=False,
                        error=extract_error_message(response),
                        fatal=True,
                        status=response.status_code,
                        retry_after=parse_retry_after(response),
                    )
                    return

                lines = response.aiter_lines()
                while True:
                    try:
                        line = await _race(lines.__anext__(), cancel, None)
                    except StopAsyncIteration:
                        break
                    except RequestCancelled:
                        logger.debug(f"Stream from {url} cancelled")
                        return
                    except httpx.HTTPError as e:
                        yield StreamEvent(
                            ok=False,
                            error=f"Stream aborted: {e or e.__class__.__name__}",
                            fatal=True,
                            aborted=True,
                        )
                        return

                    event = parse_sse_line(line)
                    if event is not None:
                        yield event

                yield StreamEvent(ok=True, done=True)
            finally:
                await response.aclose()


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """
    Decode one complete SSE line.

    Returns:
        None for blank, non-data, and sentinel lines; otherwise a data
        element or a non-fatal parse-error element
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):].strip()
    if not payload or payload == SSE_DONE_SENTINEL:
        return None
    try:
        return StreamEvent(ok=True, data=json.loads(payload))
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed stream line skipped: {e}")
        return StreamEvent(ok=False, error=f"JSON parse error: {e}")
