"""
Shared fixtures for model gateway unit tests.

Every vendor is faked with ``httpx.MockTransport``; no test touches the
network.
"""

import json
from typing import Callable, List

import httpx
import pytest

from model_gateway.auth.types import AuthConfig, AuthMethod, AuthProvider
from model_gateway.core.transport import HttpTransport
from model_gateway.models.catalog import default_models


class FakeVendor:
    """Callable MockTransport handler that records every request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self._handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)

    def transport(self, timeout: float = 30.0) -> HttpTransport:
        return HttpTransport(timeout=timeout, transport=httpx.MockTransport(self))


def encode_sse(*events, done: bool = True) -> bytes:
    """SSE body with one ``data:`` line per event."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


@pytest.fixture
def vendor():
    """Factory for a recording fake vendor."""
    return FakeVendor


@pytest.fixture
def sse():
    """Encoder for SSE bodies."""
    return encode_sse


@pytest.fixture
def json_vendor():
    """Factory for a fake vendor that always answers with one JSON body."""
    def factory(body, status_code: int = 200) -> FakeVendor:
        return FakeVendor(lambda request: httpx.Response(status_code, json=body))
    return factory


@pytest.fixture
def stream_vendor():
    """Factory for a fake vendor that always answers with an SSE body."""
    def factory(*events, done: bool = True) -> FakeVendor:
        body = encode_sse(*events, done=done)
        return FakeVendor(lambda request: httpx.Response(
            200,
            content=body,
            headers={"Content-Type": "text/event-stream"},
        ))
    return factory


@pytest.fixture
def catalog():
    """Built-in model configs by name."""
    return {config.model: config for config in default_models()}


@pytest.fixture
def google_auth():
    return AuthConfig(
        provider=AuthProvider.GOOGLE,
        method=AuthMethod.GOOGLE_API_KEY,
        api_key="test-google-key",
    )


@pytest.fixture
def anthropic_auth():
    return AuthConfig(
        provider=AuthProvider.ANTHROPIC,
        method=AuthMethod.ANTHROPIC_API_KEY,
        api_key="test-anthropic-key",
    )


@pytest.fixture
def openai_auth():
    return AuthConfig(
        provider=AuthProvider.OPENAI,
        method=AuthMethod.OPENAI_API_KEY,
        api_key="test-openai-key",
    )


@pytest.fixture
def deepseek_auth():
    return AuthConfig(
        provider=AuthProvider.DEEPSEEK,
        method=AuthMethod.DEEPSEEK_API_KEY,
        api_key="test-deepseek-key",
    )


@pytest.fixture
def qwen_auth():
    return AuthConfig(
        provider=AuthProvider.QWEN,
        method=AuthMethod.QWEN_API_KEY,
        api_key="test-qwen-key",
    )
