"""
Qwen adapter for the DashScope text-generation service.

Messages use the OpenAI chat shape but are wrapped in an
``input``/``parameters`` envelope, and tool calls arrive whole rather than
as fragments.
"""

import asyncio
import logging
from typing import Optional, Dict, Any, AsyncIterator

from ..core.errors import ProviderProtocolError
from ..core.interface import ModelClient, encode_arguments
from ..models.catalog import ModelProvider
from ..models.request import ChatMessage, FunctionCall, GenerationRequest, ToolCall
from ..models.response import (
    Choice,
    GenerationResponse,
    StreamChoice,
    StreamDelta,
    StreamingChunk,
    Usage,
    generate_tool_call_id,
)
from .openai_adapter import build_messages, map_finish_reason

logger = logging.getLogger(__name__)


def parse_usage(data: Dict[str, Any]) -> Optional[Usage]:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    prompt = usage.get("input_tokens") or 0
    completion = usage.get("output_tokens") or 0
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=usage.get("total_tokens") or prompt + completion,
    )


class QwenAdapter(ModelClient):
    """Qwen models served by DashScope."""

    vendor = "Qwen"

    DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/api"
    DEFAULT_API_VERSION = "v1"
    DEFAULT_MAX_TOKENS = 1000
    DEFAULT_TEMPERATURE = 0.7
    DEFAULT_TOP_P = 0.8
    REPETITION_PENALTY = 1.05

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.QWEN

    def build_url(self) -> str:
        base = self._base_url(self.DEFAULT_BASE_URL)
        version = self._api_version(self.DEFAULT_API_VERSION)
        return f"{base}/{version}/services/aigc/text-generation/generation"

    def build_headers(self, stream: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._auth.api_key or ''}"}
        if stream:
            headers["X-DashScope-SSE"] = "enable"
        headers.update(self._auth.headers or {})
        return headers

    def build_request_body(self, request: GenerationRequest, stream: bool = False) -> Dict[str, Any]:
        params = request.parameters
        parameters: Dict[str, Any] = {
            "max_tokens": params.max_tokens or self.DEFAULT_MAX_TOKENS,
            "temperature": (
                params.temperature if params.temperature is not None else self.DEFAULT_TEMPERATURE
            ),
            "top_p": params.top_p if params.top_p is not None else self.DEFAULT_TOP_P,
            "repetition_penalty": self.REPETITION_PENALTY,
        }
        if params.top_k is not None:
            parameters["top_k"] = params.top_k
        if params.stop_sequences:
            parameters["stop"] = params.stop_sequences
        if request.tools:
            parameters["tools"] = [tool.model_dump() for tool in request.tools]
            if request.tool_choice is not None:
                parameters["tool_choice"] = (
                    request.tool_choice
                    if isinstance(request.tool_choice, str)
                    else request.tool_choice.model_dump()
                )
        if stream:
            # Each event carries only new text rather than the running total
            parameters["incremental_output"] = True

        return {
            "model": self._config.model,
            "input": {"messages": build_messages(request)},
            "parameters": parameters,
        }

    @staticmethod
    def _tool_calls(output: Dict[str, Any]):
        calls = []
        for call in output.get("tool_calls") or []:
            function = call.get("function") or {}
            calls.append(ToolCall(
                id=call.get("id") or generate_tool_call_id(),
                function=FunctionCall(
                    name=function.get("name", ""),
                    arguments=encode_arguments(function.get("arguments")),
                ),
            ))
        return calls

    def parse_response(self, data: Dict[str, Any]) -> GenerationResponse:
        output = data.get("output")
        if not isinstance(output, dict):
            raise ProviderProtocolError(self.vendor, "No output in Qwen response")

        tool_calls = self._tool_calls(output)
        kwargs: Dict[str, Any] = {}
        if data.get("request_id"):
            kwargs["id"] = data["request_id"]
        return GenerationResponse(
            model=self._config.model,
            choices=[Choice(
                index=0,
                message=ChatMessage(
                    role="assistant",
                    content=output.get("text") or "",
                    tool_calls=tool_calls or None,
                ),
                finish_reason=map_finish_reason(output.get("finish_reason")),
            )],
            usage=parse_usage(data),
            **kwargs,
        )

    def parse_stream_event(self, data: Dict[str, Any]) -> Optional[StreamingChunk]:
        """Complete tool calls go in the choice's non-delta ``message``."""
        output = data.get("output")
        if not isinstance(output, dict):
            return None

        tool_calls = self._tool_calls(output)
        message = None
        if tool_calls:
            message = ChatMessage(role="assistant", content="", tool_calls=tool_calls)

        kwargs: Dict[str, Any] = {}
        if data.get("request_id"):
            kwargs["id"] = data["request_id"]
        return StreamingChunk(
            model=self._config.model,
            choices=[StreamChoice(
                index=0,
                delta=StreamDelta(content=output.get("text") or None),
                message=message,
                finish_reason=map_finish_reason(output.get("finish_reason")),
            )],
            usage=parse_usage(data),
            **kwargs,
        )

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        result = await self._transport.request(
            self.build_url(),
            headers=self.build_headers(),
            body=self.build_request_body(request),
            cancel=cancel,
        )
        return self._parse(self.parse_response, self._check(result))

    async def stream(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamingChunk]:
        async for chunk in self._stream_chunks(
            self.build_url(),
            self.build_headers(stream=True),
            self.build_request_body(request, stream=True),
            self.parse_stream_event,
            cancel=cancel,
        ):
            yield chunk
