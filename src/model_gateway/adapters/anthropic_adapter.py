"""
Direct Anthropic Messages API adapter.

System messages collapse into the top-level ``system`` field, tool results
travel as user turns holding ``tool_result`` blocks, and streaming arrives
as named event types rather than one delta shape.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..core.errors import ProviderProtocolError
from ..core.interface import ModelClient, decode_arguments, encode_arguments
from ..models.catalog import ModelProvider
from ..models.request import (
    ChatMessage,
    ContentPart,
    FunctionCall,
    GenerationRequest,
    ToolCall,
)
from ..models.response import (
    Choice,
    FinishReason,
    FunctionDelta,
    GenerationResponse,
    StreamChoice,
    StreamDelta,
    StreamingChunk,
    ToolCallDelta,
    Usage,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
}


def map_finish_reason(reason: Optional[str]) -> Optional[FinishReason]:
    """Anthropic stop reason to canonical; None for anything unrecognised."""
    return _FINISH_REASONS.get(reason) if isinstance(reason, str) else None


class AnthropicAdapter(ModelClient):
    """
    Direct Anthropic API adapter.

    Connects directly to Anthropic's Claude API.
    """

    vendor = "Anthropic"

    DEFAULT_BASE_URL = "https://api.anthropic.com"
    DEFAULT_API_VERSION = "v1"
    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 1000

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.ANTHROPIC_CLAUDE

    def build_url(self) -> str:
        base = self._base_url(self.DEFAULT_BASE_URL)
        return f"{base}/{self._api_version(self.DEFAULT_API_VERSION)}/messages"

    def build_headers(self) -> Dict[str, str]:
        headers = {
            "x-api-key": self._auth.api_key or "",
            "anthropic-version": self.ANTHROPIC_VERSION,
        }
        headers.update(self._auth.headers or {})
        return headers

    # Request building

    @staticmethod
    def _image_block(part: ContentPart) -> Dict[str, Any]:
        if part.data:
            source = {
                "type": "base64",
                "media_type": part.mime_type or "image/jpeg",
                "data": part.data,
            }
        else:
            source = {"type": "url", "url": part.url}
        return {"type": "image", "source": source}

    def _content_blocks(self, message: ChatMessage) -> List[Dict[str, Any]]:
        blocks = []
        if isinstance(message.content, str):
            if message.content:
                blocks.append({"type": "text", "text": message.content})
        else:
            for part in message.content:
                if part.type == "text":
                    blocks.append({"type": "text", "text": part.text or ""})
                elif part.type == "image" and (part.data or part.url):
                    blocks.append(self._image_block(part))
                elif part.type == "document" and part.data:
                    blocks.append({
                        "type": "document",
                        "source": {
                            "type": "base64",
                            "media_type": part.mime_type or "application/pdf",
                            "data": part.data,
                        },
                    })

        for call in message.tool_calls or []:
            blocks.append({
                "type": "tool_use",
                "id": call.id,
                "name": call.function.name,
                "input": decode_arguments(call),
            })
        return blocks

    def build_messages(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        """Non-system turns; consecutive tool results share one user turn."""
        messages: List[Dict[str, Any]] = []
        for message in request.conversation():
            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.text(),
                }
                previous = messages[-1] if messages else None
                if (
                    previous
                    and previous["role"] == "user"
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
                continue

            messages.append({
                "role": message.role,
                "content": self._content_blocks(message) or [{"type": "text", "text": ""}],
            })
        return messages

    def build_request_body(self, request: GenerationRequest, stream: bool = False) -> Dict[str, Any]:
        params = request.parameters
        body: Dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": params.max_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": self.build_messages(request),
        }

        system = request.system_text()
        if system:
            body["system"] = system
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.top_k is not None:
            body["top_k"] = params.top_k
        if params.stop_sequences:
            body["stop_sequences"] = params.stop_sequences

        # Anthropic has no "none" tool choice; omitting tools has the same effect
        if request.tools and request.tool_choice != "none":
            body["tools"] = [
                {
                    "name": tool.function.name,
                    "description": tool.function.description,
                    "input_schema": tool.function.parameters,
                }
                for tool in request.tools
            ]
            if request.tool_choice == "auto":
                body["tool_choice"] = {"type": "auto"}
            elif request.tool_choice is not None:
                body["tool_choice"] = {"type": "tool", "name": request.tool_choice.name}

        if stream:
            body["stream"] = True
        return body

    # Response parsing

    def parse_response(self, data: Dict[str, Any]) -> GenerationResponse:
        if "content" not in data:
            raise ProviderProtocolError(self.vendor, "No content in Anthropic response")

        text = ""
        tool_calls = []
        for block in data.get("content") or []:
            if block.get("type") == "text":
                text += block.get("text", "")
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id", ""),
                    function=FunctionCall(
                        name=block.get("name", ""),
                        arguments=encode_arguments(block.get("input")),
                    ),
                ))

        usage = None
        if isinstance(data.get("usage"), dict):
            prompt = data["usage"].get("input_tokens") or 0
            completion = data["usage"].get("output_tokens") or 0
            usage = Usage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=prompt + completion,
            )

        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return GenerationResponse(
            model=data.get("model") or self._config.model,
            choices=[Choice(
                index=0,
                message=ChatMessage(
                    role="assistant",
                    content=text,
                    tool_calls=tool_calls or None,
                ),
                finish_reason=map_finish_reason(data.get("stop_reason")),
            )],
            usage=usage,
            **kwargs,
        )

    def _chunk(self, delta: StreamDelta, **kwargs) -> StreamingChunk:
        finish_reason = kwargs.pop("finish_reason", None)
        kwargs.setdefault("model", self._config.model)
        return StreamingChunk(
            choices=[StreamChoice(index=0, delta=delta, finish_reason=finish_reason)],
            **kwargs,
        )

    def parse_stream_event(self, data: Dict[str, Any]) -> Optional[StreamingChunk]:
        """
        One named stream event to a chunk, or None for events with no
        canonical counterpart (ping, content_block_stop, message_stop).
        """
        event_type = data.get("type")

        if event_type == "message_start":
            message = data.get("message") or {}
            kwargs = {"model": message.get("model") or self._config.model}
            if message.get("id"):
                kwargs["id"] = message["id"]
            return self._chunk(StreamDelta(role="assistant"), **kwargs)

        if event_type == "content_block_start":
            block = data.get("content_block") or {}
            if block.get("type") != "tool_use":
                return None
            return self._chunk(StreamDelta(tool_calls=[ToolCallDelta(
                index=data.get("index"),
                id=block.get("id"),
                function=FunctionDelta(name=block.get("name"), arguments=""),
            )]))

        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            if delta.get("type") == "text_delta":
                return self._chunk(StreamDelta(content=delta.get("text", "")))
            if delta.get("type") == "input_json_delta":
                return self._chunk(StreamDelta(tool_calls=[ToolCallDelta(
                    index=data.get("index"),
                    function=FunctionDelta(arguments=delta.get("partial_json", "")),
                )]))
            return None

        if event_type == "message_delta":
            usage = None
            if isinstance(data.get("usage"), dict):
                output_tokens = data["usage"].get("output_tokens") or 0
                usage = Usage(completion_tokens=output_tokens, total_tokens=output_tokens)
            return self._chunk(
                StreamDelta(),
                finish_reason=map_finish_reason((data.get("delta") or {}).get("stop_reason")),
                usage=usage,
            )

        if event_type == "error":
            error = data.get("error") or {}
            logger.warning(f"Anthropic stream error event: {error}")
            return StreamingChunk.degraded(
                error.get("message") or "Anthropic stream error",
                model=self._config.model,
            )

        return None

    # Operations

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
            self.build_headers(),
            self.build_request_body(request, stream=True),
            self.parse_stream_event,
            cancel=cancel,
        ):
            yield chunk
