"""
OpenAI-compatible chat completions adapters.

OpenAI, DeepSeek and Azure OpenAI share one wire shape; they differ only in
endpoint path, auth header and a few parameter defaults, which each
subclass pins down.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..core.errors import InvalidRequestError, ProviderProtocolError
from ..core.interface import ModelClient, encode_arguments
from ..models.catalog import ModelConfig, ModelProvider
from ..models.request import (
    ChatMessage,
    ContentPart,
    EmbeddingRequest,
    FunctionCall,
    GenerationRequest,
    ToolCall,
)
from ..models.response import (
    Choice,
    Embedding,
    EmbeddingResponse,
    FinishReason,
    FunctionDelta,
    GenerationResponse,
    StreamChoice,
    StreamDelta,
    StreamingChunk,
    ToolCallDelta,
    Usage,
    current_timestamp,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {reason.value: reason for reason in FinishReason}


def map_finish_reason(reason: Optional[str]) -> Optional[FinishReason]:
    """Identity over the canonical reasons; None for anything else."""
    return _FINISH_REASONS.get(reason) if isinstance(reason, str) else None


def parse_usage(data: Dict[str, Any]) -> Optional[Usage]:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    return Usage(
        prompt_tokens=usage.get("prompt_tokens") or 0,
        completion_tokens=usage.get("completion_tokens") or 0,
        total_tokens=usage.get("total_tokens") or 0,
    )


def image_url_block(part: ContentPart) -> Dict[str, Any]:
    """Image part as an image_url block; inline data becomes a data URI."""
    if part.data:
        url = f"data:{part.mime_type or 'image/jpeg'};base64,{part.data}"
    else:
        url = part.url
    return {"type": "image_url", "image_url": {"url": url}}


def build_messages(request: GenerationRequest) -> List[Dict[str, Any]]:
    """
    Canonical messages in OpenAI chat shape.

    System messages stay in place; ``parameters.system_prompt`` is
    prepended as one more system message.
    """
    messages: List[Dict[str, Any]] = []
    if request.parameters.system_prompt:
        messages.append({"role": "system", "content": request.parameters.system_prompt})

    for message in request.messages:
        if message.role == "tool":
            messages.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.text(),
            })
            continue

        role = message.role if message.role in ("system", "assistant") else "user"
        if isinstance(message.content, str):
            content: Any = message.content
        else:
            content = []
            for part in message.content:
                if part.type == "text":
                    content.append({"type": "text", "text": part.text or ""})
                elif part.type == "image" and (part.data or part.url):
                    content.append(image_url_block(part))

        entry: Dict[str, Any] = {"role": role, "content": content}
        if message.name:
            entry["name"] = message.name
        if message.tool_calls:
            entry["tool_calls"] = [call.model_dump() for call in message.tool_calls]
            if not content:
                entry["content"] = None
        messages.append(entry)
    return messages


class OpenAICompatibleAdapter(ModelClient):
    """
    Shared chat-completions translation.

    Subclasses set the endpoint defaults and may override
    ``build_url``/``build_headers``. Used directly, it serves any
    self-hosted endpoint that speaks the same protocol.
    """

    vendor = "OpenAI-compatible"

    DEFAULT_BASE_URL = "https://api.openai.com"
    DEFAULT_API_VERSION = "v1"
    DEFAULT_MAX_TOKENS: Optional[int] = None
    INCLUDE_STREAM_USAGE = False

    @property
    def provider(self) -> ModelProvider:
        return self._config.provider

    def _root(self) -> str:
        base = self._base_url(self.DEFAULT_BASE_URL)
        return f"{base}/{self._api_version(self.DEFAULT_API_VERSION)}"

    def build_url(self) -> str:
        return f"{self._root()}/chat/completions"

    def build_headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._auth.api_key or ''}"}
        headers.update(self._auth.headers or {})
        return headers

    # Request building

    def build_request_body(self, request: GenerationRequest, stream: bool = False) -> Dict[str, Any]:
        params = request.parameters
        body: Dict[str, Any] = {
            "model": self._config.model,
            "messages": build_messages(request),
        }

        max_tokens = params.max_tokens or self.DEFAULT_MAX_TOKENS
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.stop_sequences:
            body["stop"] = params.stop_sequences
        if params.frequency_penalty is not None:
            body["frequency_penalty"] = params.frequency_penalty
        if params.presence_penalty is not None:
            body["presence_penalty"] = params.presence_penalty

        if request.tools:
            body["tools"] = [tool.model_dump() for tool in request.tools]
            if request.tool_choice is not None:
                body["tool_choice"] = (
                    request.tool_choice
                    if isinstance(request.tool_choice, str)
                    else request.tool_choice.model_dump()
                )

        if stream:
            body["stream"] = True
            if self.INCLUDE_STREAM_USAGE:
                body["stream_options"] = {"include_usage": True}
        return body

    # Response parsing

    def parse_response(self, data: Dict[str, Any]) -> GenerationResponse:
        choices = data.get("choices")
        if not choices:
            raise ProviderProtocolError(self.vendor, f"No choices in {self.vendor} response")

        choice = choices[0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call.get("id", ""),
                function=FunctionCall(
                    name=(call.get("function") or {}).get("name", ""),
                    arguments=encode_arguments((call.get("function") or {}).get("arguments")),
                ),
            )
            for call in message.get("tool_calls") or []
        ]

        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return GenerationResponse(
            model=data.get("model") or self._config.model,
            created=data.get("created") or current_timestamp(),
            choices=[Choice(
                index=0,
                message=ChatMessage(
                    role="assistant",
                    content=message.get("content") or "",
                    tool_calls=tool_calls or None,
                ),
                finish_reason=map_finish_reason(choice.get("finish_reason")),
            )],
            usage=parse_usage(data),
            **kwargs,
        )

    def parse_stream_event(self, data: Dict[str, Any]) -> Optional[StreamingChunk]:
        choices = data.get("choices") or []
        usage = parse_usage(data)
        if not choices and usage is None:
            return None

        stream_choices = []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}
            tool_calls = None
            if delta.get("tool_calls"):
                tool_calls = [
                    ToolCallDelta(
                        index=call.get("index"),
                        id=call.get("id"),
                        function=FunctionDelta(
                            name=(call.get("function") or {}).get("name"),
                            arguments=(call.get("function") or {}).get("arguments"),
                        ),
                    )
                    for call in delta["tool_calls"]
                ]
            stream_choices.append(StreamChoice(
                index=0,
                delta=StreamDelta(
                    role=delta.get("role"),
                    content=delta.get("content") or None,
                    tool_calls=tool_calls,
                ),
                finish_reason=map_finish_reason(choice.get("finish_reason")),
            ))

        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return StreamingChunk(
            model=data.get("model") or self._config.model,
            created=data.get("created") or current_timestamp(),
            choices=stream_choices,
            usage=usage,
            **kwargs,
        )

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

    def parse_model_list(self, data: Dict[str, Any]) -> List[ModelConfig]:
        return [
            ModelConfig(provider=self.provider, model=entry["id"])
            for entry in data.get("data") or []
            if entry.get("id")
        ]

    async def list_models(self) -> List[ModelConfig]:
        """Models reported by the vendor's /models endpoint."""
        result = await self._transport.request(
            f"{self._root()}/models",
            method="GET",
            headers=self.build_headers(),
        )
        return self._parse(self.parse_model_list, self._check(result))


class OpenAIAdapter(OpenAICompatibleAdapter):
    """OpenAI platform API."""

    vendor = "OpenAI"
    INCLUDE_STREAM_USAGE = True

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.OPENAI_GPT

    def parse_embeddings(self, data: Dict[str, Any], model: str) -> EmbeddingResponse:
        if "data" not in data:
            raise ProviderProtocolError(self.vendor, "No data in embeddings response")
        return EmbeddingResponse(
            data=[
                Embedding(embedding=item.get("embedding") or [], index=item.get("index", i))
                for i, item in enumerate(data["data"])
            ],
            model=data.get("model") or model,
            usage=parse_usage(data),
        )

    async def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        body: Dict[str, Any] = {
            "model": request.model or self._config.model,
            "input": request.input,
        }
        if request.dimensions:
            body["dimensions"] = request.dimensions

        result = await self._transport.request(
            f"{self._root()}/embeddings",
            headers=self.build_headers(),
            body=body,
        )
        return self._parse(self.parse_embeddings, self._check(result), body["model"])


class DeepSeekAdapter(OpenAICompatibleAdapter):
    """DeepSeek chat completions."""

    vendor = "DeepSeek"
    DEFAULT_BASE_URL = "https://api.deepseek.com"
    DEFAULT_MAX_TOKENS = 1000

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.DEEPSEEK


class AzureOpenAIAdapter(OpenAICompatibleAdapter):
    """
    Azure OpenAI Service.

    Requests go to a deployment rather than a model, with the API version
    as a query parameter and an ``api-key`` header.
    """

    vendor = "Azure OpenAI"
    DEFAULT_API_VERSION = "2024-02-01"

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.AZURE_OPENAI

    def build_url(self) -> str:
        endpoint = self._auth.endpoint or self._auth.base_url or self._config.base_url
        if not endpoint:
            raise InvalidRequestError(
                "Azure OpenAI requires an endpoint",
                provider=self.provider.value,
            )
        deployment = self._auth.deployment or self._config.deployment or self._config.model
        api_version = self._api_version(self.DEFAULT_API_VERSION)
        return (
            f"{endpoint.rstrip('/')}/openai/deployments/{deployment}"
            f"/chat/completions?api-version={api_version}"
        )

    def build_headers(self) -> Dict[str, str]:
        headers = {"api-key": self._auth.api_key or ""}
        headers.update(self._auth.headers or {})
        return headers

    async def list_models(self) -> List[ModelConfig]:
        return await ModelClient.list_models(self)
