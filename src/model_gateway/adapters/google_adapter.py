"""
Google Gemini adapter.

Speaks the native Generative Language API: system instructions travel in a
separate field, the assistant role is called "model", and function calls
are content parts rather than a dedicated field.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..auth.types import AuthMethod
from ..core.errors import InvalidRequestError, ProviderProtocolError
from ..core.interface import ModelClient, decode_arguments, encode_arguments
from ..models.catalog import ModelCapabilities, ModelConfig, ModelProvider
from ..models.request import (
    ChatMessage,
    ContentPart,
    GenerationRequest,
    TokenCountRequest,
    ToolCall,
    FunctionCall,
)
from ..models.response import (
    Choice,
    FinishReason,
    FunctionDelta,
    GenerationResponse,
    StreamChoice,
    StreamDelta,
    StreamingChunk,
    TokenCountResponse,
    ToolCallDelta,
    Usage,
    generate_tool_call_id,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
}


def map_finish_reason(reason: Optional[str]) -> Optional[FinishReason]:
    """Gemini finish reason to canonical; None for anything unrecognised."""
    return _FINISH_REASONS.get(reason) if isinstance(reason, str) else None


def parse_usage(data: Dict[str, Any]) -> Optional[Usage]:
    metadata = data.get("usageMetadata")
    if not isinstance(metadata, dict):
        return None
    return Usage(
        prompt_tokens=metadata.get("promptTokenCount") or 0,
        completion_tokens=metadata.get("candidatesTokenCount") or 0,
        total_tokens=metadata.get("totalTokenCount") or 0,
    )


class GoogleAdapter(ModelClient):
    """Adapter for Gemini models on generativelanguage.googleapis.com."""

    vendor = "Google"

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
    DEFAULT_API_VERSION = "v1beta"
    DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.GOOGLE_GEMINI

    def _root(self) -> str:
        return f"{self._base_url(self.DEFAULT_BASE_URL)}/{self._api_version(self.DEFAULT_API_VERSION)}"

    def build_url(self, endpoint: str) -> str:
        return f"{self._root()}/models/{self._config.model}:{endpoint}"

    def build_headers(self) -> Dict[str, str]:
        method = self._auth.method
        if method in (AuthMethod.GOOGLE_OAUTH, AuthMethod.GOOGLE_VERTEX_AI):
            token = self._auth.access_token
            if method == AuthMethod.GOOGLE_VERTEX_AI:
                token = token or self._auth.api_key
            if not token:
                raise InvalidRequestError(
                    f"{method.value} auth requires an access token", provider=self.vendor
                )
            headers = {"Authorization": f"Bearer {token}"}
        else:
            headers = {"x-goog-api-key": self._auth.api_key or ""}
        headers.update(self._auth.headers or {})
        return headers

    # Request building

    def _media_part(self, part: ContentPart) -> Dict[str, Any]:
        mime_type = part.mime_type or self.DEFAULT_IMAGE_MIME_TYPE
        if part.data:
            return {"inlineData": {"mimeType": mime_type, "data": part.data}}
        return {"fileData": {"mimeType": mime_type, "fileUri": part.url}}

    def _parts(self, message: ChatMessage) -> List[Dict[str, Any]]:
        parts = []
        if isinstance(message.content, str):
            if message.content:
                parts.append({"text": message.content})
        else:
            for part in message.content:
                if part.type == "text":
                    if part.text:
                        parts.append({"text": part.text})
                elif part.data or part.url:
                    parts.append(self._media_part(part))

        for call in message.tool_calls or []:
            parts.append({
                "functionCall": {
                    "name": call.function.name,
                    "args": decode_arguments(call),
                }
            })
        return parts

    def build_contents(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        """Turn sequence without system messages, in conversation order."""
        contents = []
        call_names: Dict[str, str] = {}

        for message in request.conversation():
            for call in message.tool_calls or []:
                call_names[call.id] = call.function.name

            if message.role == "tool":
                name = message.name or call_names.get(message.tool_call_id, "")
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {
                            "name": name,
                            "response": {"content": message.text()},
                        }
                    }],
                })
                continue

            contents.append({
                "role": "model" if message.role == "assistant" else "user",
                "parts": self._parts(message) or [{"text": ""}],
            })
        return contents

    def _tool_config(self, request: GenerationRequest) -> Optional[Dict[str, Any]]:
        choice = request.tool_choice
        if choice is None:
            return None
        if choice == "auto":
            return {"functionCallingConfig": {"mode": "AUTO"}}
        if choice == "none":
            return {"functionCallingConfig": {"mode": "NONE"}}
        return {
            "functionCallingConfig": {
                "mode": "ANY",
                "allowedFunctionNames": [choice.name],
            }
        }

    def build_request_body(self, request: GenerationRequest) -> Dict[str, Any]:
        params = request.parameters
        body: Dict[str, Any] = {"contents": self.build_contents(request)}

        generation_config = {
            "maxOutputTokens": params.max_tokens,
            "temperature": params.temperature,
            "topP": params.top_p,
            "topK": params.top_k,
            "stopSequences": params.stop_sequences,
            "frequencyPenalty": params.frequency_penalty,
            "presencePenalty": params.presence_penalty,
        }
        generation_config = {k: v for k, v in generation_config.items() if v is not None}
        if generation_config:
            body["generationConfig"] = generation_config

        system = request.system_text()
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        if request.tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": tool.function.name,
                        "description": tool.function.description,
                        "parameters": tool.function.parameters,
                    }
                    for tool in request.tools
                ]
            }]
            tool_config = self._tool_config(request)
            if tool_config:
                body["toolConfig"] = tool_config

        return body

    # Response parsing

    @staticmethod
    def _split_parts(candidate: Dict[str, Any]):
        content = candidate.get("content") or {}
        text = ""
        calls = []
        for part in content.get("parts") or []:
            if part.get("text"):
                text += part["text"]
            elif isinstance(part.get("functionCall"), dict):
                calls.append(part["functionCall"])
        return text, calls

    def parse_response(self, data: Dict[str, Any]) -> GenerationResponse:
        candidates = data.get("candidates")
        if not candidates:
            raise ProviderProtocolError(self.vendor, "No candidates in Gemini response")

        candidate = candidates[0]
        text, calls = self._split_parts(candidate)
        tool_calls = [
            ToolCall(
                id=generate_tool_call_id(),
                function=FunctionCall(
                    name=call.get("name", ""),
                    arguments=encode_arguments(call.get("args")),
                ),
            )
            for call in calls
        ]

        kwargs: Dict[str, Any] = {}
        if data.get("responseId"):
            kwargs["id"] = data["responseId"]
        return GenerationResponse(
            model=data.get("modelVersion") or self._config.model,
            choices=[Choice(
                index=0,
                message=ChatMessage(
                    role="assistant",
                    content=text,
                    tool_calls=tool_calls or None,
                ),
                finish_reason=map_finish_reason(candidate.get("finishReason")),
            )],
            usage=parse_usage(data),
            **kwargs,
        )

    def parse_stream_event(self, data: Dict[str, Any]) -> Optional[StreamingChunk]:
        """
        One SSE element to a chunk.

        Gemini delivers function calls whole, so each becomes a complete
        tool-call delta with a locally generated id.
        """
        candidates = data.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        text, calls = self._split_parts(candidate)

        delta = StreamDelta(content=text or None)
        if calls:
            delta.tool_calls = [
                ToolCallDelta(
                    index=position,
                    id=generate_tool_call_id(),
                    function=FunctionDelta(
                        name=call.get("name", ""),
                        arguments=encode_arguments(call.get("args")),
                    ),
                )
                for position, call in enumerate(calls)
            ]

        return StreamingChunk(
            model=self._config.model,
            choices=[StreamChoice(
                index=0,
                delta=delta,
                finish_reason=map_finish_reason(candidate.get("finishReason")),
            )],
            usage=parse_usage(data),
        )

    # Operations

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        result = await self._transport.request(
            self.build_url("generateContent"),
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
        # alt=sse switches the endpoint from a JSON array to SSE framing
        url = f"{self.build_url('streamGenerateContent')}?alt=sse"
        async for chunk in self._stream_chunks(
            url,
            self.build_headers(),
            self.build_request_body(request),
            self.parse_stream_event,
            cancel=cancel,
        ):
            yield chunk

    def parse_token_count(self, data: Dict[str, Any]) -> TokenCountResponse:
        total = data.get("totalTokens")
        if total is None:
            raise ProviderProtocolError(self.vendor, "No totalTokens in countTokens response")
        return TokenCountResponse(
            total_tokens=total,
            prompt_tokens=total,
            metadata={"estimated": False},
        )

    def parse_model_list(self, data: Dict[str, Any]) -> List[ModelConfig]:
        """Generation-capable entries of a models listing."""
        models = []
        for entry in data.get("models") or []:
            name = entry.get("name", "")
            methods = entry.get("supportedGenerationMethods") or []
            if not name or "generateContent" not in methods:
                continue
            models.append(ModelConfig(
                provider=self.provider,
                model=name.split("/", 1)[-1],
                display_name=entry.get("displayName"),
                capabilities=ModelCapabilities(
                    streaming="streamGenerateContent" in methods,
                    function_calling=True,
                    token_counting="countTokens" in methods,
                    max_tokens=entry.get("outputTokenLimit"),
                    max_context_length=entry.get("inputTokenLimit"),
                ),
            ))
        return models

    async def count_tokens(self, request: TokenCountRequest) -> TokenCountResponse:
        """Native token count via the countTokens endpoint."""
        body: Dict[str, Any] = {
            "contents": self.build_contents(
                GenerationRequest(messages=request.messages)
            )
        }
        result = await self._transport.request(
            self.build_url("countTokens"),
            headers=self.build_headers(),
            body=body,
        )
        return self._parse(self.parse_token_count, self._check(result))

    async def list_models(self) -> List[ModelConfig]:
        result = await self._transport.request(
            f"{self._root()}/models",
            method="GET",
            headers=self.build_headers(),
        )
        models = self._parse(self.parse_model_list, self._check(result))
        logger.debug(f"Listed {len(models)} Gemini models")
        return models
