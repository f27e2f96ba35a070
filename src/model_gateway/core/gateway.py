"""
Model gateway: the caller-facing entry point.

Resolves a model name and auth identity to a validated client, checks the
request against the model's capabilities before any network call, and
forwards to the client inside a tracing span.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from opentelemetry import trace

from ..auth.types import AuthConfig
from ..models.catalog import (
    ModelCapability,
    ModelConfig,
    has_capability,
    max_context_length_for,
    max_tokens_for,
    mime_types_for,
)
from ..models.request import (
    EmbeddingRequest,
    GenerationParameters,
    GenerationRequest,
    TokenCountRequest,
)
from ..models.response import (
    EmbeddingResponse,
    GenerationResponse,
    StreamingChunk,
    TokenCountResponse,
)
from .accumulator import StreamResult, accumulate_stream
from .config import GatewaySettings, configure_logging, load_config
from .errors import InvalidRequestError, ModelNotFoundError, UnsupportedCapabilityError
from .interface import ModelClient
from .registry import ModelRegistry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ModelGateway:
    """
    Multi-vendor generation gateway.

    Owns one ModelRegistry; there is no process-wide client cache.
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        settings: Optional[GatewaySettings] = None,
    ):
        if registry is None:
            registry = ModelRegistry(settings=settings)
        self._registry = registry
        self._settings = settings or registry.settings

    @classmethod
    def from_config(cls, config_path: Optional[str] = None) -> "ModelGateway":
        """Build a gateway from a YAML configuration file."""
        settings = load_config(config_path)
        configure_logging(settings)
        return cls(settings=settings)

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    # Capability queries

    def get_model(self, model: str) -> Optional[ModelConfig]:
        return self._registry.get_model(model)

    def get_available_models(self, auth: AuthConfig) -> List[ModelConfig]:
        return self._registry.get_available_models(auth)

    def supports_streaming(self, model: str) -> bool:
        return has_capability(self.get_model(model), ModelCapability.STREAMING)

    def supports_function_calling(self, model: str) -> bool:
        return has_capability(self.get_model(model), ModelCapability.FUNCTION_CALLING)

    def is_multimodal(self, model: str) -> bool:
        return has_capability(self.get_model(model), ModelCapability.MULTIMODAL)

    def supports_token_counting(self, model: str) -> bool:
        return has_capability(self.get_model(model), ModelCapability.TOKEN_COUNTING)

    def get_max_tokens(self, model: str) -> Optional[int]:
        return max_tokens_for(self.get_model(model))

    def get_max_context_length(self, model: str) -> Optional[int]:
        return max_context_length_for(self.get_model(model))

    def get_supported_mime_types(self, model: str) -> List[str]:
        return mime_types_for(self.get_model(model))

    # Pre-flight

    def _resolve(self, model: str) -> ModelConfig:
        config = self.get_model(model)
        if config is None:
            raise ModelNotFoundError(model)
        return config

    def _with_defaults(self, config: ModelConfig, request: GenerationRequest) -> GenerationRequest:
        defaults: Dict[str, Any] = {
            **self._settings.default_parameters,
            **(config.default_parameters or {}),
        }
        if not defaults:
            return request
        explicit = request.parameters.model_dump(exclude_unset=True)
        parameters = GenerationParameters(**{**defaults, **explicit})
        return request.model_copy(update={"parameters": parameters})

    def check_request(
        self,
        config: ModelConfig,
        request: GenerationRequest,
        streaming: bool = False,
    ) -> None:
        """
        Reject a request the model cannot serve.

        Raises:
            InvalidRequestError: tool results out of order, or max_tokens
                above the model's output limit
            UnsupportedCapabilityError: streaming, tools or media the model
                does not support
        """
        provider = config.provider.value
        caps = config.capabilities

        violation = request.validate_tool_results()
        if violation:
            raise InvalidRequestError(violation, provider=provider)

        max_tokens = request.parameters.max_tokens
        if max_tokens and caps.max_tokens and max_tokens > caps.max_tokens:
            raise InvalidRequestError(
                f"max_tokens {max_tokens} exceeds the limit of {caps.max_tokens} for {config.model}",
                provider=provider,
            )

        if streaming and not caps.streaming:
            raise UnsupportedCapabilityError(
                f"Streaming not supported by {config.model}", provider=provider
            )
        if request.tools and not caps.function_calling:
            raise UnsupportedCapabilityError(
                f"Function calling not supported by {config.model}", provider=provider
            )

        for message in request.messages:
            media = message.media_parts()
            if not media:
                continue
            if not caps.multimodal:
                raise UnsupportedCapabilityError(
                    f"Multimodal content not supported by {config.model}", provider=provider
                )
            for part in media:
                if (
                    part.mime_type
                    and caps.supported_mime_types
                    and part.mime_type not in caps.supported_mime_types
                ):
                    raise UnsupportedCapabilityError(
                        f"MIME type {part.mime_type} not supported by {config.model}",
                        provider=provider,
                    )

    # Operations

    async def create_client(self, model: str, auth: AuthConfig) -> ModelClient:
        with tracer.start_as_current_span("model_gateway.create_client") as span:
            span.set_attribute("model", model)
            span.set_attribute("auth.provider", auth.provider.value)
            span.set_attribute("auth.method", auth.method.value)
            return await self._registry.create_client(model, auth)

    async def generate(
        self,
        model: str,
        auth: AuthConfig,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """
        Generate a complete response.

        With ``parameters.stream`` set the vendor is called in streaming
        mode and the chunks are folded into one response.

        Raises:
            GatewayError: any pre-flight, validation or vendor failure
        """
        with tracer.start_as_current_span("model_gateway.generate") as span:
            config = self._resolve(model)
            span.set_attribute("model", model)
            span.set_attribute("provider", config.provider.value)

            if request.parameters.stream:
                result = await self.stream_to_result(model, auth, request, cancel=cancel)
                return result.to_response()

            request = self._with_defaults(config, request)
            self.check_request(config, request)
            client = await self._registry.create_client(model, auth)

            response = await client.generate(request, cancel=cancel)
            if response.usage:
                span.set_attribute("usage.prompt_tokens", response.usage.prompt_tokens)
                span.set_attribute("usage.completion_tokens", response.usage.completion_tokens)
            if response.choices and response.choices[0].finish_reason:
                span.set_attribute("finish_reason", response.choices[0].finish_reason.value)
            return response

    async def stream(
        self,
        model: str,
        auth: AuthConfig,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamingChunk]:
        """
        Generate a response as a lazy chunk sequence.

        Pre-flight failures raise on the first iteration, before any
        network call. The sequence stops without a finish reason when
        ``cancel`` is set.
        """
        config = self._resolve(model)
        request = self._with_defaults(config, request)
        self.check_request(config, request, streaming=True)
        client = await self._registry.create_client(model, auth)

        # Not made current: the span outlives individual resumptions
        span = tracer.start_span("model_gateway.stream")
        span.set_attribute("model", model)
        span.set_attribute("provider", config.provider.value)
        chunks = 0
        try:
            async for chunk in client.stream(request, cancel=cancel):
                chunks += 1
                yield chunk
        finally:
            span.set_attribute("chunks", chunks)
            span.end()

    async def stream_to_result(
        self,
        model: str,
        auth: AuthConfig,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> StreamResult:
        """Stream and fold the chunks into text and completed tool calls."""
        return await accumulate_stream(self.stream(model, auth, request, cancel=cancel))

    async def count_tokens(
        self,
        model: str,
        auth: AuthConfig,
        request: TokenCountRequest,
    ) -> TokenCountResponse:
        with tracer.start_as_current_span("model_gateway.count_tokens") as span:
            config = self._resolve(model)
            span.set_attribute("model", model)
            span.set_attribute("provider", config.provider.value)

            client = await self._registry.create_client(model, auth)
            response = await client.count_tokens(request)
            span.set_attribute("total_tokens", response.total_tokens)
            span.set_attribute("estimated", response.estimated)
            return response

    async def embed(
        self,
        model: str,
        auth: AuthConfig,
        request: EmbeddingRequest,
    ) -> EmbeddingResponse:
        """
        Embed text with a model declaring the embedding capability.

        Raises:
            UnsupportedCapabilityError: the model does not embed; raised
                before any client is created
        """
        with tracer.start_as_current_span("model_gateway.embed") as span:
            config = self._resolve(model)
            span.set_attribute("model", model)
            span.set_attribute("provider", config.provider.value)
            if not has_capability(config, ModelCapability.EMBEDDING):
                raise UnsupportedCapabilityError(
                    f"Embeddings not supported by {model}", provider=config.provider.value
                )
            client = await self._registry.create_client(model, auth)
            return await client.embed(request)

    async def list_vendor_models(self, model: str, auth: AuthConfig) -> List[ModelConfig]:
        """Models the vendor behind ``model`` reports for this auth identity."""
        self._resolve(model)
        client = await self._registry.create_client(model, auth)
        return await client.list_models()

    def clear_client_cache(self) -> None:
        self._registry.clear_client_cache()

    def get_client_cache_stats(self) -> Dict[str, Any]:
        return self._registry.get_client_cache_stats()
