"""
Model client interface.

Defines the capability set every vendor adapter implements. Shared HTTP
and SSE handling lives in ``HttpTransport`` and is composed in, not
inherited.
"""

import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod
from typing import List, Dict, Any, AsyncIterator, Callable, Optional, TypeVar

from ..auth.types import AuthConfig
from ..models.catalog import ModelConfig, ModelProvider, ModelCapabilities
from ..models.request import (
    GenerationRequest,
    GenerationParameters,
    ChatMessage,
    ToolCall,
    TokenCountRequest,
    EmbeddingRequest,
)
from ..models.response import (
    GenerationResponse,
    StreamingChunk,
    TokenCountResponse,
    EmbeddingResponse,
)
from .errors import (
    ProviderError,
    InvalidRequestError,
    ProviderProtocolError,
    UnsupportedCapabilityError,
    provider_error,
)
from .transport import HttpTransport, TransportResult, StreamEvent

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

# Raised by parsers reading a valid JSON body of the wrong shape
PARSE_ERRORS = (AttributeError, TypeError, KeyError, IndexError, ValueError)

T = TypeVar("T")


def estimate_tokens(request: TokenCountRequest) -> TokenCountResponse:
    """
    Character-length token estimate: ceil(characters / 4).

    The result is tagged ``estimated`` so callers do not treat it as
    authoritative.
    """
    text = request.text()
    estimated = math.ceil(len(text) / CHARS_PER_TOKEN)
    return TokenCountResponse(
        total_tokens=estimated,
        prompt_tokens=estimated,
        metadata={"estimated": True, "characters": len(text)},
    )


def decode_arguments(call: ToolCall) -> Dict[str, Any]:
    """
    Decode a tool call's JSON argument string for vendors that want an object.

    Raises:
        InvalidRequestError: arguments are not a JSON object
    """
    try:
        arguments = json.loads(call.function.arguments or "{}")
    except json.JSONDecodeError as e:
        raise InvalidRequestError(f"Tool call {call.id} has invalid JSON arguments: {e}")
    if not isinstance(arguments, dict):
        raise InvalidRequestError(f"Tool call {call.id} arguments must be a JSON object")
    return arguments


def encode_arguments(arguments: Any) -> str:
    """Vendor arguments as the canonical JSON string; strings pass through."""
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments if arguments is not None else {})


def validation_request() -> GenerationRequest:
    """Smallest real request used to prove credentials and model access."""
    return GenerationRequest(
        messages=[ChatMessage(role="user", content="Hello")],
        parameters=GenerationParameters(max_tokens=1),
    )


class ModelClient(ABC):
    """
    Vendor adapter contract.

    An adapter keeps no mutable state between calls; its config, auth
    identity and transport are fixed at construction.
    """

    #: Vendor name used in error messages ("<vendor> API failed: ...")
    vendor: str = "Model"

    def __init__(
        self,
        config: ModelConfig,
        auth: AuthConfig,
        transport: Optional[HttpTransport] = None,
    ):
        self._config = config
        self._auth = auth
        self._transport = transport or HttpTransport()

    @property
    @abstractmethod
    def provider(self) -> ModelProvider:
        """Provider this adapter speaks to."""
        pass

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def auth(self) -> AuthConfig:
        return self._auth

    @property
    def capabilities(self) -> ModelCapabilities:
        return self._config.capabilities

    @abstractmethod
    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """
        Generate a complete response.

        Raises:
            ProviderError: transport or protocol failure, vendor-qualified
        """
        pass

    @abstractmethod
    def stream(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamingChunk]:
        """
        Generate a response as a lazy sequence of chunks.

        The sequence stops early, without error, once ``cancel`` is set.
        Malformed lines become degraded chunks; a failed connection
        raises ProviderError.
        """
        pass

    async def count_tokens(self, request: TokenCountRequest) -> TokenCountResponse:
        """Count tokens. Vendors without a native endpoint get an estimate."""
        return estimate_tokens(request)

    async def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        raise UnsupportedCapabilityError(
            f"Embeddings not supported by {self.provider.value}",
            provider=self.provider.value,
        )

    async def list_models(self) -> List[ModelConfig]:
        raise UnsupportedCapabilityError(
            f"Model listing not supported by {self.provider.value}",
            provider=self.provider.value,
        )

    async def validate(self) -> bool:
        """
        Issue a minimal real request.

        Returns:
            True if the vendor accepted it; never raises for vendor failures
        """
        try:
            await self.generate(validation_request())
            return True
        except ProviderError as e:
            logger.warning(f"Validation failed for {self._config.model}: {e}")
            return False

    # Helpers shared by every adapter; they only resolve endpoints and
    # translate tagged transport results into vendor-qualified failures.

    def _base_url(self, default: str) -> str:
        return (self._auth.base_url or self._config.base_url or default).rstrip("/")

    def _api_version(self, default: str) -> str:
        return self._auth.api_version or self._config.api_version or default

    async def _stream_chunks(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        parse: Callable[[Dict[str, Any]], Optional[StreamingChunk]],
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamingChunk]:
        """Feed transport events through ``parse``, yielding canonical chunks."""
        async for event in self._transport.stream(
            url, headers=headers, body=body, cancel=cancel
        ):
            if event.done:
                return
            if event.fatal:
                raise self._fatal(event)
            if not event.ok:
                yield StreamingChunk.degraded(event.error, model=self._config.model)
                continue
            if not isinstance(event.data, dict):
                yield StreamingChunk.degraded(
                    "Stream element is not a JSON object", model=self._config.model
                )
                continue
            try:
                chunk = parse(event.data)
            except PARSE_ERRORS as e:
                logger.warning(f"Unexpected {self.vendor} stream element shape: {e!r}")
                yield StreamingChunk.degraded(
                    f"Malformed stream element: {e}", model=self._config.model
                )
                continue
            if chunk is not None:
                yield chunk

    def _parse(self, parse: Callable[..., T], data: Dict[str, Any], *args: Any) -> T:
        """
        Run a body parser, reporting an unexpected body shape as a protocol error.

        Raises:
            ProviderProtocolError: the body is JSON but not the vendor's shape
        """
        try:
            return parse(data, *args)
        except PARSE_ERRORS as e:
            raise ProviderProtocolError(self.vendor, f"Unexpected response shape: {e}") from e

    def _check(self, result: TransportResult) -> Dict[str, Any]:
        if not result.ok and result.status is not None and 200 <= result.status < 300:
            raise ProviderProtocolError(self.vendor, result.error or "Malformed response")
        if not result.ok:
            raise provider_error(
                self.vendor,
                result.error or "Unknown error",
                status_code=result.status,
                aborted=result.aborted,
                retry_after=result.retry_after,
            )
        if not isinstance(result.data, dict):
            raise ProviderProtocolError(self.vendor, "Response body is not a JSON object")
        return result.data

    def _fatal(self, event: StreamEvent) -> ProviderError:
        return provider_error(
            self.vendor,
            f"streaming error: {event.error or 'Unknown error'}",
            status_code=event.status,
            aborted=event.aborted,
            retry_after=event.retry_after,
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(model={self._config.model!r}, "
            f"provider={self.provider.value!r})"
        )
