"""
Model Gateway

One generation interface over many LLM vendors:
- Canonical request/response schema shared by every vendor
- Native adapters for Gemini, Claude, and the OpenAI-compatible family
- Streaming with tool-call accumulation
- Client registry with validated, cached clients
"""

from .core.gateway import ModelGateway
from .core.registry import ModelRegistry
from .core.config import GatewaySettings, load_config
from .core.accumulator import ToolCallAccumulator, accumulate_stream
from .core.errors import GatewayError, ProviderError
from .auth.types import AuthConfig, AuthMethod, AuthProvider
from .models.catalog import ModelConfig, ModelProvider
from .models.request import ChatMessage, GenerationRequest, GenerationParameters, ToolCall
from .models.response import GenerationResponse, StreamingChunk, FinishReason

__all__ = [
    "ModelGateway",
    "ModelRegistry",
    "GatewaySettings",
    "load_config",
    "ToolCallAccumulator",
    "accumulate_stream",
    "GatewayError",
    "ProviderError",
    "AuthConfig",
    "AuthMethod",
    "AuthProvider",
    "ModelConfig",
    "ModelProvider",
    "ChatMessage",
    "GenerationRequest",
    "GenerationParameters",
    "ToolCall",
    "GenerationResponse",
    "StreamingChunk",
    "FinishReason",
]
