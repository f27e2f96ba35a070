"""
Canonical data models.
"""

from .request import (
    ContentPart,
    ChatMessage,
    FunctionCall,
    ToolCall,
    FunctionDefinition,
    ToolDefinition,
    ForcedFunction,
    ToolChoice,
    GenerationParameters,
    GenerationRequest,
    TokenCountRequest,
    EmbeddingRequest,
)
from .response import (
    FinishReason,
    Usage,
    Choice,
    ToolCallDelta,
    StreamDelta,
    StreamChoice,
    GenerationResponse,
    StreamingChunk,
    TokenCountResponse,
    EmbeddingResponse,
)
from .catalog import ModelProvider, ModelCapabilities, ModelConfig

__all__ = [
    "ContentPart",
    "ChatMessage",
    "FunctionCall",
    "ToolCall",
    "FunctionDefinition",
    "ToolDefinition",
    "ForcedFunction",
    "ToolChoice",
    "GenerationParameters",
    "GenerationRequest",
    "TokenCountRequest",
    "EmbeddingRequest",
    "FinishReason",
    "Usage",
    "Choice",
    "ToolCallDelta",
    "StreamDelta",
    "StreamChoice",
    "GenerationResponse",
    "StreamingChunk",
    "TokenCountResponse",
    "EmbeddingResponse",
    "ModelProvider",
    "ModelCapabilities",
    "ModelConfig",
]
