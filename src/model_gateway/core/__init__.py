"""
Core gateway components.
"""

from .errors import (
    GatewayError,
    ModelNotFoundError,
    ClientValidationError,
    ProviderMismatchError,
    UnsupportedCapabilityError,
    InvalidRequestError,
    ProviderError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderProtocolError,
    RequestAbortedError,
)
from .transport import HttpTransport, TransportResult, StreamEvent
from .interface import ModelClient, estimate_tokens
from .accumulator import ToolCallAccumulator, CompletedToolCall, StreamResult, accumulate_stream
from .config import GatewaySettings, ProviderSettings, load_config
from .registry import ModelRegistry
from .gateway import ModelGateway

__all__ = [
    "GatewayError",
    "ModelNotFoundError",
    "ClientValidationError",
    "ProviderMismatchError",
    "UnsupportedCapabilityError",
    "InvalidRequestError",
    "ProviderError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderProtocolError",
    "RequestAbortedError",
    "HttpTransport",
    "TransportResult",
    "StreamEvent",
    "ModelClient",
    "estimate_tokens",
    "ToolCallAccumulator",
    "CompletedToolCall",
    "StreamResult",
    "accumulate_stream",
    "GatewaySettings",
    "ProviderSettings",
    "load_config",
    "ModelRegistry",
    "ModelGateway",
]
