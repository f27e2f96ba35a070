"""
Vendor adapters translating the canonical schema to each provider's wire format.
"""

from .google_adapter import GoogleAdapter
from .anthropic_adapter import AnthropicAdapter
from .openai_adapter import (
    OpenAICompatibleAdapter,
    OpenAIAdapter,
    DeepSeekAdapter,
    AzureOpenAIAdapter,
)
from .qwen_adapter import QwenAdapter

__all__ = [
    "GoogleAdapter",
    "AnthropicAdapter",
    "OpenAICompatibleAdapter",
    "OpenAIAdapter",
    "DeepSeekAdapter",
    "AzureOpenAIAdapter",
    "QwenAdapter",
]
