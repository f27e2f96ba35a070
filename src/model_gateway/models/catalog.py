"""
Model configuration catalog.

Pure data plus side-effect-free predicates. Lookups for an unknown model
return an absence value and never raise.
"""

from typing import Optional, List, Dict, Any, Tuple, Iterable
from enum import Enum
from pydantic import BaseModel, Field


class ModelProvider(str, Enum):
    """Supported model providers."""
    GOOGLE_GEMINI = "google-gemini"
    ANTHROPIC_CLAUDE = "anthropic-claude"
    OPENAI_GPT = "openai-gpt"
    AZURE_OPENAI = "azure-openai"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    CUSTOM = "custom"


class ModelCapability(str, Enum):
    """Boolean capabilities a model may support."""
    TEXT_GENERATION = "text_generation"
    STREAMING = "streaming"
    FUNCTION_CALLING = "function_calling"
    MULTIMODAL = "multimodal"
    EMBEDDING = "embedding"
    TOKEN_COUNTING = "token_counting"


class ModelCapabilities(BaseModel):
    """Capability set of a single model."""
    text_generation: bool = True
    streaming: bool = True
    function_calling: bool = False
    multimodal: bool = False
    embedding: bool = False
    token_counting: bool = False
    max_tokens: Optional[int] = None
    max_context_length: Optional[int] = None
    supported_mime_types: Tuple[str, ...] = ()

    class Config:
        frozen = True


class ModelConfig(BaseModel):
    """
    Configuration of one model.

    Created once when the catalog is populated and immutable thereafter.
    """
    provider: ModelProvider
    model: str
    display_name: Optional[str] = None
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    deployment: Optional[str] = None
    default_parameters: Optional[Dict[str, Any]] = None

    class Config:
        frozen = True


def has_capability(config: Optional[ModelConfig], capability: ModelCapability) -> bool:
    """Check if a model supports a capability. False for an unknown model."""
    if config is None:
        return False
    return getattr(config.capabilities, ModelCapability(capability).value) is True


def max_tokens_for(config: Optional[ModelConfig]) -> Optional[int]:
    return config.capabilities.max_tokens if config else None


def max_context_length_for(config: Optional[ModelConfig]) -> Optional[int]:
    return config.capabilities.max_context_length if config else None


def mime_types_for(config: Optional[ModelConfig]) -> List[str]:
    return list(config.capabilities.supported_mime_types) if config else []


_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")


def _model(
    provider: ModelProvider,
    model: str,
    display_name: str,
    *,
    multimodal: bool,
    token_counting: bool,
    max_tokens: int,
    max_context_length: int,
) -> ModelConfig:
    return ModelConfig(
        provider=provider,
        model=model,
        display_name=display_name,
        capabilities=ModelCapabilities(
            text_generation=True,
            streaming=True,
            function_calling=True,
            multimodal=multimodal,
            embedding=False,
            token_counting=token_counting,
            max_tokens=max_tokens,
            max_context_length=max_context_length,
            supported_mime_types=_IMAGE_TYPES if multimodal else (),
        ),
    )


def default_models() -> List[ModelConfig]:
    """Built-in model catalog."""
    google = ModelProvider.GOOGLE_GEMINI
    anthropic = ModelProvider.ANTHROPIC_CLAUDE
    openai = ModelProvider.OPENAI_GPT
    deepseek = ModelProvider.DEEPSEEK
    qwen = ModelProvider.QWEN
    return [
        # Google Gemini
        _model(google, "gemini-2.5-flash", "Gemini 2.5 Flash", multimodal=True,
               token_counting=True, max_tokens=8192, max_context_length=1000000),
        _model(google, "gemini-2.5-pro", "Gemini 2.5 Pro", multimodal=True,
               token_counting=True, max_tokens=8192, max_context_length=2000000),
        # Anthropic Claude
        _model(anthropic, "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", multimodal=True,
               token_counting=False, max_tokens=8192, max_context_length=200000),
        _model(anthropic, "claude-3-5-haiku-20241022", "Claude 3.5 Haiku", multimodal=True,
               token_counting=False, max_tokens=8192, max_context_length=200000),
        _model(anthropic, "claude-3-opus-20240229", "Claude 3 Opus", multimodal=True,
               token_counting=False, max_tokens=4096, max_context_length=200000),
        # OpenAI GPT
        _model(openai, "gpt-4", "GPT-4", multimodal=False,
               token_counting=False, max_tokens=4096, max_context_length=8192),
        _model(openai, "gpt-4-turbo", "GPT-4 Turbo", multimodal=True,
               token_counting=False, max_tokens=4096, max_context_length=128000),
        _model(openai, "gpt-3.5-turbo", "GPT-3.5 Turbo", multimodal=False,
               token_counting=False, max_tokens=4096, max_context_length=16385),
        # DeepSeek
        _model(deepseek, "deepseek-chat", "DeepSeek Chat", multimodal=False,
               token_counting=False, max_tokens=4096, max_context_length=32768),
        _model(deepseek, "deepseek-coder", "DeepSeek Coder", multimodal=False,
               token_counting=False, max_tokens=4096, max_context_length=16384),
        _model(deepseek, "deepseek-v3", "DeepSeek V3", multimodal=False,
               token_counting=False, max_tokens=8192, max_context_length=64000),
        # Qwen
        _model(qwen, "qwen-turbo", "Qwen Turbo", multimodal=False,
               token_counting=False, max_tokens=1500, max_context_length=6000),
        _model(qwen, "qwen-plus", "Qwen Plus", multimodal=False,
               token_counting=False, max_tokens=2000, max_context_length=32000),
        _model(qwen, "qwen-max", "Qwen Max", multimodal=False,
               token_counting=False, max_tokens=2000, max_context_length=8000),
        _model(qwen, "qwen2.5-coder-32b-instruct", "Qwen2.5-Coder 32B", multimodal=False,
               token_counting=False, max_tokens=8192, max_context_length=131072),
        _model(qwen, "qwen2.5-coder-7b-instruct", "Qwen2.5-Coder 7B", multimodal=False,
               token_counting=False, max_tokens=8192, max_context_length=131072),
    ]


def filter_by_provider(
    configs: Iterable[ModelConfig],
    provider: ModelProvider,
) -> List[ModelConfig]:
    return [c for c in configs if c.provider == provider]
