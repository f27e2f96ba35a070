"""
Authentication types.

Credential acquisition happens outside the gateway; adapters only read
an ``AuthConfig`` and never mutate or persist it.
"""

from typing import Optional, Dict
from enum import Enum
from pydantic import BaseModel

from ..models.catalog import ModelProvider


class AuthProvider(str, Enum):
    """Supported authentication providers."""
    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    AZURE = "azure"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    CUSTOM = "custom"


class AuthMethod(str, Enum):
    """Authentication methods for each provider."""
    GOOGLE_OAUTH = "google-oauth"
    GOOGLE_API_KEY = "google-api-key"
    GOOGLE_VERTEX_AI = "google-vertex-ai"
    ANTHROPIC_API_KEY = "anthropic-api-key"
    OPENAI_API_KEY = "openai-api-key"
    OPENAI_AZURE = "openai-azure"
    DEEPSEEK_API_KEY = "deepseek-api-key"
    QWEN_API_KEY = "qwen-api-key"
    CUSTOM_API_KEY = "custom-api-key"
    CUSTOM_OAUTH = "custom-oauth"


PROVIDER_MODEL_MAP: Dict[AuthProvider, ModelProvider] = {
    AuthProvider.GOOGLE: ModelProvider.GOOGLE_GEMINI,
    AuthProvider.ANTHROPIC: ModelProvider.ANTHROPIC_CLAUDE,
    AuthProvider.OPENAI: ModelProvider.OPENAI_GPT,
    AuthProvider.AZURE: ModelProvider.AZURE_OPENAI,
    AuthProvider.DEEPSEEK: ModelProvider.DEEPSEEK,
    AuthProvider.QWEN: ModelProvider.QWEN,
    AuthProvider.CUSTOM: ModelProvider.CUSTOM,
}


class AuthConfig(BaseModel):
    """
    Opaque auth identity: provider, method and secret material.

    Only the fields relevant to ``method`` are expected to be set.
    """
    provider: AuthProvider
    method: AuthMethod
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    base_url: Optional[str] = None
    endpoint: Optional[str] = None
    api_version: Optional[str] = None
    deployment: Optional[str] = None
    project_id: Optional[str] = None
    location: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    class Config:
        frozen = True

    @property
    def model_provider(self) -> Optional[ModelProvider]:
        return PROVIDER_MODEL_MAP.get(self.provider)

    @property
    def cache_key(self) -> str:
        return f"{self.provider.value}-{self.method.value}"

    def __repr__(self) -> str:
        return f"AuthConfig(provider={self.provider.value!r}, method={self.method.value!r})"
