"""
Model registry: the model catalog plus a cache of validated clients.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Type, Any, Iterable

from ..adapters import (
    AnthropicAdapter,
    AzureOpenAIAdapter,
    DeepSeekAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    QwenAdapter,
)
from ..auth.types import AuthConfig
from ..models.catalog import ModelConfig, ModelProvider, default_models, filter_by_provider
from .config import GatewaySettings
from .errors import (
    ClientValidationError,
    ModelNotFoundError,
    ProviderMismatchError,
    UnsupportedCapabilityError,
)
from .interface import ModelClient
from .transport import HttpTransport

logger = logging.getLogger(__name__)

DEFAULT_ADAPTERS: Dict[ModelProvider, Type[ModelClient]] = {
    ModelProvider.GOOGLE_GEMINI: GoogleAdapter,
    ModelProvider.ANTHROPIC_CLAUDE: AnthropicAdapter,
    ModelProvider.OPENAI_GPT: OpenAIAdapter,
    ModelProvider.AZURE_OPENAI: AzureOpenAIAdapter,
    ModelProvider.DEEPSEEK: DeepSeekAdapter,
    ModelProvider.QWEN: QwenAdapter,
}


def client_cache_key(model: str, auth: AuthConfig) -> str:
    return f"{model}-{auth.cache_key}"


class ModelRegistry:
    """
    Registry for models and their clients.

    The catalog is populated at construction; clients are built on first
    use, validated with a real request, and cached per
    (model, auth provider, auth method). Concurrent first use of one key
    shares a single construction.
    """

    def __init__(
        self,
        models: Optional[Iterable[ModelConfig]] = None,
        settings: Optional[GatewaySettings] = None,
        transport: Optional[HttpTransport] = None,
    ):
        """
        Initialize the registry.

        Args:
            models: Initial catalog; the built-in catalog when None
            settings: Gateway settings; extra models and provider overrides
                are applied from it
            transport: Transport shared by every client built here
        """
        self._settings = settings or GatewaySettings()
        self._transport = transport or HttpTransport(timeout=self._settings.request_timeout)
        self._models: Dict[str, ModelConfig] = {}
        self._adapters: Dict[ModelProvider, Type[ModelClient]] = dict(DEFAULT_ADAPTERS)
        self._clients: Dict[str, ModelClient] = {}
        self._pending: Dict[str, "asyncio.Future[ModelClient]"] = {}

        for config in default_models() if models is None else models:
            self.register_model(config)
        self.load_models(self._settings)

    @property
    def settings(self) -> GatewaySettings:
        return self._settings

    # Catalog

    def register_model(self, config: ModelConfig) -> None:
        """Add or replace a model in the catalog."""
        overrides = self._settings.provider_settings(config.provider)
        update: Dict[str, Any] = {}
        if overrides.base_url and not config.base_url:
            update["base_url"] = overrides.base_url
        if overrides.api_version and not config.api_version:
            update["api_version"] = overrides.api_version
        if update:
            config = config.model_copy(update=update)

        self._models[config.model] = config
        logger.debug(f"Registered model: {config.model} ({config.provider.value})")

    def load_models(self, settings: GatewaySettings) -> int:
        """
        Register the extra models a configuration declares.

        Returns:
            Number of models registered
        """
        for config in settings.models:
            self.register_model(config)
        if settings.models:
            logger.info(f"Loaded {len(settings.models)} models from configuration")
        return len(settings.models)

    def get_model(self, name: str) -> Optional[ModelConfig]:
        return self._models.get(name)

    def list_models(self) -> List[ModelConfig]:
        return list(self._models.values())

    def get_models_by_provider(self, provider: ModelProvider) -> List[ModelConfig]:
        return filter_by_provider(self._models.values(), provider)

    def get_available_models(self, auth: AuthConfig) -> List[ModelConfig]:
        """Models served by the provider the auth identity belongs to."""
        provider = auth.model_provider
        if provider is None:
            return []
        return self.get_models_by_provider(provider)

    # Adapters

    def register_adapter(
        self,
        provider: ModelProvider,
        adapter_class: Type[ModelClient]
    ) -> None:
        """
        Register an adapter class for a provider.

        Args:
            provider: Provider the adapter speaks to
            adapter_class: ModelClient subclass taking (config, auth, transport)
        """
        self._adapters[provider] = adapter_class
        logger.info(f"Registered model adapter: {provider.value} -> {adapter_class.__name__}")

    def get_adapter(self, provider: ModelProvider) -> Optional[Type[ModelClient]]:
        return self._adapters.get(provider)

    # Clients

    async def create_client(self, model: str, auth: AuthConfig) -> ModelClient:
        """
        Get or build a validated client.

        Args:
            model: Model name from the catalog
            auth: Auth identity whose provider must match the model's

        Returns:
            The cached client for (model, provider, method)

        Raises:
            ModelNotFoundError: model is not in the catalog
            ProviderMismatchError: auth belongs to another provider
            UnsupportedCapabilityError: no adapter for the model's provider
            ClientValidationError: the validation request failed
        """
        key = client_cache_key(model, auth)

        while True:
            client = self._clients.get(key)
            if client is not None:
                return client
            pending = self._pending.get(key)
            if pending is None:
                break
            # Waiting never cancels the shared construction
            await asyncio.wait({pending})
            if not pending.cancelled():
                return pending.result()
            logger.debug(f"Construction of {key} was cancelled, retrying")

        config = self.get_model(model)
        if config is None:
            raise ModelNotFoundError(model)
        if auth.model_provider != config.provider:
            raise ProviderMismatchError(
                f"Auth provider {auth.provider.value} cannot access "
                f"{config.provider.value} model {model}",
                provider=config.provider.value,
            )
        adapter_class = self._adapters.get(config.provider)
        if adapter_class is None:
            raise UnsupportedCapabilityError(
                f"No adapter registered for provider: {config.provider.value}",
                provider=config.provider.value,
            )

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            client = adapter_class(config, auth, transport=self._transport)
            if not await client.validate():
                raise ClientValidationError(model, config.provider.value)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved; concurrent waiters still receive it
            future.exception()
            raise
        else:
            self._clients[key] = client
            future.set_result(client)
            logger.info(f"Created model client: {key}")
            return client
        finally:
            self._pending.pop(key, None)

    def clear_client_cache(self) -> None:
        self._clients.clear()
        logger.info("Cleared model client cache")

    def get_client_cache_stats(self) -> Dict[str, Any]:
        return {
            "total": len(self._clients),
            "keys": list(self._clients.keys()),
        }
