"""
Configuration loading for the model gateway.
"""

import os
import re
import logging
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ..models.catalog import ModelCapabilities, ModelConfig, ModelProvider
from .transport import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass
class ProviderSettings:
    """Endpoint overrides for one provider."""
    base_url: Optional[str] = None
    api_version: Optional[str] = None


@dataclass
class GatewaySettings:
    """Complete gateway configuration."""
    request_timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    default_parameters: Dict[str, Any] = field(default_factory=dict)
    providers: Dict[ModelProvider, ProviderSettings] = field(default_factory=dict)
    models: List[ModelConfig] = field(default_factory=list)

    def provider_settings(self, provider: ModelProvider) -> ProviderSettings:
        return self.providers.get(provider) or ProviderSettings()


def default_config_paths() -> List[Path]:
    return [
        Path("config/model-gateway/gateway.yaml"),
        Path("/etc/model-gateway/gateway.yaml"),
        Path.home() / ".config/model-gateway/gateway.yaml",
    ]


def expand_env(value: Any) -> Any:
    """Replace ``${VAR}`` references with environment values, recursively."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


def load_config(config_path: Optional[str] = None) -> GatewaySettings:
    """
    Load gateway configuration from YAML file.

    Args:
        config_path: Path to config file. If None, the default locations
            are searched in order.

    Returns:
        Loaded configuration, or defaults when no file exists or it
        cannot be parsed
    """
    if config_path is None:
        for p in default_config_paths():
            if p.exists():
                config_path = str(p)
                break

    if config_path is None or not Path(config_path).exists():
        logger.info("No model gateway config file found, using defaults")
        return GatewaySettings()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
        settings = parse_config(data or {})
    except (OSError, yaml.YAMLError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return GatewaySettings()

    logger.info(f"Loaded model gateway config from {config_path}")
    return settings


def parse_config(data: Dict[str, Any]) -> GatewaySettings:
    """Parse configuration dictionary."""
    if not isinstance(data, dict):
        raise ValueError("Gateway config must be a mapping")
    data = expand_env(data)

    providers = {}
    for name, settings in (data.get("providers") or {}).items():
        settings = settings or {}
        providers[ModelProvider(name)] = ProviderSettings(
            base_url=settings.get("base_url"),
            api_version=settings.get("api_version"),
        )

    models = []
    for entry in data.get("models") or []:
        provider = ModelProvider(entry["provider"])
        overrides = providers.get(provider) or ProviderSettings()
        models.append(ModelConfig(
            provider=provider,
            model=entry["model"],
            display_name=entry.get("display_name"),
            capabilities=ModelCapabilities(**(entry.get("capabilities") or {})),
            base_url=entry.get("base_url") or overrides.base_url,
            api_version=entry.get("api_version") or overrides.api_version,
            deployment=entry.get("deployment"),
            default_parameters=entry.get("default_parameters"),
        ))

    return GatewaySettings(
        request_timeout=float(data.get("request_timeout", DEFAULT_TIMEOUT)),
        log_level=str(data.get("log_level", "INFO")).upper(),
        default_parameters=data.get("default_parameters") or {},
        providers=providers,
        models=models,
    )


def configure_logging(settings: GatewaySettings) -> None:
    """Apply the configured level to the package logger."""
    logging.getLogger("model_gateway").setLevel(settings.log_level)
