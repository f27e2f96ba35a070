"""
Authentication identity consumed by adapters.
"""

from .types import AuthProvider, AuthMethod, AuthConfig, PROVIDER_MODEL_MAP

__all__ = ["AuthProvider", "AuthMethod", "AuthConfig", "PROVIDER_MODEL_MAP"]
