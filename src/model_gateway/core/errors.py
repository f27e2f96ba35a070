"""
Model gateway error types.
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str, provider: str = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ModelNotFoundError(GatewayError):
    """Raised when a model name is not in the catalog."""

    def __init__(self, model: str):
        super().__init__(f"Unknown model: {model}")
        self.model = model


class ClientValidationError(GatewayError):
    """Raised when a freshly constructed client fails validation."""

    def __init__(self, model: str, provider: str = None):
        super().__init__(f"Failed to validate model client for {model}", provider)
        self.model = model


class ProviderMismatchError(GatewayError):
    """Raised when the auth identity belongs to a different provider than the model."""
    pass


class UnsupportedCapabilityError(GatewayError):
    """Raised when an operation is not supported by the resolved vendor or model."""
    pass


class InvalidRequestError(GatewayError):
    """Raised when a request violates a domain rule."""
    pass


class ProviderError(GatewayError):
    """
    Vendor-qualified failure.

    Transport and protocol failures are re-raised as this type (or a
    subclass) so callers never see raw transport exceptions.
    """

    def __init__(self, vendor: str, cause: str, status_code: Optional[int] = None):
        super().__init__(f"{vendor} API failed: {cause}", provider=vendor)
        self.vendor = vendor
        self.cause = cause
        self.status_code = status_code


class ProviderAuthenticationError(ProviderError):
    """Raised when the vendor rejects credentials or model access (401/403)."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        vendor: str,
        cause: str,
        status_code: Optional[int] = 429,
        retry_after: float = None,
    ):
        super().__init__(vendor, cause, status_code)
        self.retry_after = retry_after


class ProviderProtocolError(ProviderError):
    """Raised when a vendor response is malformed or missing required fields."""
    pass


class RequestAbortedError(ProviderError):
    """Raised when a request is cancelled or times out."""
    pass


def provider_error(
    vendor: str,
    cause: str,
    status_code: Optional[int] = None,
    aborted: bool = False,
    retry_after: float = None,
) -> ProviderError:
    """Choose the ProviderError subclass that matches a failed exchange."""
    if aborted:
        return RequestAbortedError(vendor, cause, status_code)
    if status_code in (401, 403):
        return ProviderAuthenticationError(vendor, cause, status_code)
    if status_code == 429:
        return ProviderRateLimitError(vendor, cause, status_code, retry_after=retry_after)
    return ProviderError(vendor, cause, status_code)
