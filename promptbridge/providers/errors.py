"""
Provider error taxonomy.

Every adapter and the registry fail with ProviderError; the kind tells callers
which category of failure occurred without parsing messages.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Shared failure categories"""
    AUTH = "auth"                          # Missing/invalid credentials (401/403)
    NETWORK = "network"                    # Connection refused, DNS failure
    TIMEOUT = "timeout"                    # No response within the timeout window
    RATE_LIMIT = "rate_limit"              # Vendor throttling (429)
    MODEL_NOT_FOUND = "model_not_found"    # Pre-flight validation or vendor 404
    SAFETY = "safety"                      # Content blocked or refused by the vendor
    API = "api"                            # Any other vendor-side failure
    STREAM = "stream"                      # Transport failure after the stream started
    PROVIDER = "provider"                  # Unknown or unconfigured provider alias


class ProviderError(Exception):
    """Typed failure raised by providers and the provider registry."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        cause: Optional[BaseException] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = ErrorKind(kind)
        self.cause = cause
        self.provider = provider

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, provider={self.provider!r}, message={self.message!r})"
