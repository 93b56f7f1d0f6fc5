"""
LLM Provider Abstraction Layer

This package provides a unified interface for issuing one request shape
against structurally different vendor backends.

Key components:
- types: Data models and enums
- errors: Shared error taxonomy
- streaming: Incremental line splitting, usage accumulation, stream state
- builtin: Vendor defaults
- registry: Adapter factory and provider routing
- adapters: Vendor-specific implementations

Usage:
    from promptbridge.providers import ProviderManager, PromptContext, PromptOptions

    manager = ProviderManager.from_settings()
    context = PromptContext(prompt="Hello", options=PromptOptions(provider="ollama"))

    # Complete response
    response = await manager.process_prompt(context)

    # Stream responses
    async for chunk in manager.process_streaming_prompt(context):
        if chunk.done:
            print(chunk.usage)
        else:
            print(chunk.text, end="")
"""
from .types import (
    ProviderId,
    ProviderDefinition,
    ProviderDescriptor,
    PromptOptions,
    PromptContext,
    TokenUsage,
    LLMResponse,
    StreamChunk,
    ModelInfo,
    ProviderStatus,
)
from .errors import ErrorKind, ProviderError
from .builtin import (
    BUILTIN_PROVIDERS,
    DEFAULT_PROVIDER,
    get_builtin_provider,
    get_all_builtin_providers,
    is_builtin_provider,
)
from .base import BaseLLMAdapter, StreamingCallback
from .registry import AdapterRegistry, ProviderManager

__all__ = [
    # Types
    "ProviderId",
    "ProviderDefinition",
    "ProviderDescriptor",
    "PromptOptions",
    "PromptContext",
    "TokenUsage",
    "LLMResponse",
    "StreamChunk",
    "ModelInfo",
    "ProviderStatus",
    # Errors
    "ErrorKind",
    "ProviderError",
    # Builtin
    "BUILTIN_PROVIDERS",
    "DEFAULT_PROVIDER",
    "get_builtin_provider",
    "get_all_builtin_providers",
    "is_builtin_provider",
    # Base
    "BaseLLMAdapter",
    "StreamingCallback",
    # Registry
    "AdapterRegistry",
    "ProviderManager",
]
