"""
promptbridge

One request shape, four LLM backends: a local Ollama server and the OpenAI,
Gemini and Anthropic REST APIs, with streaming normalized into a single
chunk sequence.
"""
from .providers import (
    ErrorKind,
    LLMResponse,
    ModelInfo,
    PromptContext,
    PromptOptions,
    ProviderDescriptor,
    ProviderError,
    ProviderId,
    ProviderManager,
    StreamChunk,
    TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    "ErrorKind",
    "LLMResponse",
    "ModelInfo",
    "PromptContext",
    "PromptOptions",
    "ProviderDescriptor",
    "ProviderError",
    "ProviderId",
    "ProviderManager",
    "StreamChunk",
    "TokenUsage",
    "__version__",
]
