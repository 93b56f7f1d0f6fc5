"""
LLM Adapters

This package contains the vendor adapters for each supported provider.
"""
from .ollama_adapter import OllamaAdapter
from .openai_adapter import OpenAIAdapter
from .gemini_adapter import GeminiAdapter
from .anthropic_adapter import AnthropicAdapter

__all__ = [
    "OllamaAdapter",
    "OpenAIAdapter",
    "GeminiAdapter",
    "AnthropicAdapter",
]
