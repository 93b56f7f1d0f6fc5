"""
Built-in Provider Definitions

Vendor defaults for the closed set of supported providers.
"""
from typing import Dict, Optional

from .types import ProviderDefinition, ProviderId


# Alias "auto" resolves to this backend
DEFAULT_PROVIDER = ProviderId.OLLAMA

BUILTIN_PROVIDERS: Dict[ProviderId, ProviderDefinition] = {
    ProviderId.OLLAMA: ProviderDefinition(
        id=ProviderId.OLLAMA,
        name="Ollama",
        base_url="http://localhost:11434",
        default_model="gpt-oss:latest",
        requires_credentials=False,
    ),

    ProviderId.OPENAI: ProviderDefinition(
        id=ProviderId.OPENAI,
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        default_model="gpt-4o",
    ),

    ProviderId.GEMINI: ProviderDefinition(
        id=ProviderId.GEMINI,
        name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        default_model="gemini-2.0-flash",
    ),

    ProviderId.ANTHROPIC: ProviderDefinition(
        id=ProviderId.ANTHROPIC,
        name="Anthropic",
        base_url="https://api.anthropic.com",
        default_model="claude-3-7-sonnet-20250219",
    ),
}


def get_builtin_provider(provider_id: str) -> Optional[ProviderDefinition]:
    """
    Get a built-in provider definition by ID.

    Args:
        provider_id: The provider identifier

    Returns:
        ProviderDefinition if found, None otherwise
    """
    try:
        return BUILTIN_PROVIDERS.get(ProviderId(provider_id))
    except ValueError:
        return None


def get_all_builtin_providers() -> Dict[ProviderId, ProviderDefinition]:
    """Return a copy of all built-in provider definitions."""
    return BUILTIN_PROVIDERS.copy()


def is_builtin_provider(provider_id: str) -> bool:
    return get_builtin_provider(provider_id) is not None
