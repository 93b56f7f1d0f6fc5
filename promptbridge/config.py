"""Configuration management using pydantic-settings."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .providers.builtin import BUILTIN_PROVIDERS
from .providers.types import ProviderDescriptor, ProviderId

logger = logging.getLogger(__name__)

# Keys a providers YAML entry may override
_OVERRIDABLE_FIELDS = {"api_key", "base_url", "default_model", "timeout_ms", "organization", "api_version", "beta_features"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ollama (local, no credentials)
    ollama_host: str = BUILTIN_PROVIDERS[ProviderId.OLLAMA].base_url
    ollama_default_model: str = BUILTIN_PROVIDERS[ProviderId.OLLAMA].default_model

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_base_url: str = BUILTIN_PROVIDERS[ProviderId.OPENAI].base_url
    openai_default_model: str = BUILTIN_PROVIDERS[ProviderId.OPENAI].default_model
    openai_organization: Optional[str] = None

    # Gemini
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "google_api_key"),
    )
    gemini_base_url: str = BUILTIN_PROVIDERS[ProviderId.GEMINI].base_url
    gemini_default_model: str = BUILTIN_PROVIDERS[ProviderId.GEMINI].default_model

    # Anthropic
    anthropic_api_key: Optional[str] = None
    anthropic_base_url: str = BUILTIN_PROVIDERS[ProviderId.ANTHROPIC].base_url
    anthropic_default_model: str = BUILTIN_PROVIDERS[ProviderId.ANTHROPIC].default_model
    anthropic_version: str = "2023-06-01"
    anthropic_beta: str = ""  # comma separated

    # Requests
    request_timeout_ms: int = Field(default=60000, gt=0)

    # Optional YAML file with per-provider overrides
    providers_config_path: Optional[Path] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


def get_settings() -> Settings:
    """Load .env into the process environment and read settings."""
    load_dotenv()
    return Settings()


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def build_provider_descriptors(settings: Settings) -> List[ProviderDescriptor]:
    """
    Build one descriptor per supported provider.

    Descriptors are returned even when credentials are missing; the provider
    manager decides which ones to skip. YAML overrides are applied last.

    Args:
        settings: Application settings

    Returns:
        List of provider descriptors
    """
    timeout_ms = settings.request_timeout_ms
    descriptors: Dict[ProviderId, Dict[str, Any]] = {
        ProviderId.OLLAMA: {
            "name": ProviderId.OLLAMA,
            "base_url": settings.ollama_host,
            "default_model": settings.ollama_default_model,
            "timeout_ms": timeout_ms,
        },
        ProviderId.GEMINI: {
            "name": ProviderId.GEMINI,
            "api_key": settings.gemini_api_key,
            "base_url": settings.gemini_base_url,
            "default_model": settings.gemini_default_model,
            "timeout_ms": timeout_ms,
        },
        ProviderId.OPENAI: {
            "name": ProviderId.OPENAI,
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
            "default_model": settings.openai_default_model,
            "timeout_ms": timeout_ms,
            "organization": settings.openai_organization,
        },
        ProviderId.ANTHROPIC: {
            "name": ProviderId.ANTHROPIC,
            "api_key": settings.anthropic_api_key,
            "base_url": settings.anthropic_base_url,
            "default_model": settings.anthropic_default_model,
            "timeout_ms": timeout_ms,
            "api_version": settings.anthropic_version,
            "beta_features": _split_csv(settings.anthropic_beta),
        },
    }

    if settings.providers_config_path:
        overrides = load_provider_overrides(settings.providers_config_path)
        for provider_id, override in overrides.items():
            if override.pop("enabled", True) is False:
                logger.info(f"Provider {provider_id.value} disabled by {settings.providers_config_path}")
                descriptors.pop(provider_id, None)
                continue
            descriptors[provider_id].update(override)

    return [ProviderDescriptor(**fields) for fields in descriptors.values()]


def load_provider_overrides(path: Path) -> Dict[ProviderId, Dict[str, Any]]:
    """
    Read per-provider overrides from a YAML file.

    Expected layout:

        providers:
          - id: ollama
            base_url: http://gpu-box:11434
          - id: gemini
            enabled: false

    Raises:
        ValueError: if an entry names an unknown provider or field
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Providers config not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    overrides: Dict[ProviderId, Dict[str, Any]] = {}
    for entry in data.get("providers") or []:
        raw_id = str(entry.get("id", "")).strip().lower()
        try:
            provider_id = ProviderId(raw_id)
        except ValueError:
            raise ValueError(f"Unknown provider '{raw_id}' in {path}") from None

        fields = {key: value for key, value in entry.items() if key != "id"}
        unknown = set(fields) - _OVERRIDABLE_FIELDS - {"enabled"}
        if unknown:
            raise ValueError(f"Unsupported field(s) for provider '{raw_id}' in {path}: {', '.join(sorted(unknown))}")
        overrides[provider_id] = fields
    return overrides
