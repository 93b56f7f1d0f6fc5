"""
Adapter Registry

Maps provider identifiers to adapter classes and routes prompts to the
configured providers.
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set, Type

import httpx

from .adapters import AnthropicAdapter, GeminiAdapter, OllamaAdapter, OpenAIAdapter
from .base import BaseLLMAdapter, StreamingCallback
from .builtin import DEFAULT_PROVIDER
from .errors import ErrorKind, ProviderError
from .types import (
    LLMResponse,
    ModelInfo,
    PromptContext,
    ProviderDescriptor,
    ProviderId,
    ProviderStatus,
    StreamChunk,
)

logger = logging.getLogger(__name__)

AUTO_PROVIDER_ALIAS = "auto"


class AdapterRegistry:
    """
    Adapter factory.

    Keyed by the closed set of provider identifiers; every adapter class is
    constructed from a ProviderDescriptor.
    """

    _adapters: Dict[ProviderId, Type[BaseLLMAdapter]] = {
        ProviderId.OLLAMA: OllamaAdapter,
        ProviderId.OPENAI: OpenAIAdapter,
        ProviderId.GEMINI: GeminiAdapter,
        ProviderId.ANTHROPIC: AnthropicAdapter,
    }

    @classmethod
    def adapter_class_for(cls, provider_id: str) -> Type[BaseLLMAdapter]:
        """
        Get the adapter class for a provider identifier.

        Raises:
            ProviderError: provider kind for identifiers outside the closed set
        """
        try:
            return cls._adapters[ProviderId(provider_id)]
        except (ValueError, KeyError):
            raise ProviderError(
                f"Unknown provider '{provider_id}'. Supported providers: {', '.join(cls.get_available_adapters())}",
                ErrorKind.PROVIDER,
            ) from None

    @classmethod
    def create(
        cls,
        descriptor: ProviderDescriptor,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> BaseLLMAdapter:
        """
        Build the adapter for a provider descriptor.

        Args:
            descriptor: Provider configuration
            transport: Optional httpx transport shared by the adapter's clients

        Returns:
            Adapter instance for the provider
        """
        adapter_class = cls.adapter_class_for(descriptor.name)
        return adapter_class(descriptor, transport=transport)

    @classmethod
    def get_available_adapters(cls) -> List[str]:
        return [provider_id.value for provider_id in cls._adapters]


class ProviderManager:
    """
    Routes prompts to provider adapters.

    Adapters are created once at startup; providers that need credentials
    and have none configured are skipped. Calls are never serialized, so
    concurrent prompts to the same or different providers run side by side.
    """

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._providers: Dict[str, BaseLLMAdapter] = {}

        for descriptor in descriptors:
            adapter_class = AdapterRegistry.adapter_class_for(descriptor.name)
            if adapter_class.requires_credentials() and not descriptor.api_key:
                logger.debug(f"Skipping {descriptor.name.value} provider: no API key configured")
                continue
            self._providers[descriptor.name.value] = AdapterRegistry.create(descriptor, transport=transport)

        logger.info(f"Initialized providers: {', '.join(self._providers) or 'none'}")

    @classmethod
    def from_settings(cls, settings=None, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ProviderManager":
        """Build a manager from application settings (environment by default)."""
        from ..config import build_provider_descriptors, get_settings

        return cls(build_provider_descriptors(settings or get_settings()), transport=transport)

    # ------------------------------------------------------------------
    # Provider lookup
    # ------------------------------------------------------------------

    def resolve_provider_name(self, alias: str) -> str:
        """
        Resolve a provider alias to a configured provider name.

        'auto' resolves to the default backend.

        Raises:
            ProviderError: provider kind when the alias is unknown or unconfigured
        """
        name = (alias or AUTO_PROVIDER_ALIAS).strip().lower()
        if name == AUTO_PROVIDER_ALIAS:
            name = DEFAULT_PROVIDER.value

        if name not in self._providers:
            available = ", ".join(self.get_available_provider_names()) or "none"
            raise ProviderError(
                f"Unknown provider '{alias}'. Available providers: {available}",
                ErrorKind.PROVIDER,
                provider=name,
            )
        return name

    def get_provider(self, provider_name: str) -> BaseLLMAdapter:
        provider = self._providers.get(provider_name)
        if provider is None:
            raise ProviderError(
                f"Provider '{provider_name}' is not available",
                ErrorKind.PROVIDER,
                provider=provider_name,
            )
        return provider

    def get_default_provider(self) -> BaseLLMAdapter:
        return self.get_provider(DEFAULT_PROVIDER.value)

    def get_available_provider_names(self) -> List[str]:
        """Names of all configured providers, in registration order."""
        return list(self._providers)

    async def get_implemented_provider_names(self) -> Set[str]:
        """
        Check every configured provider concurrently.

        Returns:
            Names of providers that answered their availability check
        """
        names = list(self._providers)
        results = await asyncio.gather(
            *(self._providers[name].is_available() for name in names),
            return_exceptions=True,
        )

        implemented = set()
        for name, result in zip(names, results):
            if result is True:
                implemented.add(name)
            elif isinstance(result, BaseException):
                logger.debug(f"Provider {name} not available: {result!r}")
        return implemented

    # ------------------------------------------------------------------
    # Prompt processing
    # ------------------------------------------------------------------

    async def process_prompt(self, context: PromptContext) -> LLMResponse:
        """
        Resolve the provider, validate an explicit model, and generate a response.

        Raises:
            ProviderError: model_not_found before any generation request when
                the requested model is not offered by the provider
        """
        provider = self._prepare(context, "Processing")
        await self._ensure_model(provider, context)
        return await provider.generate_response(context)

    async def process_streaming_prompt(self, context: PromptContext) -> AsyncIterator[StreamChunk]:
        """Streaming counterpart of process_prompt()."""
        provider = self._prepare(context, "Streaming")
        await self._ensure_model(provider, context)
        async for chunk in provider.stream(context):
            yield chunk

    async def process_streaming_prompt_with_callback(
        self,
        context: PromptContext,
        on_chunk: StreamingCallback,
    ) -> None:
        """Callback form of process_streaming_prompt()."""
        provider = self._prepare(context, "Streaming")
        await self._ensure_model(provider, context)
        await provider.generate_streaming_response(context, on_chunk)

    def _prepare(self, context: PromptContext, action: str) -> BaseLLMAdapter:
        provider_name = self.resolve_provider_name(context.options.provider)
        provider = self.get_provider(provider_name)
        options = context.options

        logger.info(f"{action} with {provider_name} provider...")
        logger.info(f"Model: {options.model or provider.get_default_model()}")
        logger.info(f"Temperature: {options.temperature}")
        if options.top_p is not None:
            logger.info(f"Top-P: {options.top_p}")
        if options.top_k is not None:
            logger.info(f"Top-K: {options.top_k}")
        return provider

    @staticmethod
    async def _ensure_model(provider: BaseLLMAdapter, context: PromptContext) -> None:
        model = context.options.model
        if not model:
            return
        if not await provider.validate_model(model):
            raise ProviderError(
                provider.get_model_not_found_message(model),
                ErrorKind.MODEL_NOT_FOUND,
                provider=provider.get_name(),
            )

    # ------------------------------------------------------------------
    # Model listing and status
    # ------------------------------------------------------------------

    async def list_all_models(self) -> Dict[str, List[ModelInfo]]:
        """
        List models from every reachable provider.

        Unavailable providers are left out; providers whose listing fails
        map to an empty list.
        """
        names = list(self._providers)
        results = await asyncio.gather(*(self._models_if_available(name) for name in names))
        return {name: models for name, models in zip(names, results) if models is not None}

    async def _models_if_available(self, name: str) -> Optional[List[ModelInfo]]:
        provider = self._providers[name]
        if not await provider.is_available():
            logger.debug(f"Provider {name} not available for model listing")
            return None
        try:
            return await provider.list_models()
        except ProviderError as e:
            logger.debug(f"Failed to list models for {name}: {e}")
            return []

    async def list_models_for_provider(self, provider_name: str) -> List[ModelInfo]:
        """
        List models for one provider.

        Raises:
            ProviderError: network kind when the provider is unreachable,
                otherwise whatever the listing raised
        """
        name = self.resolve_provider_name(provider_name)
        provider = self.get_provider(name)

        if not await provider.is_available():
            raise ProviderError(f"Provider {name} is not available", ErrorKind.NETWORK, provider=name)
        try:
            return await provider.list_models()
        except ProviderError as e:
            logger.error(f"Failed to list models for {name}: {e}")
            raise

    async def get_provider_status(self) -> Dict[str, ProviderStatus]:
        """Availability, model count and default model for every provider."""
        names = list(self._providers)
        statuses = await asyncio.gather(*(self._status_for(name) for name in names))
        return dict(zip(names, statuses))

    async def _status_for(self, name: str) -> ProviderStatus:
        provider = self._providers[name]
        if not await provider.is_available():
            return ProviderStatus(provider=name, available=False)
        try:
            models = await provider.list_models()
        except ProviderError as e:
            return ProviderStatus(provider=name, available=True, error=e.message)

        default = next((model.name for model in models if model.is_default), None)
        return ProviderStatus(
            provider=name,
            available=True,
            model_count=len(models),
            default_model=default,
        )
