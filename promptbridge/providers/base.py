"""
Base LLM Adapter

Abstract base class for LLM provider adapters.
"""
import inspect
import logging
import re
from abc import ABC, abstractmethod
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from .builtin import BUILTIN_PROVIDERS
from .errors import ErrorKind, ProviderError
from .streaming import IncrementalLineSplitter, StreamSession, decode_sse_line
from .types import LLMResponse, ModelInfo, PromptContext, ProviderDescriptor, ProviderId, StreamChunk

logger = logging.getLogger(__name__)

USER_AGENT = "promptbridge/0.1.0"

StreamingCallback = Callable[[str, bool, Optional[Dict[str, Any]]], Union[None, Awaitable[None]]]

_FRACTION_RE = re.compile(r"\.(\d+)")


def _microseconds(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Any) -> float:
    """
    Convert a vendor timestamp (epoch seconds or ISO 8601) to epoch seconds.

    Unparseable values sort last (0.0).
    """
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or not value:
        return 0.0
    # fromisoformat() on 3.10 needs exactly 3 or 6 fraction digits and no 'Z'
    normalized = _FRACTION_RE.sub(_microseconds, value.strip().replace("Z", "+00:00"))
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class BaseLLMAdapter(ABC):
    """
    Abstract base class for LLM adapters.

    Each adapter handles a specific vendor REST protocol and provides a unified
    interface for listing models and generating responses. Adapters only hold
    configuration; every call allocates its own client, buffer and usage state,
    so a single adapter can serve concurrent calls.
    """

    provider_id: ProviderId

    # Availability checks must stay short
    _HEALTH_TIMEOUT = 10.0
    _LIST_TIMEOUT = 10.0

    # Per-line decoder handed to the incremental line splitter
    _decode_stream_line = staticmethod(decode_sse_line)

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            descriptor: Provider configuration
            transport: Optional httpx transport (used to fake the network in tests)
        """
        if descriptor.name != self.provider_id:
            raise ValueError(
                f"{type(self).__name__} cannot be built from a '{descriptor.name.value}' descriptor"
            )
        if self.requires_credentials() and not descriptor.api_key:
            raise ProviderError(
                f"API key is required for {self.provider_id.value} provider",
                ErrorKind.AUTH,
                provider=self.provider_id.value,
            )
        self.descriptor = descriptor
        self.base_url = descriptor.base_url.rstrip("/")
        self._transport = transport

    @classmethod
    def requires_credentials(cls) -> bool:
        return BUILTIN_PROVIDERS[cls.provider_id].requires_credentials

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def get_name(self) -> str:
        """Return the provider identifier (e.g. 'ollama')."""
        return self.provider_id.value

    def get_default_model(self) -> str:
        return self.descriptor.default_model

    async def is_available(self) -> bool:
        """
        Ping a lightweight vendor endpoint.

        Returns:
            True when the endpoint answers 200 within the health-check timeout.
            Any network, auth or other failure yields False.
        """
        try:
            async with self._client(self._HEALTH_TIMEOUT) as client:
                response = await client.get(
                    self._health_url(),
                    headers=self._headers(),
                    params=self._auth_params(),
                )
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"{self.get_name()} not available: {e!r}")
            return False

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """
        Query the vendor listing endpoint.

        Returns:
            Models, newest first where the vendor reports creation time,
            with the configured default model flagged. No entry is flagged
            when the default model is not offered by the vendor.

        Raises:
            ProviderError: auth, network, timeout or api kind
        """

    async def validate_model(self, model_name: str) -> bool:
        """Check that a model is currently offered by the vendor (no caching)."""
        models = await self.list_models()
        return any(model.name == model_name for model in models)

    async def generate_response(self, context: PromptContext) -> LLMResponse:
        """
        Generate a complete response for the given prompt context.

        Raises:
            ProviderError: safety kind for content blocks, api kind for empty
                completions, plus the shared HTTP/transport mapping
        """
        model = self._resolve_model(context)
        logger.debug(f"Generating response with {self.get_name()} model: {model}")
        data = await self._request_json(
            "POST",
            self._completion_url(model, stream=False),
            json=self._build_payload(context, model, stream=False),
            params=self._query_params(stream=False),
            timeout=self.descriptor.timeout_seconds,
            model=model,
        )
        try:
            return self._parse_completion(data, model)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Unexpected response shape from {self.get_name()} API: {e}",
                ErrorKind.API,
                cause=e,
                provider=self.get_name(),
            ) from e

    async def stream(self, context: PromptContext) -> AsyncIterator[StreamChunk]:
        """
        Stream a response as a finite, non-restartable sequence of chunks.

        Yields content chunks in vendor order followed by exactly one chunk
        with done=True carrying the final usage. On failure a ProviderError
        is raised instead of the terminal chunk.
        """
        model = self._resolve_model(context)
        session = StreamSession(self.get_name(), model)
        started = False
        logger.debug(f"Generating streaming response with {self.get_name()} model: {model}")

        try:
            async with self._client(self.descriptor.timeout_seconds) as client:
                async with client.stream(
                    "POST",
                    self._completion_url(model, stream=True),
                    headers=self._headers(),
                    params=self._query_params(stream=True),
                    json=self._build_payload(context, model, stream=True),
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise self._error_from_response(response, model)
                    started = True
                    async for chunk in self._iter_stream_chunks(response.aiter_bytes(), session):
                        yield chunk
        except ProviderError:
            session.abort()
            raise
        except httpx.HTTPError as e:
            session.abort()
            if started:
                raise ProviderError(
                    f"Streaming error from {self.get_name()}: {e}",
                    ErrorKind.STREAM,
                    cause=e,
                    provider=self.get_name(),
                ) from e
            raise self._error_from_transport(e) from e

    async def generate_streaming_response(
        self,
        context: PromptContext,
        on_chunk: StreamingCallback,
    ) -> None:
        """
        Callback form of stream().

        on_chunk(text, done, metadata) is invoked for every chunk; it may be a
        plain function or a coroutine function.
        """
        async with aclosing(self.stream(context)) as chunks:
            async for chunk in chunks:
                result = on_chunk(chunk.text, chunk.done, chunk.metadata)
                if inspect.isawaitable(result):
                    await result

    def get_model_not_found_message(self, model_name: str) -> str:
        return f"Model '{model_name}' not found for {self.get_name()} provider"

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _health_url(self) -> str:
        """Lightweight endpoint used by is_available()."""

    @abstractmethod
    def _completion_url(self, model: str, stream: bool) -> str:
        """Endpoint for generation requests."""

    @abstractmethod
    def _build_payload(self, context: PromptContext, model: str, stream: bool) -> Dict[str, Any]:
        """Vendor request body for a single-turn prompt."""

    @abstractmethod
    def _parse_completion(self, data: Dict[str, Any], model: str) -> LLMResponse:
        """Extract content, usage and metadata from a non-streaming reply."""

    @abstractmethod
    def _handle_stream_item(self, item: Any, session: StreamSession) -> List[StreamChunk]:
        """
        Process one decoded stream line.

        Updates session usage, detects the vendor terminal signal and returns
        the chunks to deliver (content first, terminal last).
        """

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _auth_params(self) -> Dict[str, str]:
        """Query parameters carrying credentials (none by default)."""
        return {}

    def _query_params(self, stream: bool) -> Dict[str, str]:
        return self._auth_params()

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _resolve_model(self, context: PromptContext) -> str:
        return context.options.model or self.get_default_model()

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.descriptor.timeout_seconds,
            transport=self._transport,
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        timeout: Optional[float] = None,
        model: Optional[str] = None,
        **kwargs,
    ) -> Any:
        """Perform a request and return the decoded JSON body, mapping failures."""
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise self._error_from_transport(e) from e

        if response.is_error:
            raise self._error_from_response(response, model)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"Invalid JSON returned by {self.get_name()} API",
                ErrorKind.API,
                cause=e,
                provider=self.get_name(),
            ) from e

    async def _iter_stream_chunks(
        self,
        byte_chunks: AsyncIterator[bytes],
        session: StreamSession,
    ) -> AsyncIterator[StreamChunk]:
        """
        Drive the streaming state machine over raw network chunks.

        Processing stops at the vendor terminal signal, so bytes that follow it
        in the same read are never handled. If the transport ends first, the
        terminal chunk is synthesized from the usage seen so far.
        """
        splitter = IncrementalLineSplitter(self._decode_stream_line)

        async for data in byte_chunks:
            for item in splitter.feed(data):
                for chunk in self._handle_item(item, session):
                    yield chunk
                if session.terminated:
                    return

        for item in splitter.flush():
            for chunk in self._handle_item(item, session):
                yield chunk
            if session.terminated:
                return

        logger.debug(f"{self.get_name()} stream ended without a terminal signal")
        final = session.finish(vendor_signal=False)
        if final is not None:
            yield final

    def _handle_item(self, item: Any, session: StreamSession) -> List[StreamChunk]:
        """Run the vendor hook, turning malformed payload shapes into stream errors."""
        try:
            return self._handle_stream_item(item, session)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Unexpected stream payload from {self.get_name()}: {e}",
                ErrorKind.STREAM,
                cause=e,
                provider=self.get_name(),
            ) from e

    def _error_from_transport(self, exc: Exception) -> ProviderError:
        name = self.get_name()
        if isinstance(exc, httpx.TimeoutException):
            return ProviderError(
                f"Request to {name} timed out after {self.descriptor.timeout_seconds:g}s",
                ErrorKind.TIMEOUT,
                cause=exc,
                provider=name,
            )
        if isinstance(exc, httpx.ConnectError):
            return ProviderError(
                f"Cannot connect to {name} at {self.base_url}: {exc}",
                ErrorKind.NETWORK,
                cause=exc,
                provider=name,
            )
        return ProviderError(
            f"Network error while calling {name}: {exc}",
            ErrorKind.NETWORK,
            cause=exc,
            provider=name,
        )

    def _error_from_response(self, response: httpx.Response, model: Optional[str] = None) -> ProviderError:
        name = self.get_name()
        status = response.status_code
        detail = self._extract_error_message(response)

        if status == 401:
            return ProviderError(f"Invalid {name} API key: {detail}", ErrorKind.AUTH, provider=name)
        if status == 403:
            return ProviderError(
                f"{name} API access denied. Check your API key permissions: {detail}",
                ErrorKind.AUTH,
                provider=name,
            )
        if status == 404 and model:
            return ProviderError(self.get_model_not_found_message(model), ErrorKind.MODEL_NOT_FOUND, provider=name)
        if status == 429:
            return ProviderError(f"{name} API rate limit exceeded: {detail}", ErrorKind.RATE_LIMIT, provider=name)
        return ProviderError(f"{name} API error ({status}): {detail}", ErrorKind.API, provider=name)

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        """Pull a human-readable message out of a vendor error body."""
        try:
            data = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
            if data.get("message"):
                return str(data["message"])
        return str(data)[:500]
