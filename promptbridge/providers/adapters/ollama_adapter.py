"""
Ollama Adapter

Adapter for a local Ollama server (generate/tags/version endpoints).
Streams newline-delimited JSON, one object per line.
"""
import logging
from typing import Any, Dict, List

import httpx

from ..base import BaseLLMAdapter, parse_timestamp
from ..errors import ErrorKind, ProviderError
from ..streaming import StreamSession, decode_ndjson_line
from ..types import LLMResponse, ModelInfo, PromptContext, ProviderId, StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

_TIMING_FIELDS = ("total_duration", "load_duration", "prompt_eval_duration", "eval_duration")


class OllamaAdapter(BaseLLMAdapter):
    """
    Adapter for Ollama local models.

    Usage is only reported in the terminal object (done=true) as
    prompt_eval_count / eval_count. No credentials are needed.
    """

    provider_id = ProviderId.OLLAMA

    _HEALTH_TIMEOUT = 5.0
    _decode_stream_line = staticmethod(decode_ndjson_line)

    def _health_url(self) -> str:
        return f"{self.base_url}/api/version"

    def _completion_url(self, model: str, stream: bool) -> str:
        return f"{self.base_url}/api/generate"

    def _build_payload(self, context: PromptContext, model: str, stream: bool) -> Dict[str, Any]:
        options = context.options
        generation_options: Dict[str, Any] = {"temperature": options.temperature}

        # Map max_tokens to num_predict (Ollama convention)
        if options.max_tokens is not None:
            generation_options["num_predict"] = options.max_tokens
        if options.top_p is not None:
            generation_options["top_p"] = options.top_p
        if options.top_k is not None:
            generation_options["top_k"] = options.top_k

        payload: Dict[str, Any] = {
            "model": model,
            "prompt": context.prompt,
            "stream": stream,
            "options": generation_options,
        }
        if options.output_format == "json":
            payload["format"] = "json"
        return payload

    async def list_models(self) -> List[ModelInfo]:
        """
        Fetch installed models from the local Ollama instance.

        Returns:
            Models sorted by modification time, newest first. None is
            flagged default when the configured default is not installed.
        """
        logger.debug("Querying Ollama server for available models")
        data = await self._request_json(
            "GET",
            f"{self.base_url}/api/tags",
            timeout=self._LIST_TIMEOUT,
        )

        raw_models = (data or {}).get("models") or []
        raw_models = sorted(raw_models, key=lambda m: parse_timestamp(m.get("modified_at")), reverse=True)

        models = []
        for model in raw_models:
            name = model.get("name", "")
            details = model.get("details") or {}
            models.append(ModelInfo(
                name=name,
                display_name=name.split(":")[0] if ":" in name else name,
                size=model.get("size"),
                is_default=name == self.get_default_model(),
                metadata={
                    "digest": model.get("digest"),
                    "modified_at": model.get("modified_at"),
                    "family": details.get("family"),
                    "parameter_size": details.get("parameter_size"),
                    "quantization_level": details.get("quantization_level"),
                },
            ))
        return models

    def _parse_completion(self, data: Dict[str, Any], model: str) -> LLMResponse:
        content = data.get("response") or ""
        if not content:
            raise ProviderError("No response received from Ollama", ErrorKind.API, provider=self.get_name())

        metadata = {field: data.get(field) for field in _TIMING_FIELDS}
        metadata["context"] = data.get("context")
        metadata["done_reason"] = data.get("done_reason")

        return LLMResponse(
            content=content,
            model=model,
            provider=self.get_name(),
            usage=TokenUsage.from_counts(data.get("prompt_eval_count"), data.get("eval_count")),
            metadata=metadata,
        )

    def _handle_stream_item(self, item: Dict[str, Any], session: StreamSession) -> List[StreamChunk]:
        if item.get("error"):
            raise ProviderError(f"Ollama API error: {item['error']}", ErrorKind.API, provider=self.get_name())

        chunks = []
        chunk = session.emit(item.get("response") or "")
        if chunk:
            chunks.append(chunk)

        if item.get("done"):
            session.usage.update(
                prompt_tokens=item.get("prompt_eval_count"),
                completion_tokens=item.get("eval_count"),
            )
            session.finish_reason = item.get("done_reason")
            session.metadata.update({field: item.get(field) for field in _TIMING_FIELDS})
            final = session.finish()
            if final:
                chunks.append(final)
        return chunks

    def get_model_not_found_message(self, model_name: str) -> str:
        return f"Model '{model_name}' not found on Ollama server. Install it with: ollama pull {model_name}"

    def _error_from_transport(self, exc: Exception) -> ProviderError:
        if isinstance(exc, httpx.ConnectError):
            return ProviderError(
                f"Cannot connect to Ollama server at {self.base_url}. "
                f"Make sure Ollama is running with: ollama serve",
                ErrorKind.NETWORK,
                cause=exc,
                provider=self.get_name(),
            )
        if isinstance(exc, httpx.TimeoutException):
            return ProviderError(
                "Request to Ollama server timed out. The model might be too large or the server is overloaded.",
                ErrorKind.TIMEOUT,
                cause=exc,
                provider=self.get_name(),
            )
        return super()._error_from_transport(exc)

    async def get_server_info(self) -> Dict[str, Any]:
        """Return the Ollama server version payload."""
        return await self._request_json("GET", self._health_url(), timeout=self._HEALTH_TIMEOUT)

    async def is_model_available(self, model_name: str) -> bool:
        """Like validate_model(), but reports listing failures as False."""
        try:
            return await self.validate_model(model_name)
        except ProviderError as e:
            logger.debug(f"Could not check Ollama model '{model_name}': {e}")
            return False
