"""
Anthropic Adapter

Adapter for the Anthropic Messages API.
Streams Server-Sent Events with distinct event types (message_start,
content_block_delta, message_delta, message_stop).
"""
import logging
from typing import Any, Dict, List, Optional

from ..base import BaseLLMAdapter, parse_timestamp
from ..errors import ErrorKind, ProviderError
from ..streaming import StreamSession, parse_sse_json
from ..types import LLMResponse, ModelInfo, PromptContext, ProviderId, StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096

_RATE_LIMIT_ERROR_TYPES = {"rate_limit_error", "overloaded_error"}


class AnthropicAdapter(BaseLLMAdapter):
    """
    Adapter for Anthropic Claude models.

    Input tokens arrive in message_start, cumulative output tokens in
    message_delta; message_stop ends the stream.
    """

    provider_id = ProviderId.ANTHROPIC

    _PAGE_LIMIT = 100

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["x-api-key"] = self.descriptor.api_key
        headers["anthropic-version"] = self.descriptor.api_version or DEFAULT_API_VERSION
        if self.descriptor.beta_features:
            headers["anthropic-beta"] = ",".join(self.descriptor.beta_features)
        return headers

    def _health_url(self) -> str:
        return f"{self.base_url}/v1/models"

    def _completion_url(self, model: str, stream: bool) -> str:
        return f"{self.base_url}/v1/messages"

    def _build_payload(self, context: PromptContext, model: str, stream: bool) -> Dict[str, Any]:
        options = context.options
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": context.prompt}],
            # max_tokens is mandatory for the Messages API
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": options.temperature,
            "stream": stream,
        }
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.top_k is not None:
            payload["top_k"] = options.top_k
        if options.output_format == "json":
            payload["system"] = "Respond with a single valid JSON document and nothing else."
        return payload

    async def list_models(self) -> List[ModelInfo]:
        """
        Fetch Claude models, following has_more/last_id pagination.

        Returns:
            Models sorted by creation date, newest first
        """
        raw_models: List[Dict[str, Any]] = []
        after_id: Optional[str] = None

        while True:
            params: Dict[str, str] = {"limit": str(self._PAGE_LIMIT)}
            if after_id:
                params["after_id"] = after_id

            data = await self._request_json(
                "GET",
                f"{self.base_url}/v1/models",
                params=params,
                timeout=self._LIST_TIMEOUT,
            )
            if not isinstance(data, dict) or data.get("data") is None:
                raise ProviderError("No models returned from Anthropic API", ErrorKind.API, provider=self.get_name())

            raw_models.extend(data["data"])
            after_id = data.get("last_id")
            if not data.get("has_more") or not after_id:
                break

        raw_models.sort(key=lambda m: parse_timestamp(m.get("created_at")), reverse=True)

        return [
            ModelInfo(
                name=model["id"],
                display_name=model.get("display_name") or model["id"],
                description=f"Anthropic {model.get('display_name') or model['id']}",
                is_default=model["id"] == self.get_default_model(),
                metadata={
                    "created_at": model.get("created_at"),
                    "type": model.get("type"),
                },
            )
            for model in raw_models
            if model.get("id")
        ]

    def _parse_completion(self, data: Dict[str, Any], model: str) -> LLMResponse:
        blocks = data.get("content") or []
        content = "\n".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        )
        stop_reason = data.get("stop_reason")

        if not content:
            if stop_reason == "refusal":
                raise ProviderError(
                    "Request refused by Anthropic Claude",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )
            raise ProviderError("Empty response from Anthropic Claude", ErrorKind.API, provider=self.get_name())

        usage = None
        raw_usage = data.get("usage")
        if raw_usage:
            usage = TokenUsage.from_counts(raw_usage.get("input_tokens"), raw_usage.get("output_tokens"))

        return LLMResponse(
            content=content,
            model=model,
            provider=self.get_name(),
            usage=usage,
            metadata={
                "id": data.get("id"),
                "stop_reason": stop_reason,
                "stop_sequence": data.get("stop_sequence"),
            },
        )

    def _handle_stream_item(self, payload: str, session: StreamSession) -> List[StreamChunk]:
        data = parse_sse_json(payload)
        if data is None:
            return []

        event_type = data.get("type")
        chunks = []

        if event_type == "message_start":
            message = data.get("message") or {}
            raw_usage = message.get("usage") or {}
            session.usage.update(
                prompt_tokens=raw_usage.get("input_tokens"),
                completion_tokens=raw_usage.get("output_tokens"),
            )
            session.metadata["id"] = message.get("id")

        elif event_type == "content_block_delta":
            delta = data.get("delta") or {}
            if delta.get("type") == "text_delta":
                chunk = session.emit(delta.get("text") or "")
                if chunk:
                    chunks.append(chunk)

        elif event_type == "message_delta":
            delta = data.get("delta") or {}
            raw_usage = data.get("usage") or {}
            session.usage.update(
                prompt_tokens=raw_usage.get("input_tokens"),
                completion_tokens=raw_usage.get("output_tokens"),
            )
            if delta.get("stop_reason"):
                session.finish_reason = delta["stop_reason"]
                session.metadata["stop_sequence"] = delta.get("stop_sequence")
            if delta.get("stop_reason") == "refusal" and not session.content:
                raise ProviderError(
                    "Request refused by Anthropic Claude",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )

        elif event_type == "message_stop":
            final = session.finish()
            if final:
                chunks.append(final)

        elif event_type == "error":
            error = data.get("error") or {}
            kind = ErrorKind.RATE_LIMIT if error.get("type") in _RATE_LIMIT_ERROR_TYPES else ErrorKind.API
            raise ProviderError(
                f"Anthropic API error: {error.get('message') or 'Unknown error'}",
                kind,
                provider=self.get_name(),
            )

        # ping, content_block_start and content_block_stop carry nothing we need
        return chunks

    def get_model_not_found_message(self, model_name: str) -> str:
        return (
            f"Model '{model_name}' not found. Available Claude models: "
            f"claude-3-7-sonnet-20250219, claude-3-haiku-20240307, claude-3-opus-20240229"
        )
