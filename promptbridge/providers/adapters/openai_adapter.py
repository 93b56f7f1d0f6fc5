"""
OpenAI Adapter

Adapter for OpenAI and OpenAI-compatible chat completions APIs.
Streams Server-Sent Events terminated by a literal "[DONE]" sentinel.
"""
import logging
from typing import Any, Dict, List

from ..base import BaseLLMAdapter
from ..errors import ErrorKind, ProviderError
from ..streaming import StreamSession, parse_sse_json
from ..types import LLMResponse, ModelInfo, PromptContext, ProviderId, StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

# Model families exposed by /models that cannot serve chat completions
_NON_CHAT_PREFIXES = (
    "text-embedding",
    "embedding",
    "whisper",
    "tts",
    "dall-e",
    "omni-moderation",
    "text-moderation",
    "davinci",
    "babbage",
)


class OpenAIAdapter(BaseLLMAdapter):
    """
    Adapter for the OpenAI chat completions API.

    Supports OpenAI and compatible providers reachable through a custom
    base URL. Authenticates with a Bearer token.
    """

    provider_id = ProviderId.OPENAI

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.descriptor.api_key}"
        if self.descriptor.organization:
            headers["OpenAI-Organization"] = self.descriptor.organization
        return headers

    def _health_url(self) -> str:
        return f"{self.base_url}/models"

    def _completion_url(self, model: str, stream: bool) -> str:
        return f"{self.base_url}/chat/completions"

    def _build_payload(self, context: PromptContext, model: str, stream: bool) -> Dict[str, Any]:
        options = context.options
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": context.prompt}],
            "temperature": options.temperature,
            "stream": stream,
            "n": 1,
        }
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.output_format == "json":
            payload["response_format"] = {"type": "json_object"}
        if stream:
            # Usage arrives in a final chunk with an empty choices list
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def list_models(self) -> List[ModelInfo]:
        """
        Fetch chat-capable models.

        Returns:
            Models sorted by creation time, newest first
        """
        data = await self._request_json("GET", f"{self.base_url}/models", timeout=self._LIST_TIMEOUT)
        if not isinstance(data, dict) or data.get("data") is None:
            raise ProviderError("No models returned from OpenAI API", ErrorKind.API, provider=self.get_name())

        raw_models = [
            model for model in data["data"]
            if not str(model.get("id", "")).startswith(_NON_CHAT_PREFIXES)
        ]
        raw_models.sort(key=lambda m: m.get("created") or 0, reverse=True)

        return [
            ModelInfo(
                name=model["id"],
                display_name=model["id"],
                description=f"OpenAI {model['id']} model ({model.get('owned_by', 'unknown')})",
                is_default=model["id"] == self.get_default_model(),
                metadata={
                    "created": model.get("created"),
                    "owned_by": model.get("owned_by"),
                    "object": model.get("object"),
                },
            )
            for model in raw_models
            if model.get("id")
        ]

    def _parse_completion(self, data: Dict[str, Any], model: str) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("No response generated by OpenAI", ErrorKind.API, provider=self.get_name())

        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content") or ""

        if not content and message.get("refusal"):
            raise ProviderError(
                f"Request refused by OpenAI: {message['refusal']}",
                ErrorKind.SAFETY,
                provider=self.get_name(),
            )
        if not content and choice.get("finish_reason") == "content_filter":
            raise ProviderError(
                "Response blocked by OpenAI content filter",
                ErrorKind.SAFETY,
                provider=self.get_name(),
            )
        if not content:
            raise ProviderError("Empty response from OpenAI", ErrorKind.API, provider=self.get_name())

        usage = None
        if data.get("usage"):
            raw_usage = data["usage"]
            usage = TokenUsage.from_counts(raw_usage.get("prompt_tokens"), raw_usage.get("completion_tokens"))

        return LLMResponse(
            content=content,
            model=model,
            provider=self.get_name(),
            usage=usage,
            metadata={
                "id": data.get("id"),
                "created": data.get("created"),
                "finish_reason": choice.get("finish_reason"),
                "system_fingerprint": data.get("system_fingerprint"),
            },
        )

    def _handle_stream_item(self, payload: str, session: StreamSession) -> List[StreamChunk]:
        if payload == DONE_SENTINEL:
            final = session.finish()
            return [final] if final else []

        data = parse_sse_json(payload)
        if data is None:
            return []

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"OpenAI API error: {message}", ErrorKind.API, provider=self.get_name())

        raw_usage = data.get("usage")
        if raw_usage:
            session.usage.update(
                prompt_tokens=raw_usage.get("prompt_tokens"),
                completion_tokens=raw_usage.get("completion_tokens"),
            )

        chunks = []
        choices = data.get("choices") or []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}
            if delta.get("refusal"):
                raise ProviderError(
                    f"Request refused by OpenAI: {delta['refusal']}",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )
            chunk = session.emit(delta.get("content") or "")
            if chunk:
                chunks.append(chunk)
            if choice.get("finish_reason"):
                # Terminal only on [DONE]; the usage chunk still follows
                session.finish_reason = choice["finish_reason"]
        return chunks

    def get_model_not_found_message(self, model_name: str) -> str:
        return (
            f"Model '{model_name}' not found. "
            f"Available OpenAI models: gpt-4o, gpt-4o-mini, gpt-4-turbo, gpt-3.5-turbo"
        )
