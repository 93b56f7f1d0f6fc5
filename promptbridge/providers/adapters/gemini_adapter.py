"""
Google Gemini Adapter

Adapter for the Google generative-language REST API.
Authenticates with an API-key query parameter and streams Server-Sent Events
(alt=sse) whose terminal event carries a candidate finishReason.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..base import BaseLLMAdapter
from ..errors import ErrorKind, ProviderError
from ..streaming import StreamSession, parse_sse_json
from ..types import LLMResponse, ModelInfo, PromptContext, ProviderId, StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

# Finish reasons that mean the candidate was withheld by content policy
_BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


def _candidate_text(candidate: Dict[str, Any]) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiAdapter(BaseLLMAdapter):
    """
    Adapter for Google Gemini API.

    usageMetadata is cumulative and repeated on every streamed event; the
    first event with a finishReason ends the stream.
    """

    provider_id = ProviderId.GEMINI

    _PAGE_SIZE = 100

    def _auth_params(self) -> Dict[str, str]:
        return {"key": self.descriptor.api_key}

    def _query_params(self, stream: bool) -> Dict[str, str]:
        params = self._auth_params()
        if stream:
            params["alt"] = "sse"
        return params

    def _health_url(self) -> str:
        return f"{self.base_url}/models"

    def _completion_url(self, model: str, stream: bool) -> str:
        method = "streamGenerateContent" if stream else "generateContent"
        return f"{self.base_url}/models/{model}:{method}"

    def _build_payload(self, context: PromptContext, model: str, stream: bool) -> Dict[str, Any]:
        options = context.options
        generation_config: Dict[str, Any] = {
            "temperature": options.temperature,
            "candidateCount": 1,
        }
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.top_k is not None:
            generation_config["topK"] = options.top_k
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.output_format == "json":
            generation_config["responseMimeType"] = "application/json"

        return {
            "contents": [{"role": "user", "parts": [{"text": context.prompt}]}],
            "generationConfig": generation_config,
        }

    async def list_models(self) -> List[ModelInfo]:
        """
        Fetch models that support generateContent.

        Paginates through all results. Gemini reports no creation time, so the
        vendor order is kept.
        """
        models: List[ModelInfo] = []
        page_token: Optional[str] = None

        while True:
            params: Dict[str, str] = {**self._auth_params(), "pageSize": str(self._PAGE_SIZE)}
            if page_token:
                params["pageToken"] = page_token

            data = await self._request_json(
                "GET",
                f"{self.base_url}/models",
                params=params,
                timeout=self._LIST_TIMEOUT,
            )
            if not isinstance(data, dict) or data.get("models") is None:
                if models:
                    break
                raise ProviderError("No models returned from Gemini API", ErrorKind.API, provider=self.get_name())

            for model in data["models"]:
                methods = model.get("supportedGenerationMethods") or []
                if "generateContent" not in methods:
                    continue

                # model name is like "models/gemini-2.0-flash"
                raw_name = model.get("name", "")
                model_id = raw_name[len("models/"):] if raw_name.startswith("models/") else raw_name
                models.append(ModelInfo(
                    name=model_id,
                    display_name=model.get("displayName", model_id),
                    description=model.get("description"),
                    is_default=model_id == self.get_default_model(),
                    metadata={
                        "input_token_limit": model.get("inputTokenLimit"),
                        "output_token_limit": model.get("outputTokenLimit"),
                        "supported_methods": methods,
                        "temperature": model.get("temperature"),
                        "top_p": model.get("topP"),
                        "top_k": model.get("topK"),
                    },
                ))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return models

    def _parse_completion(self, data: Dict[str, Any], model: str) -> LLMResponse:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        candidates = data.get("candidates") or []

        if not candidates:
            if block_reason:
                raise ProviderError(
                    f"Content blocked by Gemini safety filters: {block_reason}",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )
            raise ProviderError("No response generated by Gemini", ErrorKind.API, provider=self.get_name())

        candidate = candidates[0]
        content = _candidate_text(candidate)
        finish_reason = candidate.get("finishReason")

        if not content:
            if block_reason or finish_reason in _BLOCKED_FINISH_REASONS:
                raise ProviderError(
                    f"Content blocked by Gemini safety filters: {block_reason or finish_reason}",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )
            raise ProviderError("Empty response from Gemini", ErrorKind.API, provider=self.get_name())

        usage = None
        usage_metadata = data.get("usageMetadata")
        if usage_metadata:
            usage = TokenUsage.from_counts(
                usage_metadata.get("promptTokenCount"),
                usage_metadata.get("candidatesTokenCount"),
            )

        return LLMResponse(
            content=content,
            model=model,
            provider=self.get_name(),
            usage=usage,
            metadata={
                "finish_reason": finish_reason,
                "safety_ratings": candidate.get("safetyRatings"),
                "candidate_index": candidate.get("index"),
                "model_version": data.get("modelVersion"),
            },
        )

    def _handle_stream_item(self, payload: str, session: StreamSession) -> List[StreamChunk]:
        data = parse_sse_json(payload)
        if data is None:
            return []

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"Gemini API error: {message}", ErrorKind.API, provider=self.get_name())

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise ProviderError(
                f"Content blocked by Gemini safety filters: {block_reason}",
                ErrorKind.SAFETY,
                provider=self.get_name(),
            )

        usage_metadata = data.get("usageMetadata")
        if usage_metadata:
            session.usage.update(
                prompt_tokens=usage_metadata.get("promptTokenCount"),
                completion_tokens=usage_metadata.get("candidatesTokenCount"),
            )

        chunks = []
        candidates = data.get("candidates") or []
        if not candidates:
            return chunks

        candidate = candidates[0]
        chunk = session.emit(_candidate_text(candidate))
        if chunk:
            chunks.append(chunk)

        finish_reason = candidate.get("finishReason")
        if finish_reason:
            if finish_reason in _BLOCKED_FINISH_REASONS and not session.content:
                raise ProviderError(
                    f"Content blocked by Gemini safety filters: {finish_reason}",
                    ErrorKind.SAFETY,
                    provider=self.get_name(),
                )
            session.finish_reason = finish_reason
            session.metadata["safety_ratings"] = candidate.get("safetyRatings")
            final = session.finish()
            if final:
                chunks.append(final)
        return chunks

    def _error_from_response(self, response: httpx.Response, model: Optional[str] = None) -> ProviderError:
        # Gemini rejects bad keys with 400 INVALID_ARGUMENT rather than 401
        if response.status_code == 400:
            detail = self._extract_error_message(response)
            if "API key" in detail or "API_KEY_INVALID" in response.text:
                return ProviderError(f"Invalid Google API key: {detail}", ErrorKind.AUTH, provider=self.get_name())
        return super()._error_from_response(response, model)

    def get_model_not_found_message(self, model_name: str) -> str:
        return f"Model '{model_name}' not found. Available Gemini models: gemini-2.0-flash, gemini-2.5-pro"
