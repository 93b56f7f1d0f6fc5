"""
Provider Types and Data Models

Defines enums and Pydantic models shared by every provider adapter.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProviderId(str, Enum):
    """Closed set of supported backends"""
    OLLAMA = "ollama"           # Local Ollama server (NDJSON streaming)
    OPENAI = "openai"           # OpenAI-compatible chat completions (SSE + [DONE])
    GEMINI = "gemini"           # Google generative-language API (SSE + finishReason)
    ANTHROPIC = "anthropic"     # Anthropic messages API (SSE typed events)


class ProviderDefinition(BaseModel):
    """
    Built-in provider definition.

    Vendor defaults used when configuration does not override them.
    """
    id: ProviderId = Field(..., description="Provider identifier")
    name: str = Field(..., description="Display name")
    base_url: str = Field(..., description="Default API base URL")
    default_model: str = Field(..., description="Default model ID")
    requires_credentials: bool = Field(default=True, description="Whether an API key is mandatory")


class ProviderDescriptor(BaseModel):
    """
    Configuration for a single backend.

    Created once at startup from external configuration and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    name: ProviderId = Field(..., description="Provider identifier")
    api_key: Optional[str] = Field(default=None, repr=False, description="Vendor credentials")
    base_url: str = Field(..., description="API base URL")
    default_model: str = Field(..., description="Model used when the prompt names none")
    timeout_ms: int = Field(default=60000, gt=0, description="Connect/read timeout in milliseconds")

    # === Vendor-specific options ===
    organization: Optional[str] = Field(default=None, description="OpenAI organization header")
    api_version: Optional[str] = Field(default=None, description="Anthropic API version header")
    beta_features: List[str] = Field(default_factory=list, description="Anthropic beta header values")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class PromptOptions(BaseModel):
    """Per-invocation generation options."""
    model_config = ConfigDict(frozen=True)

    provider: str = Field(default="auto", description="Provider alias ('auto' picks the default backend)")
    model: Optional[str] = Field(default=None, description="Explicit model name")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    top_k: Optional[int] = Field(default=None, gt=0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    stream: bool = False
    output_format: Literal["text", "json"] = "text"


class PromptContext(BaseModel):
    """A single prompt and its options."""
    model_config = ConfigDict(frozen=True)

    prompt: str
    options: PromptOptions = Field(default_factory=PromptOptions)


class TokenUsage(BaseModel):
    """Token usage information from LLM response."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> "TokenUsage":
        """Build usage from raw vendor counts, computing the total."""
        prompt = int(prompt_tokens or 0)
        completion = int(completion_tokens or 0)
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )


class LLMResponse(BaseModel):
    """
    Represents a complete LLM response.

    Normalizes output from different providers into a common format.
    """
    content: str = Field(default="", description="Main response content")
    model: str = Field(..., description="Model that produced the response")
    provider: str = Field(..., description="Provider that produced the response")
    usage: Optional[TokenUsage] = Field(default=None, description="Token usage information")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Vendor-specific extras")


class StreamChunk(BaseModel):
    """
    Represents a streaming chunk from LLM response.

    Content chunks carry text; the single terminal chunk has done=True and
    carries the final usage.
    """
    text: str = Field(default="", description="Partial response text")
    done: bool = Field(default=False, description="Whether this is the terminal chunk")
    usage: Optional[TokenUsage] = Field(default=None, description="Final usage (terminal chunk only)")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Terminal metadata")


class ModelInfo(BaseModel):
    """Model entry returned by a provider listing."""
    name: str = Field(..., description="Model ID used in requests")
    display_name: Optional[str] = None
    description: Optional[str] = None
    size: Optional[int] = Field(default=None, description="Size in bytes, when the vendor reports it")
    is_default: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProviderStatus(BaseModel):
    """Availability summary for one configured provider."""
    provider: str
    available: bool
    model_count: Optional[int] = None
    default_model: Optional[str] = None
    error: Optional[str] = None
