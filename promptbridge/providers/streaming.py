"""
Streaming helpers shared by all adapters.

Vendors stream a response body as arbitrary byte chunks. The pieces here turn
those chunks into complete protocol lines, track token usage as it arrives,
and guarantee that exactly one terminal chunk is produced per call.
Terminal-signal detection stays inside each adapter.
"""
import codecs
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .types import StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"


def decode_ndjson_line(line: str) -> Optional[Dict[str, Any]]:
    """Parse one NDJSON line; blank or malformed lines are skipped."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        logger.debug(f"Skipping malformed NDJSON line ({e}): {stripped[:200]!r}")
        return None
    if not isinstance(data, dict):
        logger.debug(f"Skipping non-object NDJSON line: {stripped[:200]!r}")
        return None
    return data


def decode_sse_line(line: str) -> Optional[str]:
    """
    Extract the payload of an SSE data line.

    Event-type lines, comments, keep-alives and blank lines yield None.
    """
    line = line.rstrip("\r")
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def parse_sse_json(payload: str) -> Optional[Dict[str, Any]]:
    """Parse the JSON body of an SSE data payload, skipping bad payloads."""
    if not payload:
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug(f"Skipping malformed SSE payload ({e}): {payload[:200]!r}")
        return None
    return data if isinstance(data, dict) else None


class IncrementalLineSplitter:
    """
    Buffers raw network bytes and yields decoded complete lines.

    Each streaming call owns its own splitter. The last, possibly incomplete
    segment stays buffered until the next feed() or flush().
    """

    def __init__(
        self,
        decode: Callable[[str], Any],
        delimiter: str = "\n",
        encoding: str = "utf-8",
    ):
        if not delimiter:
            raise ValueError("delimiter must be a non-empty string")
        self._decode = decode
        self._delimiter = delimiter
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[Any]:
        """Append a network chunk and return the decoded complete lines."""
        self._buffer += self._decoder.decode(data)
        if self._delimiter not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split(self._delimiter)
        return self._decode_all(lines)

    def flush(self) -> List[Any]:
        """Decode whatever is left once the transport has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if not remaining:
            return []
        return self._decode_all(remaining.split(self._delimiter))

    def _decode_all(self, lines: List[str]) -> List[Any]:
        items = []
        for line in lines:
            item = self._decode(line)
            if item is not None:
                items.append(item)
        return items


class UsageAccumulator:
    """Running token counts; values only ever increase."""

    def __init__(self):
        self.prompt_tokens = 0
        self.completion_tokens = 0

    def update(self, prompt_tokens: Optional[int] = None, completion_tokens: Optional[int] = None) -> None:
        if prompt_tokens is not None:
            self.prompt_tokens = max(self.prompt_tokens, int(prompt_tokens))
        if completion_tokens is not None:
            self.completion_tokens = max(self.completion_tokens, int(completion_tokens))

    def snapshot(self) -> TokenUsage:
        return TokenUsage.from_counts(self.prompt_tokens, self.completion_tokens)


class StreamState(str, Enum):
    STREAMING = "streaming"
    TERMINATED = "terminated"


class StreamSession:
    """
    Per-call streaming state machine.

    STREAMING -> TERMINATED on the first of: vendor terminal signal, transport
    end, transport error. Anything after that is a no-op.
    """

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        self.state = StreamState.STREAMING
        self.usage = UsageAccumulator()
        self.finish_reason: Optional[str] = None
        self.metadata: Dict[str, Any] = {}
        self._parts: List[str] = []

    @property
    def terminated(self) -> bool:
        return self.state is StreamState.TERMINATED

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def emit(self, text: str) -> Optional[StreamChunk]:
        """Build a content chunk, or None if there is nothing to deliver."""
        if self.terminated or not text:
            return None
        self._parts.append(text)
        return StreamChunk(text=text, done=False)

    def finish(self, *, vendor_signal: bool = True) -> Optional[StreamChunk]:
        """Build the terminal chunk exactly once."""
        if self.terminated:
            return None
        self.state = StreamState.TERMINATED
        usage = self.usage.snapshot()
        metadata: Dict[str, Any] = {
            "provider": self.provider,
            "model": self.model,
            "usage": usage.model_dump(),
            "total_content": self.content,
            "finish_reason": self.finish_reason,
            "terminated_by": "vendor" if vendor_signal else "transport_end",
        }
        metadata.update(self.metadata)
        return StreamChunk(text="", done=True, usage=usage, metadata=metadata)

    def abort(self) -> None:
        """Terminate without a success chunk (errors)."""
        self.state = StreamState.TERMINATED
