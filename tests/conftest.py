"""Shared pytest fixtures for all tests."""

import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from promptbridge.providers.builtin import BUILTIN_PROVIDERS
from promptbridge.providers.types import PromptContext, PromptOptions, ProviderDescriptor, ProviderId


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


class FakeVendorAPI:
    """
    Route table served through httpx.MockTransport.

    Responses are rebuilt for every request so streamed bodies can be
    consumed more than once. Streamed bodies are delivered exactly in the
    byte chunks given, which lets tests control network read boundaries.
    """

    def __init__(self):
        self._routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        json: Any = None,
        chunks: Optional[List[bytes]] = None,
        error_after: Optional[Exception] = None,
        raises: Optional[Exception] = None,
        respond: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        def build(request: httpx.Request) -> httpx.Response:
            if raises is not None:
                raise raises
            if respond is not None:
                return respond(request)
            if chunks is not None:
                return httpx.Response(status, content=_byte_stream(chunks, error_after))
            if json is not None:
                return httpx.Response(status, json=json)
            return httpx.Response(status)

        self._routes[(method.upper(), path)] = build

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": f"no route for {request.method} {request.url.path}"})
        return route(request)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def _byte_stream(chunks: List[bytes], error_after: Optional[Exception]):
    for chunk in chunks:
        yield chunk
    if error_after is not None:
        raise error_after


def split_every(payload: bytes, size: int) -> List[bytes]:
    """Cut a payload into network reads of the given size."""
    return [payload[i:i + size] for i in range(0, len(payload), size)]


@pytest.fixture
def fake_api():
    return FakeVendorAPI()


@pytest.fixture
def make_descriptor():
    """Build a descriptor from vendor defaults, with a test API key for hosted vendors."""
    def _make(provider_id: ProviderId, **overrides) -> ProviderDescriptor:
        definition = BUILTIN_PROVIDERS[provider_id]
        fields: Dict[str, Any] = {
            "name": provider_id,
            "base_url": definition.base_url,
            "default_model": definition.default_model,
        }
        if definition.requires_credentials:
            fields["api_key"] = "test-key"
        fields.update(overrides)
        return ProviderDescriptor(**fields)

    return _make


@pytest.fixture
def make_context():
    def _make(prompt: str = "Say hello", **options) -> PromptContext:
        return PromptContext(prompt=prompt, options=PromptOptions(**options))

    return _make


@pytest.fixture
def collect():
    async def _collect(chunks):
        return [chunk async for chunk in chunks]

    return _collect


@pytest.fixture
def chunked():
    """Return a splitter that cuts payloads into fixed-size network reads."""
    return split_every
