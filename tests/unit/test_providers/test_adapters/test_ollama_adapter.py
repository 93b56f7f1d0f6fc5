"""Tests for OllamaAdapter request building, listing and NDJSON streaming."""

import json

import httpx
import pytest

from promptbridge.providers.adapters.ollama_adapter import OllamaAdapter
from promptbridge.providers.errors import ErrorKind, ProviderError
from promptbridge.providers.types import ProviderId


def _ndjson(*objects) -> bytes:
    return "".join(json.dumps(obj) + "\n" for obj in objects).encode("utf-8")


HELLO_STREAM = _ndjson(
    {"model": "llama3", "response": "Hel", "done": False},
    {"model": "llama3", "response": "lo", "done": False},
    {
        "model": "llama3",
        "response": "",
        "done": True,
        "done_reason": "stop",
        "prompt_eval_count": 3,
        "eval_count": 5,
        "total_duration": 1200,
    },
)


@pytest.fixture
def adapter(fake_api, make_descriptor):
    return OllamaAdapter(make_descriptor(ProviderId.OLLAMA), transport=fake_api.transport)


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [1, 2, 7, 64, len(HELLO_STREAM)])
async def test_stream_is_independent_of_network_chunking(adapter, fake_api, make_context, collect, chunked, size):
    fake_api.add("POST", "/api/generate", chunks=chunked(HELLO_STREAM, size))

    chunks = await collect(adapter.stream(make_context(model="llama3")))

    assert [chunk.text for chunk in chunks[:-1]] == ["Hel", "lo"]
    final = chunks[-1]
    assert final.done
    assert final.usage.prompt_tokens == 3
    assert final.usage.completion_tokens == 5
    assert final.usage.total_tokens == 8
    assert final.metadata["total_content"] == "Hello"
    assert final.metadata["finish_reason"] == "stop"
    assert final.metadata["total_duration"] == 1200
    assert final.metadata["terminated_by"] == "vendor"
    assert sum(chunk.done for chunk in chunks) == 1


@pytest.mark.asyncio
async def test_stream_sends_generate_payload(adapter, fake_api, make_context, collect):
    fake_api.add("POST", "/api/generate", chunks=[HELLO_STREAM])

    await collect(adapter.stream(make_context(
        "Why is the sky blue?",
        model="llama3",
        temperature=0.2,
        max_tokens=64,
        top_p=0.9,
        top_k=40,
        output_format="json",
    )))

    body = json.loads(fake_api.requests_to("/api/generate")[0].content)
    assert body["model"] == "llama3"
    assert body["prompt"] == "Why is the sky blue?"
    assert body["stream"] is True
    assert body["format"] == "json"
    assert body["options"] == {"temperature": 0.2, "num_predict": 64, "top_p": 0.9, "top_k": 40}


@pytest.mark.asyncio
async def test_stream_uses_default_model_when_none_given(adapter, fake_api, make_context, collect):
    fake_api.add("POST", "/api/generate", chunks=[HELLO_STREAM])

    chunks = await collect(adapter.stream(make_context()))

    body = json.loads(fake_api.requests_to("/api/generate")[0].content)
    assert body["model"] == "gpt-oss:latest"
    assert chunks[-1].metadata["model"] == "gpt-oss:latest"


@pytest.mark.asyncio
async def test_stream_ignores_everything_after_first_done(adapter, fake_api, make_context, collect):
    payload = _ndjson(
        {"response": "A", "done": False},
        {"response": "", "done": True, "prompt_eval_count": 1, "eval_count": 1},
        {"response": "B", "done": False},
        {"response": "", "done": True, "prompt_eval_count": 9, "eval_count": 9},
    )
    fake_api.add("POST", "/api/generate", chunks=[payload])

    chunks = await collect(adapter.stream(make_context()))

    assert [chunk.text for chunk in chunks if not chunk.done] == ["A"]
    assert sum(chunk.done for chunk in chunks) == 1
    assert chunks[-1].usage.total_tokens == 2


@pytest.mark.asyncio
async def test_stream_synthesizes_terminal_when_transport_ends_first(adapter, fake_api, make_context, collect):
    payload = _ndjson({"response": "Hel", "done": False}) + b'{"response": "lo", "done": false}'
    fake_api.add("POST", "/api/generate", chunks=[payload])

    chunks = await collect(adapter.stream(make_context()))

    assert [chunk.text for chunk in chunks[:-1]] == ["Hel", "lo"]
    final = chunks[-1]
    assert final.done
    assert final.metadata["terminated_by"] == "transport_end"
    assert final.usage.total_tokens == 0


@pytest.mark.asyncio
async def test_stream_skips_malformed_lines(adapter, fake_api, make_context, collect):
    payload = b'{"response": "ok", "done": false}\nnot-json\n\n' + _ndjson(
        {"response": "", "done": True, "prompt_eval_count": 1, "eval_count": 1}
    )
    fake_api.add("POST", "/api/generate", chunks=[payload])

    chunks = await collect(adapter.stream(make_context()))

    assert [chunk.text for chunk in chunks] == ["ok", ""]


@pytest.mark.asyncio
async def test_stream_error_line_raises_api_error(adapter, fake_api, make_context, collect):
    fake_api.add("POST", "/api/generate", chunks=[_ndjson({"error": "model crashed"})])

    with pytest.raises(ProviderError) as exc_info:
        await collect(adapter.stream(make_context()))

    assert exc_info.value.kind is ErrorKind.API
    assert "model crashed" in exc_info.value.message


@pytest.mark.asyncio
async def test_stream_transport_failure_after_start_is_stream_error(adapter, fake_api, make_context):
    fake_api.add(
        "POST",
        "/api/generate",
        chunks=[_ndjson({"response": "Hel", "done": False})],
        error_after=httpx.ReadError("connection reset"),
    )

    received = []
    with pytest.raises(ProviderError) as exc_info:
        async for chunk in adapter.stream(make_context()):
            received.append(chunk)

    assert exc_info.value.kind is ErrorKind.STREAM
    assert [chunk.text for chunk in received] == ["Hel"]
    assert not any(chunk.done for chunk in received)


@pytest.mark.asyncio
async def test_stream_unreachable_server_is_network_error(adapter, fake_api, make_context, collect):
    fake_api.add("POST", "/api/generate", raises=httpx.ConnectError("connection refused"))

    with pytest.raises(ProviderError) as exc_info:
        await collect(adapter.stream(make_context()))

    assert exc_info.value.kind is ErrorKind.NETWORK
    assert "ollama serve" in exc_info.value.message


@pytest.mark.asyncio
async def test_generate_response_returns_content_and_usage(adapter, fake_api, make_context):
    fake_api.add("POST", "/api/generate", json={
        "model": "llama3",
        "response": "Hi there",
        "done": True,
        "done_reason": "stop",
        "prompt_eval_count": 2,
        "eval_count": 4,
        "context": [1, 2, 3],
    })

    response = await adapter.generate_response(make_context(model="llama3"))

    assert response.content == "Hi there"
    assert response.provider == "ollama"
    assert response.model == "llama3"
    assert response.usage.total_tokens == 6
    assert response.metadata["done_reason"] == "stop"
    assert response.metadata["context"] == [1, 2, 3]
    assert json.loads(fake_api.requests[0].content)["stream"] is False


@pytest.mark.asyncio
async def test_generate_response_empty_is_api_error(adapter, fake_api, make_context):
    fake_api.add("POST", "/api/generate", json={"response": "", "done": True})

    with pytest.raises(ProviderError) as exc_info:
        await adapter.generate_response(make_context())

    assert exc_info.value.kind is ErrorKind.API


@pytest.mark.asyncio
async def test_generate_response_missing_model_suggests_pull(adapter, fake_api, make_context):
    fake_api.add("POST", "/api/generate", status=404, json={"error": "model 'llama9' not found"})

    with pytest.raises(ProviderError) as exc_info:
        await adapter.generate_response(make_context(model="llama9"))

    assert exc_info.value.kind is ErrorKind.MODEL_NOT_FOUND
    assert "ollama pull llama9" in exc_info.value.message


@pytest.mark.asyncio
async def test_generate_response_timeout(adapter, fake_api, make_context):
    fake_api.add("POST", "/api/generate", raises=httpx.ReadTimeout("timed out"))

    with pytest.raises(ProviderError) as exc_info:
        await adapter.generate_response(make_context())

    assert exc_info.value.kind is ErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_list_models_sorted_newest_first_with_default_flag(fake_api, make_descriptor):
    adapter = OllamaAdapter(
        make_descriptor(ProviderId.OLLAMA, default_model="llama3:8b"),
        transport=fake_api.transport,
    )
    fake_api.add("GET", "/api/tags", json={"models": [
        {"name": "mistral:7b", "modified_at": "2024-01-02T10:00:00Z", "size": 100},
        {
            "name": "llama3:8b",
            "modified_at": "2024-05-01T10:00:00.123456789-07:00",
            "size": 200,
            "details": {"family": "llama", "parameter_size": "8B"},
        },
        {"name": "phi3", "modified_at": "not-a-date"},
    ]})

    models = await adapter.list_models()

    assert [model.name for model in models] == ["llama3:8b", "mistral:7b", "phi3"]
    assert [model.display_name for model in models] == ["llama3", "mistral", "phi3"]
    assert [model.is_default for model in models] == [True, False, False]
    assert models[0].size == 200
    assert models[0].metadata["family"] == "llama"


@pytest.mark.asyncio
async def test_validate_model_checks_installed_models(adapter, fake_api):
    fake_api.add("GET", "/api/tags", json={"models": [{"name": "llama3:8b"}]})

    assert await adapter.validate_model("llama3:8b") is True
    assert await adapter.validate_model("llama3") is False


@pytest.mark.asyncio
async def test_is_model_available_reports_listing_failure_as_false(adapter, fake_api):
    fake_api.add("GET", "/api/tags", status=500, json={"error": "boom"})

    assert await adapter.is_model_available("llama3") is False


@pytest.mark.asyncio
async def test_is_available_pings_version_endpoint(adapter, fake_api):
    fake_api.add("GET", "/api/version", json={"version": "0.5.1"})

    assert await adapter.is_available() is True
    assert await adapter.get_server_info() == {"version": "0.5.1"}


@pytest.mark.asyncio
async def test_is_available_false_when_unreachable(adapter, fake_api):
    fake_api.add("GET", "/api/version", raises=httpx.ConnectError("connection refused"))

    assert await adapter.is_available() is False


def test_descriptor_for_other_provider_is_rejected(make_descriptor):
    with pytest.raises(ValueError):
        OllamaAdapter(make_descriptor(ProviderId.OPENAI))


def test_no_credentials_required():
    assert OllamaAdapter.requires_credentials() is False


@pytest.mark.asyncio
async def test_generate_response_unauthorized_is_auth_error(adapter, fake_api, make_context):
    fake_api.add("POST", "/api/generate", status=401, json={"error": "unauthorized"})

    with pytest.raises(ProviderError) as exc_info:
        await adapter.generate_response(make_context())

    assert exc_info.value.kind is ErrorKind.AUTH
    assert exc_info.value.provider == "ollama"


@pytest.mark.asyncio
async def test_list_models_flags_nothing_when_default_not_installed(adapter, fake_api):
    fake_api.add("GET", "/api/tags", json={"models": [{"name": "llama3:8b"}, {"name": "phi3"}]})

    models = await adapter.list_models()

    assert not any(model.is_default for model in models)
