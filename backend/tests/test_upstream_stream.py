"""
Tests for the upstream text stream.

The HTTP backend runs against httpx.MockTransport; the litellm backend is
patched at the module's ``acompletion`` import.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from tuckandtale.models import AIConfig
from tuckandtale.services.llm.client import TextProviderClient
from tuckandtale.services.llm.upstream_stream import (
    DONE_SENTINEL,
    UpstreamTextStream,
    parse_sse_line,
)
from tuckandtale.services.story.errors import ProviderNotConfiguredError, UpstreamTransportError


def make_client(**settings_overrides):
    config = AIConfig(name="v3_story_fun", purpose="story_fun", provider="openai",
                      model_id="gpt-4o-mini", settings=settings_overrides)
    return TextProviderClient(config, api_key="sk-test", base_url="https://llm.test/v1")


def sse_body(*deltas, done=True):
    lines = []
    for delta in deltas:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}))
        lines.append("")
    if done:
        lines.append("data: [DONE]")
    return "\n".join(lines) + "\n"


async def collect(stream):
    return [chunk async for chunk in stream]


class TestParseSSELine:
    def test_content_delta(self):
        line = 'data: {"choices": [{"delta": {"content": "Once"}}]}'
        assert parse_sse_line(line) == "Once"

    def test_done(self):
        assert parse_sse_line("data: [DONE]") == DONE_SENTINEL

    @pytest.mark.parametrize("line", [
        "",
        ": keep-alive",
        "event: ping",
        "data: {not json",
        'data: {"choices": []}',
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"delta": {"content": ""}}]}',
        'data: ["list"]',
    ])
    def test_lines_without_content(self, line):
        assert parse_sse_line(line) is None


class TestTextProviderClient:
    def test_row_settings_override_defaults(self):
        client = make_client(temperature=0.9, max_tokens=None)

        assert client.sampling["temperature"] == 0.9
        assert client.sampling["max_tokens"] == 2500
        assert client.sampling["frequency_penalty"] == 0.3

    def test_streaming_params(self):
        params = make_client().get_streaming_params()

        assert params["model"] == "gpt-4o-mini"
        assert params["stream"] is True
        assert params["response_format"] == {"type": "json_object"}

    def test_litellm_model_string(self):
        config = AIConfig(name="x", provider="anthropic", model_id="claude-x", settings={})
        client = TextProviderClient(config, api_key="k")

        assert client.get_litellm_params()["model"] == "anthropic/claude-x"

    def test_missing_key(self, monkeypatch):
        from tuckandtale.config import settings
        monkeypatch.setattr(settings, "openai_api_key", None)
        config = AIConfig(name="x", provider="openai", model_id="gpt-4o-mini", settings={})

        with pytest.raises(ProviderNotConfiguredError):
            TextProviderClient(config)

    def test_missing_config(self):
        with pytest.raises(ProviderNotConfiguredError, match="not configured"):
            TextProviderClient(None)


class TestHttpBackend:
    @pytest.mark.asyncio
    async def test_yields_content_until_done(self):
        requests = []

        def handler(request):
            requests.append(request)
            body = sse_body('{"title":', '"Hi"}') + 'data: {"choices": [{"delta": {"content": "ignored"}}]}\n'
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

        upstream = UpstreamTextStream(make_client(), backend="http", transport=httpx.MockTransport(handler))

        chunks = await collect(upstream.stream("Tell a story"))

        assert chunks == ['{"title":', '"Hi"}']
        assert upstream.chunk_count == 2
        assert upstream.content_chars == len('{"title":"Hi"}')

        sent = json.loads(requests[0].content)
        assert str(requests[0].url) == "https://llm.test/v1/chat/completions"
        assert requests[0].headers["authorization"] == "Bearer sk-test"
        assert sent["stream"] is True
        assert sent["messages"] == [{"role": "user", "content": "Tell a story"}]

    @pytest.mark.asyncio
    async def test_garbled_lines_skipped(self):
        def handler(request):
            body = ": comment\ndata: {oops\n" + sse_body("a", "b")
            return httpx.Response(200, text=body)

        upstream = UpstreamTextStream(make_client(), backend="http", transport=httpx.MockTransport(handler))

        assert await collect(upstream.stream("p")) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stream_without_done_ends_cleanly(self):
        def handler(request):
            return httpx.Response(200, text=sse_body("a", done=False))

        upstream = UpstreamTextStream(make_client(), backend="http", transport=httpx.MockTransport(handler))

        assert await collect(upstream.stream("p")) == ["a"]

    @pytest.mark.asyncio
    async def test_non_2xx_status(self):
        def handler(request):
            return httpx.Response(429, text="x" * 500)

        upstream = UpstreamTextStream(make_client(), backend="http", transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamTransportError) as exc_info:
            await collect(upstream.stream("p"))

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "OpenAI API error: 429 - " + "x" * 200

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        upstream = UpstreamTextStream(make_client(), backend="http", transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamTransportError, match="Cannot connect to text provider"):
            await collect(upstream.stream("p"))


class TestLitellmBackend:
    @pytest.mark.asyncio
    async def test_yields_deltas(self):
        def chunk(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        async def fake_stream():
            for item in [chunk('{"a"'), chunk(None), SimpleNamespace(choices=[]), chunk(": 1}")]:
                yield item

        with patch("tuckandtale.services.llm.upstream_stream.acompletion",
                   new=AsyncMock(return_value=fake_stream())) as mock_completion:
            upstream = UpstreamTextStream(make_client(), backend="litellm")
            chunks = await collect(upstream.stream("p"))

        assert chunks == ['{"a"', ": 1}"]
        kwargs = mock_completion.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["api_base"] == "https://llm.test/v1"

    @pytest.mark.asyncio
    async def test_provider_exception_wrapped(self):
        with patch("tuckandtale.services.llm.upstream_stream.acompletion",
                   new=AsyncMock(side_effect=RuntimeError("boom"))):
            upstream = UpstreamTextStream(make_client(), backend="litellm")

            with pytest.raises(UpstreamTransportError, match="Text provider error: boom"):
                await collect(upstream.stream("p"))


class TestPromptDebug:
    def test_writes_prompt_file(self, tmp_path, monkeypatch):
        from tuckandtale.config import settings
        monkeypatch.setattr(settings, "prompt_debug", True)
        monkeypatch.setattr(settings, "log_file", str(tmp_path / "logs" / "app.log"))

        UpstreamTextStream(make_client(), backend="http").stream("Hello")

        data = json.loads((tmp_path / "logs" / "prompt_sent.json").read_text(encoding="utf-8"))
        assert data["messages"] == [{"role": "user", "content": "Hello"}]
        assert data["model"] == "gpt-4o-mini"
