"""Tests for text completion providers and the provider factory."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from murmur.app.core.config import Settings
from murmur.app.exceptions import ProviderError
from murmur.app.providers import (
    MockProvider,
    OpenAIProvider,
    ProviderType,
    WorkerProvider,
    create_provider,
)

WORKER_URL = "https://worker.example.com/api/chat"


@pytest.fixture
def worker():
    return WorkerProvider(
        base_url="https://worker.example.com/",
        api_key="secret",
        model="@cf/meta/llama-3.1-8b-instruct",
    )


class TestWorkerProvider:
    """Tests for the AI worker HTTP provider."""

    @pytest.mark.asyncio
    async def test_complete_success(self, worker, respx_mock):
        route = respx_mock.post(WORKER_URL).mock(
            return_value=httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": "Rewritten"}}]}
            )
        )

        result = await worker.complete("prompt", temperature=0.3, max_tokens=50)

        assert result == "Rewritten"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 50
        assert body["messages"] == [{"role": "user", "content": "prompt"}]

    @pytest.mark.asyncio
    async def test_rate_limit_error_with_retry_after(self, worker, respx_mock):
        respx_mock.post(WORKER_URL).mock(
            return_value=httpx.Response(
                429,
                json={"error": {"message": "Too many requests", "type": "rate_limit_error"}},
                headers={"Retry-After": "12"},
            )
        )

        with pytest.raises(ProviderError) as exc_info:
            await worker.complete("prompt")

        assert exc_info.value.status == 429
        assert exc_info.value.error_type == "rate_limit_error"
        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.message == "Too many requests"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, worker, respx_mock):
        respx_mock.post(WORKER_URL).mock(return_value=httpx.Response(500, text="boom"))

        with pytest.raises(ProviderError) as exc_info:
            await worker.complete("prompt")

        assert exc_info.value.status == 500
        assert exc_info.value.error_type == "api_error"

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, worker, respx_mock):
        respx_mock.post(WORKER_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(ProviderError) as exc_info:
            await worker.complete("prompt")

        assert exc_info.value.status is None
        assert exc_info.value.error_type == "network_error"

    @pytest.mark.asyncio
    async def test_connection_error_is_network_error(self, worker, respx_mock):
        respx_mock.post(WORKER_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ProviderError) as exc_info:
            await worker.complete("prompt")

        assert exc_info.value.error_type == "network_error"

    @pytest.mark.asyncio
    async def test_missing_choices_is_api_error(self, worker, respx_mock):
        respx_mock.post(WORKER_URL).mock(return_value=httpx.Response(200, json={"choices": []}))

        with pytest.raises(ProviderError) as exc_info:
            await worker.complete("prompt")

        assert exc_info.value.error_type == "api_error"

    @pytest.mark.asyncio
    async def test_uses_shared_client(self, respx_mock):
        respx_mock.post(WORKER_URL).mock(
            return_value=httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})
        )
        async with httpx.AsyncClient() as client:
            provider = WorkerProvider("https://worker.example.com", "k", "m", http_client=client)
            assert await provider.complete("prompt") == "ok"
            assert not client.is_closed


def _openai_provider(create):
    client = MagicMock()
    client.chat.completions.create = create
    return OpenAIProvider(
        base_url="https://api.openai.com/v1",
        api_key="sk-test",
        model="gpt-4o-mini",
        client=client,
    )


class TestOpenAIProvider:
    """Tests for the OpenAI SDK provider."""

    @pytest.mark.asyncio
    async def test_complete_success(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "Rewritten"
        create = AsyncMock(return_value=response)
        provider = _openai_provider(create)

        assert await provider.complete("prompt", temperature=0.6, max_tokens=100) == "Rewritten"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert kwargs["temperature"] == 0.6
        assert kwargs["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_status_error_keeps_status_and_retry_after(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, request=request, headers={"retry-after": "7"})
        error = openai.RateLimitError("Rate limited", response=response, body=None)
        provider = _openai_provider(AsyncMock(side_effect=error))

        with pytest.raises(ProviderError) as exc_info:
            await provider.complete("prompt")

        assert exc_info.value.status == 429
        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        provider = _openai_provider(AsyncMock(side_effect=openai.APITimeoutError(request=request)))

        with pytest.raises(ProviderError) as exc_info:
            await provider.complete("prompt")

        assert exc_info.value.error_type == "network_error"
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_none_content_returns_empty_string(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = None
        provider = _openai_provider(AsyncMock(return_value=response))

        assert await provider.complete("prompt") == ""


class TestMockProvider:
    @pytest.mark.asyncio
    async def test_rewrites_quoted_message(self):
        provider = MockProvider()
        prompt = 'Instructions...\n\nOriginal message:\n"I really like it"\n\nRewrite:'

        result = await provider.complete(prompt)

        assert result == "Paraphrased note: this writer notably like it"


class TestCreateProvider:
    """Tests for create_provider selection."""

    def test_mock(self):
        provider = create_provider(Settings(_env_file=None, completion_provider="mock"))
        assert isinstance(provider, MockProvider)

    def test_worker(self):
        cfg = Settings(
            _env_file=None,
            completion_provider="worker",
            AI_WORKER_API_SECRET_KEY="secret",
            ai_worker_base_url="https://worker.example.com",
        )
        provider = create_provider(cfg)
        assert isinstance(provider, WorkerProvider)
        assert provider.api_key == "secret"

    def test_worker_requires_key(self):
        with pytest.raises(ValueError, match="AI_WORKER_API_SECRET_KEY"):
            create_provider(Settings(_env_file=None, completion_provider="worker"))

    def test_openai(self):
        cfg = Settings(_env_file=None, completion_provider="openai", openai_api_key="sk-test")
        assert isinstance(create_provider(cfg), OpenAIProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown completion provider"):
            create_provider(Settings(_env_file=None, completion_provider="carrier-pigeon"))

    def test_provider_type_values(self):
        assert {p.value for p in ProviderType} == {"worker", "openai", "mock"}
