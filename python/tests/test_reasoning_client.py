"""Tests for agenthub.reasoning (client and prompt templates)."""

import json

import httpx
import pytest

from agenthub.config import Settings
from agenthub.exceptions_unified import ValidationError
from agenthub.reasoning import PromptTemplates, ReasoningClient

MESSAGES = [{"role": "user", "content": "Plan a workflow"}]


def _completion(content="OK", model="gpt-4o-mini"):
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 12},
    }


class Transport:
    """Serves scripted responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _client(transport, **kwargs):
    kwargs.setdefault("api_key", "sk-test")
    return ReasoningClient(
        base_url="https://llm.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
        retry_wait_multiplier=0,
        retry_wait_max=0,
        **kwargs,
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestChat:

    @pytest.mark.asyncio
    async def test_success(self):
        transport = Transport(httpx.Response(200, json=_completion("Hello")))
        client = _client(transport)

        result = await client.chat(MESSAGES, {"temperature": 0.3, "max_tokens": 50})

        assert result.success is True
        assert result.content == "Hello"
        assert result.usage == {"total_tokens": 12}
        request = transport.requests[0]
        assert str(request.url) == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 50
        assert body["messages"] == MESSAGES

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        transport = Transport(
            httpx.Response(500),
            httpx.Response(429),
            httpx.Response(200, json=_completion("third time")),
        )
        client = _client(transport, max_retries=3)

        result = await client.chat(MESSAGES)
        assert result.success is True
        assert result.content == "third time"
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_retries_transport_errors(self):
        transport = Transport(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=_completion()),
        )
        client = _client(transport)

        result = await client.chat(MESSAGES)
        assert result.success is True
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        transport = Transport(httpx.Response(503))
        client = _client(transport, max_retries=3)

        result = await client.chat(MESSAGES)
        assert result.success is False
        assert "503" in result.error
        assert len(transport.requests) == 3
        assert client.get_metrics()["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        transport = Transport(httpx.Response(400, json={"error": "bad request"}))
        client = _client(transport)

        result = await client.chat(MESSAGES)
        assert result.success is False
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        transport = Transport(httpx.Response(200, json={"choices": []}))
        client = _client(transport)

        result = await client.chat(MESSAGES)
        assert result.success is False

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        transport = Transport(httpx.Response(200, json=_completion()))
        client = _client(transport, api_key=None)

        result = await client.chat(MESSAGES)
        assert result.success is False
        assert "API key" in result.error
        assert transport.requests == []


class TestCache:

    @pytest.mark.asyncio
    async def test_identical_requests_hit_cache(self):
        transport = Transport(httpx.Response(200, json=_completion("cached answer")))
        client = _client(transport)

        first = await client.chat(MESSAGES)
        second = await client.chat(MESSAGES)

        assert first.cached is False
        assert second.cached is True
        assert second.content == "cached answer"
        assert len(transport.requests) == 1
        assert client.get_metrics()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_temperature_is_part_of_key(self):
        transport = Transport(httpx.Response(200, json=_completion()))
        client = _client(transport)

        await client.chat(MESSAGES, {"temperature": 0.1})
        await client.chat(MESSAGES, {"temperature": 0.9})
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        clock = FakeClock()
        transport = Transport(httpx.Response(200, json=_completion()))
        client = _client(transport, cache_ttl_seconds=60, clock=clock)

        await client.chat(MESSAGES)
        clock.now = 61
        result = await client.chat(MESSAGES)

        assert result.cached is False
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        transport = Transport(httpx.Response(400))
        client = _client(transport)

        await client.chat(MESSAGES)
        await client.chat(MESSAGES)
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        transport = Transport(httpx.Response(200, json=_completion()))
        client = _client(transport)

        await client.chat(MESSAGES)
        client.clear_cache()
        await client.chat(MESSAGES)
        assert len(transport.requests) == 2


class TestConfiguration:

    def test_from_settings(self):
        settings = Settings(reasoning_api_key="sk-env", reasoning_model="gpt-test", reasoning_max_retries=5)
        client = ReasoningClient.from_settings(settings)
        assert client.api_key == "sk-env"
        assert client.model == "gpt-test"
        assert client.max_retries == 5


class TestPromptTemplates:

    def test_system_prompt(self):
        prompt = PromptTemplates.get_system_prompt("lead_agent")
        assert prompt["role"] == "system"
        assert "Lead Management specialist" in prompt["content"]

    def test_unknown_agent_type(self):
        with pytest.raises(ValidationError):
            PromptTemplates.get_system_prompt("janitor")

    def test_conversation_caps_history(self):
        history = [{"role": "user", "content": str(i)} for i in range(15)]
        messages = PromptTemplates.create_conversation(
            "nlp_sales", "Hi", {"customer_data": {"name": "Acme"}}, history
        )
        assert len(messages) == 1 + 10 + 1
        assert messages[1]["content"] == "5"
        assert "Customer Context" in messages[-1]["content"]

    def test_planning_messages_list_workers(self):
        messages = PromptTemplates.planning_messages(
            {"type": "lead_processing", "data": {"name": "Acme"}},
            [{"worker_id": "lead_agent", "capabilities": ["lead_management"]}],
        )
        assert messages[0]["role"] == "system"
        assert "lead_agent: lead_management" in messages[1]["content"]
        assert "Request Type: lead_processing" in messages[1]["content"]
