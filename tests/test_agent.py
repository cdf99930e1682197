import asyncio

import pytest

from agent import LLMClient, build_llm_client
from exceptions import LLMError


def _client(provider="openai", timeout=1.0) -> LLMClient:
    # Skip provider init; the network-facing call is patched per test.
    client = object.__new__(LLMClient)
    client.provider = provider
    client.timeout = timeout
    return client


def test_no_provider_means_no_client():
    assert build_llm_client(None) is None
    assert build_llm_client("") is None


def test_missing_key_disables_llm(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert build_llm_client("openai") is None


def test_unknown_provider_disables_llm():
    assert build_llm_client("clippy") is None


def test_complete_strips_text():
    client = _client()

    async def fake_call(*args):
        return "  {\"intent\": \"balance\"}\n"

    client._call_openai = fake_call
    assert asyncio.run(client.complete("sys", "user")) == '{"intent": "balance"}'


def test_complete_timeout_raises_llm_error():
    client = _client(timeout=0.01)

    async def slow_call(*args):
        await asyncio.sleep(1)
        return "late"

    client._call_openai = slow_call
    with pytest.raises(LLMError, match="timed out"):
        asyncio.run(client.complete("sys", "user"))


@pytest.mark.parametrize("outcome", ["", "   ", RuntimeError("rate limited")])
def test_complete_failures_raise_llm_error(outcome):
    client = _client(provider="anthropic")

    async def fake_call(*args):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client._call_anthropic = fake_call
    with pytest.raises(LLMError):
        asyncio.run(client.complete("sys", "user"))
