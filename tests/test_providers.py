"""Tests for AI-score estimators and provider error mapping."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from rewriter.config import RewriterConfig
from rewriter.errors import ProviderError
from rewriter.prompt import RewriteRequest, ScoreRequest
from rewriter.providers import (
    ChatClients,
    FallbackScoreEstimator,
    GPTZeroEstimator,
    LLMRewriteProvider,
    LLMScoreEstimator,
    parse_detection_reply,
    parse_gptzero_payload,
)
from tests.conftest import StubEstimator


def _gptzero_config(**overrides):
    return RewriterConfig(gptzero_api_key="zero-key", **overrides)


def test_parse_gptzero_payload():
    assert parse_gptzero_payload({"documents": [{"completely_generated_prob": 0.876}]}) == 88
    with pytest.raises(ProviderError, match="Malformed"):
        parse_gptzero_payload({"documents": []})


@pytest.mark.parametrize(
    "reply,expected",
    [
        ('{"isAI": true, "confidence": 0.93, "details": "uniform"}', 93),
        ('Sure! ```json\n{"isAI": false, "confidence": 12}\n```', 12),
        ('{"confidence": 170}', 100),
    ],
)
def test_parse_detection_reply(reply, expected):
    assert parse_detection_reply(reply) == expected


def test_parse_detection_reply_rejects_non_json():
    with pytest.raises(ProviderError):
        parse_detection_reply("I think it is human.")
    with pytest.raises(ProviderError):
        parse_detection_reply('{"isAI": true}')


@pytest.mark.asyncio
async def test_gptzero_estimator_posts_document():
    seen = {}

    def handler(request):
        seen["key"] = request.headers["X-Api-Key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"documents": [{"completely_generated_prob": 0.25}]})

    estimator = GPTZeroEstimator(_gptzero_config(gptzero_max_chars=10), transport=httpx.MockTransport(handler))

    score = await estimator.score(ScoreRequest(text="a" * 20, provider="openai"))

    assert score == 25
    assert seen["key"] == "zero-key"
    assert seen["body"]["document"].startswith("a" * 10 + "\n\n[Text truncated")


@pytest.mark.asyncio
async def test_gptzero_estimator_maps_http_errors():
    transport = httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))
    estimator = GPTZeroEstimator(_gptzero_config(), transport=transport)

    with pytest.raises(ProviderError) as excinfo:
        await estimator.score(ScoreRequest(text="hello", provider="openai"))

    assert excinfo.value.status_code == 429
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_gptzero_without_key_fails():
    with pytest.raises(ProviderError, match="not configured"):
        await GPTZeroEstimator(RewriterConfig()).score(ScoreRequest(text="hello", provider="openai"))


@pytest.mark.asyncio
async def test_fallback_estimator_uses_secondary_on_failure():
    primary, fallback = StubEstimator(fail=True), StubEstimator(score=61)
    estimator = FallbackScoreEstimator(primary, fallback)

    assert await estimator.score(ScoreRequest(text="hello", provider="openai")) == 61
    assert primary.texts == fallback.texts == ["hello"]


@pytest.mark.asyncio
async def test_fallback_estimator_raises_when_both_fail():
    estimator = FallbackScoreEstimator(StubEstimator(fail=True), StubEstimator(fail=True))
    with pytest.raises(ProviderError):
        await estimator.score(ScoreRequest(text="hello", provider="openai"))


def _clients_with_openai_reply(content):
    clients = ChatClients(RewriterConfig(api_keys={"openai": "k"}))
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    clients._openai["openai"] = client
    return clients, client


@pytest.mark.asyncio
async def test_llm_rewrite_provider_sends_prompt():
    clients, client = _clients_with_openai_reply("  Rewritten text.  ")
    provider = LLMRewriteProvider(clients.config, clients)

    result = await provider.rewrite(RewriteRequest(content="Original text.", instructions="Be brief.", provider="openai"))

    assert result == "Rewritten text."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert "Original text." in kwargs["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_llm_rewrite_provider_rejects_empty_reply():
    clients, _ = _clients_with_openai_reply("")
    with pytest.raises(ProviderError, match="Empty response"):
        await LLMRewriteProvider(clients.config, clients).rewrite(
            RewriteRequest(content="x", instructions="", provider="openai")
        )


@pytest.mark.asyncio
async def test_llm_score_estimator_uses_system_prompt():
    clients, client = _clients_with_openai_reply('{"isAI": true, "confidence": 0.4}')

    score = await LLMScoreEstimator(clients.config, clients).score(ScoreRequest(text="text", provider="openai"))

    assert score == 40
    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert messages[0]["role"] == "system"


@pytest.mark.asyncio
async def test_missing_api_key_is_provider_error():
    clients = ChatClients(RewriterConfig(api_keys={}))
    with pytest.raises(ProviderError) as excinfo:
        await clients.complete("perplexity", "hi")
    assert excinfo.value.status_code == 401
    assert not excinfo.value.retryable
