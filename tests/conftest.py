"""Pytest configuration and fixtures."""

import asyncio
from dataclasses import replace
import os

import pytest

from job_storage import PersistentJobStorage
from rewriter.config import RewriterConfig
from rewriter.errors import ProviderError
from rewriter.orchestrator import Orchestrator
from rewriter.storage import JobStore


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ.pop("GPTZERO_API_KEY", None)


class StubProvider:
    """Rewrite provider that applies ``transform`` and records every request."""

    def __init__(self, transform=lambda text: text, fail_on=None, delays=None):
        self.transform = transform
        self.fail_on = fail_on or set()
        self.delays = delays or {}
        self.requests = []
        self.cancelled = []

    async def rewrite(self, request):
        self.requests.append(request)
        try:
            await asyncio.sleep(self.delays.get(request.content, 0))
        except asyncio.CancelledError:
            self.cancelled.append(request.content)
            raise
        if request.content in self.fail_on:
            raise ProviderError("upstream exploded", status_code=503, provider=request.provider)
        return self.transform(request.content)


class StubEstimator:
    def __init__(self, score=42, fail=False, fail_on=None, delay=0):
        self.score_value = score
        self.fail = fail
        self.fail_on = fail_on or set()
        self.delay = delay
        self.texts = []

    async def score(self, request):
        self.texts.append(request.text)
        await asyncio.sleep(self.delay)
        if self.fail or request.text in self.fail_on:
            raise ProviderError("detector down", status_code=500, provider=request.provider)
        if callable(self.score_value):
            return self.score_value(request.text)
        return self.score_value


@pytest.fixture
def config():
    return RewriterConfig(api_keys={"openai": "k", "anthropic": "k"}, max_concurrency=4)


@pytest.fixture
def store():
    return JobStore(PersistentJobStorage.in_memory(prefix="test"))


@pytest.fixture
def make_orchestrator(config, store):
    def _make(provider=None, estimator=None, **overrides):
        cfg = replace(config, **overrides)
        return Orchestrator(cfg, provider or StubProvider(), estimator or StubEstimator(), store)

    return _make


def make_words(count, prefix="w"):
    return " ".join(f"{prefix}{i}" for i in range(count))
