"""Rewrite providers and AI-score estimators for the rewriting module."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Protocol

import anthropic
import google.generativeai as genai
import httpx
import openai
from openai import AsyncOpenAI

from .config import RewriterConfig
from .errors import ProviderError
from .prompt import PROMPT_DETECT, RewriteRequest, ScoreRequest, build_user_message

OPENAI_COMPATIBLE = {"openai", "deepseek", "perplexity"}
JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class RewriteProvider(Protocol):
    async def rewrite(self, request: RewriteRequest) -> str: ...


class ScoreEstimator(Protocol):
    async def score(self, request: ScoreRequest) -> int: ...


def clamp_score(value: float) -> int:
    return max(0, min(100, int(round(value))))


def _require_text(text: Optional[str], provider: str) -> str:
    if text is None or not text.strip():
        raise ProviderError("Empty response from model", status_code=None, provider=provider)
    return text.strip()


class ChatClients:
    """Lazily built SDK clients, one per provider."""

    def __init__(self, config: RewriterConfig):
        self.config = config
        self._openai: Dict[str, AsyncOpenAI] = {}
        self._anthropic: Optional[anthropic.AsyncAnthropic] = None
        self._gemini_configured = False

    def _missing_key(self, provider: str) -> ProviderError:
        return ProviderError(f"No API key configured for {provider}", status_code=401, provider=provider)

    def openai_client(self, provider: str) -> AsyncOpenAI:
        if provider not in self._openai:
            api_key = self.config.api_key(provider)
            if not api_key:
                raise self._missing_key(provider)
            self._openai[provider] = AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.base_urls.get(provider),
                timeout=self.config.request_timeout,
                max_retries=0,
            )
        return self._openai[provider]

    def anthropic_client(self) -> anthropic.AsyncAnthropic:
        if self._anthropic is None:
            api_key = self.config.api_key("anthropic")
            if not api_key:
                raise self._missing_key("anthropic")
            self._anthropic = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=self.config.request_timeout,
                max_retries=0,
            )
        return self._anthropic

    def gemini_model(self, system: Optional[str] = None) -> genai.GenerativeModel:
        if not self._gemini_configured:
            api_key = self.config.api_key("gemini")
            if not api_key:
                raise self._missing_key("gemini")
            genai.configure(api_key=api_key)
            self._gemini_configured = True
        return genai.GenerativeModel(self.config.model("gemini"), system_instruction=system)

    async def complete(self, provider: str, user_message: str, system: Optional[str] = None) -> str:
        """Send one chat turn to ``provider`` and return the reply text."""
        model = self.config.model(provider)
        try:
            if provider in OPENAI_COMPATIBLE:
                messages = []
                if system:
                    messages.append({"role": "system", "content": system})
                messages.append({"role": "user", "content": user_message})
                response = await self.openai_client(provider).chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=self.config.max_output_tokens,
                )
                text = response.choices[0].message.content if response.choices else None
            elif provider == "anthropic":
                kwargs: Dict[str, Any] = {}
                if system:
                    kwargs["system"] = system
                response = await self.anthropic_client().messages.create(
                    model=model,
                    max_tokens=self.config.max_output_tokens,
                    messages=[{"role": "user", "content": user_message}],
                    **kwargs,
                )
                text = "".join(
                    block.text for block in response.content if getattr(block, "type", "") == "text"
                )
            elif provider == "gemini":
                response = await self.gemini_model(system).generate_content_async(user_message)
                try:
                    text = response.text
                except ValueError as exc:
                    raise ProviderError(f"Malformed Gemini response: {exc}", provider=provider) from exc
            else:
                raise ProviderError(f"Unsupported provider: {provider}", status_code=400, provider=provider)
        except ProviderError:
            raise
        except (openai.APIStatusError, anthropic.APIStatusError) as exc:
            raise ProviderError(str(exc), status_code=exc.status_code, provider=provider) from exc
        except (openai.APIError, anthropic.APIError) as exc:
            raise ProviderError(str(exc), status_code=None, provider=provider) from exc
        except Exception as exc:
            # google-generativeai surfaces google.api_core exceptions with a `code`
            if provider != "gemini":
                raise
            raise ProviderError(str(exc), status_code=getattr(exc, "code", None), provider=provider) from exc
        return _require_text(text, provider)


class LLMRewriteProvider:
    def __init__(self, config: RewriterConfig, clients: Optional[ChatClients] = None):
        self.clients = clients or ChatClients(config)

    async def rewrite(self, request: RewriteRequest) -> str:
        return await self.clients.complete(request.provider, build_user_message(request))


def parse_detection_reply(reply: str, provider: str = "") -> int:
    """Turn a model's JSON verdict into a 0-100 AI-likelihood score."""
    match = JSON_OBJECT_RE.search(reply or "")
    if not match:
        raise ProviderError("Model did not return a JSON verdict", provider=provider)
    try:
        verdict = json.loads(match.group())
        confidence = float(verdict["confidence"])
    except (ValueError, KeyError, TypeError) as exc:
        raise ProviderError(f"Malformed detection verdict: {exc}", provider=provider) from exc
    if confidence <= 1:
        confidence *= 100
    return clamp_score(confidence)


class LLMScoreEstimator:
    def __init__(self, config: RewriterConfig, clients: Optional[ChatClients] = None):
        self.clients = clients or ChatClients(config)

    async def score(self, request: ScoreRequest) -> int:
        reply = await self.clients.complete(request.provider, request.text, system=PROMPT_DETECT)
        return parse_detection_reply(reply, request.provider)


def parse_gptzero_payload(data: Any) -> int:
    try:
        probability = float(data["documents"][0]["completely_generated_prob"])
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed GPTZero response: {exc}", provider="gptzero") from exc
    return clamp_score(probability * 100)


class GPTZeroEstimator:
    def __init__(self, config: RewriterConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def score(self, request: ScoreRequest) -> int:
        if not self.config.gptzero_api_key:
            raise ProviderError("GPTZero API key not configured", status_code=401, provider="gptzero")

        text = request.text
        if len(text) > self.config.gptzero_max_chars:
            text = text[: self.config.gptzero_max_chars] + "\n\n[Text truncated for analysis]"

        try:
            async with httpx.AsyncClient(timeout=self.config.request_timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.config.gptzero_url,
                    headers={
                        "Accept": "application/json",
                        "X-Api-Key": self.config.gptzero_api_key,
                    },
                    json={"document": text, "docType": "text"},
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"GPTZero request failed: {exc}", provider="gptzero") from exc

        if resp.status_code >= 300:
            raise ProviderError(
                f"GPTZero API error: {resp.text[:500]}", status_code=resp.status_code, provider="gptzero"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("GPTZero returned invalid JSON", status_code=resp.status_code, provider="gptzero") from exc
        return parse_gptzero_payload(data)


class FallbackScoreEstimator:
    """Try ``primary`` first and fall back to ``fallback`` when it fails."""

    def __init__(self, primary: ScoreEstimator, fallback: ScoreEstimator):
        self.primary = primary
        self.fallback = fallback

    async def score(self, request: ScoreRequest) -> int:
        try:
            return await self.primary.score(request)
        except ProviderError as exc:
            print(f"[WARNING] Primary AI detection failed, falling back to {request.provider}: {exc}")
        return await self.fallback.score(request)


def build_default_services(config: RewriterConfig) -> tuple[LLMRewriteProvider, ScoreEstimator]:
    clients = ChatClients(config)
    estimator: ScoreEstimator = LLMScoreEstimator(config, clients)
    if config.gptzero_api_key:
        estimator = FallbackScoreEstimator(GPTZeroEstimator(config), estimator)
    return LLMRewriteProvider(config, clients), estimator
