"""Configuration for the rewriting module."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class ChunkConfig:
    base_words: int
    # (document word count above which, chunk size to use), largest first
    large_doc_sizes: Tuple[Tuple[int, int], ...]


CFG_CHUNKS = ChunkConfig(
    base_words=1000,
    large_doc_sizes=((100000, 4000), (50000, 3000), (20000, 2000)),
)

PROVIDERS = ("openai", "anthropic", "deepseek", "perplexity", "gemini")
DEFAULT_PROVIDER = "anthropic"

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-7-sonnet-20250219",
    "deepseek": "deepseek-chat",
    "perplexity": "sonar",
    "gemini": "gemini-2.5-pro",
}

OPENAI_COMPATIBLE_URLS = {
    "openai": None,
    "deepseek": "https://api.deepseek.com",
    "perplexity": "https://api.perplexity.ai",
}

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

GPTZERO_API_URL = "https://api.gptzero.me/v2/predict/text"
GPTZERO_MAX_CHARS = 45000

REQUEST_TIMEOUT = 300
MAX_OUTPUT_TOKENS = 4000

EXPORT_HEADERS = ["Chunk", "Words", "Original", "Rewritten", "AI score"]


@dataclass(frozen=True)
class RewriterConfig:
    """Everything the orchestrator and providers need, passed in explicitly."""

    api_keys: Dict[str, Optional[str]] = field(default_factory=dict)
    models: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    base_urls: Dict[str, Optional[str]] = field(
        default_factory=lambda: dict(OPENAI_COMPATIBLE_URLS)
    )
    default_provider: str = DEFAULT_PROVIDER
    max_words_per_chunk: int = CFG_CHUNKS.base_words
    max_concurrency: int = 4
    request_timeout: float = REQUEST_TIMEOUT
    max_output_tokens: int = MAX_OUTPUT_TOKENS
    track_chunk_scores: bool = False
    gptzero_api_key: Optional[str] = None
    gptzero_url: str = GPTZERO_API_URL
    gptzero_max_chars: int = GPTZERO_MAX_CHARS

    def api_key(self, provider: str) -> Optional[str]:
        return self.api_keys.get(provider)

    def model(self, provider: str) -> str:
        return self.models.get(provider) or DEFAULT_MODELS[provider]

    @classmethod
    def from_env(cls) -> "RewriterConfig":
        load_dotenv()
        base_urls = dict(OPENAI_COMPATIBLE_URLS)
        if os.getenv("OPENAI_BASE_URL"):
            base_urls["openai"] = os.getenv("OPENAI_BASE_URL")
        models = dict(DEFAULT_MODELS)
        for provider in PROVIDERS:
            override = os.getenv(f"RW_{provider.upper()}_MODEL")
            if override:
                models[provider] = override
        return cls(
            api_keys={provider: os.getenv(env) for provider, env in API_KEY_ENV.items()},
            models=models,
            base_urls=base_urls,
            default_provider=os.getenv("RW_DEFAULT_PROVIDER", DEFAULT_PROVIDER),
            max_words_per_chunk=int(os.getenv("RW_MAX_WORDS", str(CFG_CHUNKS.base_words))),
            max_concurrency=int(os.getenv("RW_MAX_CONCURRENCY", "4")),
            request_timeout=float(os.getenv("RW_REQUEST_TIMEOUT", str(REQUEST_TIMEOUT))),
            track_chunk_scores=os.getenv("RW_TRACK_CHUNK_SCORES", "false").lower() == "true",
            gptzero_api_key=os.getenv("GPTZERO_API_KEY"),
        )


def effective_chunk_size(word_count: int, base_words: Optional[int] = None) -> int:
    """Grow the chunk size for very large documents to keep the call count sane."""
    for threshold, size in CFG_CHUNKS.large_doc_sizes:
        if word_count > threshold:
            return size
    return base_words or CFG_CHUNKS.base_words
