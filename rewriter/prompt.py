"""Provider request types and prompt assembly for the rewriting module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import PROVIDERS
from .errors import InvalidInput
from .models import MixingMode, RewriteJob, TextChunk

PROMPT_REWRITE = """Rewrite the passage below according to the instructions.

Keep the meaning, the facts and the named entities of the passage. Do not add
headings, notes or commentary. RETURN ONLY THE REWRITTEN PASSAGE."""

PROMPT_DETECT = (
    "You are an AI detection expert. Analyze the provided text and determine if it was "
    "likely written by AI or human. Respond with a JSON object containing: isAI (boolean), "
    "confidence (0-1, the probability that the text is AI-generated), and details (string explanation)."
)


@dataclass(frozen=True)
class RewriteRequest:
    content: str
    instructions: str
    provider: str
    content_source: Optional[str] = None
    style_source: Optional[str] = None
    chunk_index: int = 0
    total_chunks: int = 1

    def validate(self) -> "RewriteRequest":
        if not self.content or not self.content.strip():
            raise InvalidInput("Input text is required")
        if self.provider not in PROVIDERS:
            raise InvalidInput(f"Unknown provider: {self.provider}")
        if self.total_chunks < 1 or not 0 <= self.chunk_index < self.total_chunks:
            raise InvalidInput(
                f"Chunk index {self.chunk_index} is out of range for {self.total_chunks} chunks"
            )
        return self


@dataclass(frozen=True)
class ScoreRequest:
    text: str
    provider: str

    def validate(self) -> "ScoreRequest":
        if not self.text or not self.text.strip():
            raise InvalidInput("Text is required")
        if self.provider not in PROVIDERS:
            raise InvalidInput(f"Unknown provider: {self.provider}")
        return self


def mix_sources(job: RewriteJob) -> tuple[Optional[str], Optional[str]]:
    """Return the (content source, style source) pair the mixing mode allows."""
    mode = job.mixing_mode or MixingMode.NONE
    content = job.content_mix_text or None
    style = job.style_text or None
    if mode == MixingMode.CONTENT:
        return content, None
    if mode == MixingMode.STYLE:
        return None, style
    if mode == MixingMode.BOTH:
        return content, style
    return None, None


def build_rewrite_request(
    chunk: TextChunk, job: RewriteJob, instructions: str, chunk_index: int, total_chunks: int
) -> RewriteRequest:
    content_source, style_source = mix_sources(job)
    return RewriteRequest(
        content=chunk.content,
        instructions=instructions,
        provider=job.provider,
        content_source=content_source,
        style_source=style_source,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
    ).validate()


def build_user_message(request: RewriteRequest) -> str:
    sections = [PROMPT_REWRITE]
    if request.total_chunks > 1:
        sections.append(
            f"[Processing chunk {request.chunk_index + 1} of {request.total_chunks}]\n"
            "This is part of a larger document, maintain consistency with the surrounding chunks."
        )
    if request.instructions:
        sections.append(f"Instructions:\n{request.instructions}")
    if request.content_source:
        sections.append(
            "Use this content as reference material (do not copy it, use it to enhance the passage):\n"
            f"{request.content_source}"
        )
    if request.style_source:
        sections.append(
            "Style reference (use ONLY as a writing style template - do NOT incorporate its content):\n"
            f"{request.style_source}"
        )
    sections.append(f"Passage:\n{request.content}")
    return "\n\n".join(sections)
