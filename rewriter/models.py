"""Typed models used by the rewriting module."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import DEFAULT_PROVIDER, PROVIDERS
from .errors import InvalidInput, InvalidTransition


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)
    TERMINAL = (COMPLETED, FAILED)


class MixingMode:
    STYLE = "style"
    CONTENT = "content"
    BOTH = "both"
    NONE = "none"

    ALL = (STYLE, CONTENT, BOTH, NONE)


ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def is_forward(current: str, target: str) -> bool:
    """True if ``target`` is ``current`` or can be reached from it."""
    seen, frontier = set(), [current]
    while frontier:
        status = frontier.pop()
        if status == target:
            return True
        if status not in seen:
            seen.add(status)
            frontier.extend(ALLOWED_TRANSITIONS.get(status, ()))
    return False


@dataclass
class TextChunk:
    id: str
    content: str
    start_word: int
    end_word: int
    ai_score: Optional[int] = None
    # whitespace that followed this chunk in the source text
    separator: str = ""

    @property
    def word_count(self) -> int:
        return self.end_word - self.start_word

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "startWord": self.start_word,
            "endWord": self.end_word,
            "aiScore": self.ai_score,
            "separator": self.separator,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextChunk":
        return cls(
            id=data["id"],
            content=data["content"],
            start_word=data["startWord"],
            end_word=data["endWord"],
            ai_score=data.get("aiScore"),
            separator=data.get("separator", ""),
        )


@dataclass
class RewriteJob:
    input_text: str
    provider: str = DEFAULT_PROVIDER
    style_text: Optional[str] = None
    content_mix_text: Optional[str] = None
    custom_instructions: Optional[str] = None
    selected_presets: List[str] = field(default_factory=list)
    chunks: List[TextChunk] = field(default_factory=list)
    selected_chunk_ids: List[str] = field(default_factory=list)
    mixing_mode: Optional[str] = None
    output_text: Optional[str] = None
    input_ai_score: Optional[int] = None
    output_ai_score: Optional[int] = None
    status: str = JobStatus.PENDING
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)
    updated_at: Optional[float] = None
    max_words_per_chunk: Optional[int] = None
    leading: str = ""
    error: Optional[str] = None
    parent_job_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def chunk_ids(self) -> List[str]:
        return [chunk.id for chunk in self.chunks]

    def validate(self) -> None:
        if not self.input_text or not self.input_text.strip():
            raise InvalidInput("Input text is required")
        if self.provider not in PROVIDERS:
            raise InvalidInput(f"Unknown provider: {self.provider}")
        if self.mixing_mode is not None and self.mixing_mode not in MixingMode.ALL:
            raise InvalidInput(f"Unknown mixing mode: {self.mixing_mode}")
        if self.max_words_per_chunk is not None and self.max_words_per_chunk <= 0:
            raise InvalidInput("maxWordsPerChunk must be a positive integer")
        if self.chunks:
            self.validate_selection()

    def validate_selection(self) -> None:
        known = set(self.chunk_ids())
        unknown = [chunk_id for chunk_id in self.selected_chunk_ids if chunk_id not in known]
        if unknown:
            raise InvalidInput(f"Selected chunks do not exist: {', '.join(unknown)}")

    def transition(self, target: str) -> None:
        if target not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(self.status, target)
        if target == JobStatus.COMPLETED:
            if self.output_text is None:
                raise InvalidTransition(self.status, target, "output text is missing")
            if self.input_ai_score is None or self.output_ai_score is None:
                raise InvalidTransition(self.status, target, "AI scores are missing")
        if target == JobStatus.FAILED:
            self.output_text = None
            self.output_ai_score = None
        self.status = target
        self.updated_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "inputText": self.input_text,
            "styleText": self.style_text,
            "contentMixText": self.content_mix_text,
            "customInstructions": self.custom_instructions,
            "selectedPresets": list(self.selected_presets),
            "provider": self.provider,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "selectedChunkIds": list(self.selected_chunk_ids),
            "mixingMode": self.mixing_mode,
            "outputText": self.output_text,
            "inputAiScore": self.input_ai_score,
            "outputAiScore": self.output_ai_score,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "maxWordsPerChunk": self.max_words_per_chunk,
            "leading": self.leading,
            "error": self.error,
            "parentJobId": self.parent_job_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewriteJob":
        return cls(
            id=data["id"],
            input_text=data["inputText"],
            style_text=data.get("styleText"),
            content_mix_text=data.get("contentMixText"),
            custom_instructions=data.get("customInstructions"),
            selected_presets=list(data.get("selectedPresets") or []),
            provider=data.get("provider", DEFAULT_PROVIDER),
            chunks=[TextChunk.from_dict(chunk) for chunk in data.get("chunks") or []],
            selected_chunk_ids=list(data.get("selectedChunkIds") or []),
            mixing_mode=data.get("mixingMode"),
            output_text=data.get("outputText"),
            input_ai_score=data.get("inputAiScore"),
            output_ai_score=data.get("outputAiScore"),
            status=data.get("status", JobStatus.PENDING),
            created_at=data.get("createdAt") or time.time(),
            updated_at=data.get("updatedAt"),
            max_words_per_chunk=data.get("maxWordsPerChunk"),
            leading=data.get("leading", ""),
            error=data.get("error"),
            parent_job_id=data.get("parentJobId"),
        )
