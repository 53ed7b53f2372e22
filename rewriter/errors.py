"""Error taxonomy for the rewriting module."""

from __future__ import annotations

from typing import Optional

RETRYABLE_STATUS_CODES = {408, 429}


class RewriterError(Exception):
    """Base class for every error raised by the rewriting module."""


class InvalidInput(RewriterError):
    """The request is malformed; fix it before retrying."""


class UnknownPreset(RewriterError):
    def __init__(self, preset_id: str):
        self.preset_id = preset_id
        super().__init__(f"Unknown instruction preset: {preset_id}")


class ProviderError(RewriterError):
    """A rewrite provider or AI-score estimator call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        chunk_id: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.chunk_id = chunk_id
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500

    def for_chunk(self, chunk_id: str) -> "ProviderError":
        self.chunk_id = chunk_id
        return self

    def __str__(self) -> str:
        parts = []
        if self.provider:
            parts.append(self.provider)
        if self.status_code is not None:
            parts.append(str(self.status_code))
        if self.chunk_id:
            parts.append(f"chunk {self.chunk_id}")
        prefix = f"[{', '.join(parts)}] " if parts else ""
        return f"{prefix}{self.message}"

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "statusCode": self.status_code,
            "provider": self.provider,
            "chunkId": self.chunk_id,
            "retryable": self.retryable,
        }


class JobNotFound(RewriterError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Rewrite job not found: {job_id}")


class InvalidTransition(RewriterError):
    def __init__(self, current: str, target: str, reason: str = ""):
        self.current = current
        self.target = target
        message = f"Cannot move job from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
