"""Chunk selection, provider dispatch and reassembly for rewrite jobs."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Awaitable, Dict, Iterable, List, Optional, TypeVar

from .chunker import chunk_text, chunks_match, count_words, leading_whitespace, reassemble
from .config import RewriterConfig, effective_chunk_size
from .errors import InvalidTransition, ProviderError
from .models import JobStatus, RewriteJob, TextChunk
from .presets import build_instructions, validate_presets
from .prompt import RewriteRequest, ScoreRequest, build_rewrite_request
from .providers import RewriteProvider, ScoreEstimator
from .storage import JobStore

T = TypeVar("T")


async def _gather_or_cancel(coros: Iterable[Awaitable[T]]) -> List[T]:
    """Like asyncio.gather, but cancels the siblings once one of them fails."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Orchestrator:
    """Runs rewrite jobs against a rewrite provider and an AI-score estimator.

    Failure policy is fail-fast: the first provider error cancels the calls
    still in flight and fails the whole job. The input score is requested
    together with the chunk calls, and the output is only scored once both
    have succeeded. Chunk contents are only replaced
    once every targeted chunk has been rewritten and both document scores are
    known, so a failed job never carries partially rewritten text.
    """

    def __init__(
        self,
        config: RewriterConfig,
        provider: RewriteProvider,
        estimator: ScoreEstimator,
        store: Optional[JobStore] = None,
    ):
        self.config = config
        self.provider = provider
        self.estimator = estimator
        self.store = store

    # Job preparation
    def chunk_job(self, job: RewriteJob) -> List[TextChunk]:
        size = job.max_words_per_chunk or effective_chunk_size(
            count_words(job.input_text), self.config.max_words_per_chunk
        )
        job.chunks = chunk_text(job.input_text, size)
        job.leading = leading_whitespace(job.input_text)
        return job.chunks

    def prepare(self, job: RewriteJob) -> List[TextChunk]:
        """Validate ``job`` and return the chunks that will be sent for rewriting."""
        if job.status != JobStatus.PENDING:
            raise InvalidTransition(job.status, JobStatus.PROCESSING)
        if job.chunks and not chunks_match(job.chunks, job.input_text):
            job.chunks = []
        job.validate()
        validate_presets(job.selected_presets)

        if not job.chunks:
            self.chunk_job(job)
        job.leading = leading_whitespace(job.input_text)
        job.validate_selection()

        if job.selected_chunk_ids:
            selected = set(job.selected_chunk_ids)
            return [chunk for chunk in job.chunks if chunk.id in selected]
        return list(job.chunks)

    def create_job(self, job: RewriteJob) -> RewriteJob:
        self.prepare(job)
        self._persist(job)
        print(f"[INFO] Created rewrite job {job.id} with {len(job.chunks)} chunks")
        return job

    def rerewrite(self, job: RewriteJob) -> RewriteJob:
        """Create a new job whose input is the output of a completed job."""
        if job.status != JobStatus.COMPLETED or job.output_text is None:
            raise InvalidTransition(job.status, JobStatus.PENDING, "only completed jobs can be rewritten again")
        child = RewriteJob(
            input_text=job.output_text,
            provider=job.provider,
            style_text=job.style_text,
            content_mix_text=job.content_mix_text,
            custom_instructions=job.custom_instructions,
            selected_presets=list(job.selected_presets),
            mixing_mode=job.mixing_mode,
            max_words_per_chunk=job.max_words_per_chunk,
            parent_job_id=job.id,
        )
        return self.create_job(child)

    # Processing
    async def rewrite_document(self, job: RewriteJob) -> RewriteJob:
        targets = self.prepare(job)
        instructions = build_instructions(job.selected_presets, job.custom_instructions)
        total = len(job.chunks)
        target_ids = {chunk.id for chunk in targets}
        requests = {
            chunk.id: build_rewrite_request(chunk, job, instructions, index, total)
            for index, chunk in enumerate(job.chunks)
            if chunk.id in target_ids
        }

        job.error = None
        job.transition(JobStatus.PROCESSING)
        # claim the stored record so a concurrent run of the same job is refused
        self._persist(job, expected_status=JobStatus.PENDING)
        print(f"[INFO] Job {job.id}: rewriting {len(requests)} of {total} chunks with {job.provider}")

        try:
            rewritten, input_ai_score = await _gather_or_cancel(
                [self._rewrite_chunks(requests), self.score_text(job.input_text, job.provider)]
            )
            chunks = [
                replace(chunk, content=rewritten[chunk.id], ai_score=None) if chunk.id in rewritten else chunk
                for chunk in sorted(job.chunks, key=lambda chunk: chunk.start_word)
            ]
            output_text = reassemble(chunks, job.leading)

            pending = [self.score_text(output_text, job.provider)]
            if self.config.track_chunk_scores:
                pending.extend(
                    self.score_text(chunk.content, job.provider) for chunk in chunks if chunk.id in rewritten
                )
            output_score, *chunk_scores = await _gather_or_cancel(pending)
        except BaseException as exc:
            reason = "Rewrite cancelled" if isinstance(exc, asyncio.CancelledError) else str(exc)
            self._fail(job, reason)
            raise

        if chunk_scores:
            scored = iter(chunk_scores)
            for chunk in chunks:
                if chunk.id in rewritten:
                    chunk.ai_score = next(scored)
        job.chunks = chunks
        job.output_text = output_text
        job.input_ai_score = input_ai_score
        job.output_ai_score = output_score
        job.transition(JobStatus.COMPLETED)
        self._persist(job, expected_status=JobStatus.PROCESSING)
        print(
            f"[INFO] Job {job.id} completed: AI score {job.input_ai_score} -> {job.output_ai_score}"
        )
        return job

    async def _rewrite_chunks(self, requests: Dict[str, RewriteRequest]) -> Dict[str, str]:
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def run(chunk_id: str, request: RewriteRequest) -> tuple[str, str]:
            async with semaphore:
                try:
                    text = await self.provider.rewrite(request)
                except ProviderError as exc:
                    print(f"[ERROR] Chunk {chunk_id} failed: {exc}")
                    raise exc.for_chunk(chunk_id)
            if not text or not text.strip():
                raise ProviderError("Provider returned empty text", provider=request.provider, chunk_id=chunk_id)
            return chunk_id, text.strip()

        results = await _gather_or_cancel(run(chunk_id, request) for chunk_id, request in requests.items())
        return dict(results)

    async def score_text(self, text: str, provider: str) -> int:
        request = ScoreRequest(text=text, provider=provider).validate()
        try:
            score = await self.estimator.score(request)
        except ProviderError as exc:
            print(f"[ERROR] AI detection failed: {exc}")
            raise
        if not isinstance(score, int) or not 0 <= score <= 100:
            raise ProviderError(f"AI score out of range: {score!r}", provider=provider)
        return score

    async def score_chunks(self, job: RewriteJob) -> RewriteJob:
        """Fill in the AI score of every chunk of ``job``.

        Only chunk scores are written back to the store, and only onto chunks
        whose content is unchanged, so a run that finishes while the estimator
        is busy keeps its status and output.
        """
        if not job.chunks:
            self.chunk_job(job)
        scores = await _gather_or_cancel(self.score_text(chunk.content, job.provider) for chunk in job.chunks)
        for chunk, score in zip(job.chunks, scores):
            chunk.ai_score = score
        if self.store is None:
            return job
        return self.store.update_chunk_scores(
            job.id, {chunk.id: (chunk.content, chunk.ai_score) for chunk in job.chunks}
        )

    async def process_chunk(self, request: RewriteRequest) -> str:
        request.validate()
        text = await self.provider.rewrite(request)
        if not text or not text.strip():
            raise ProviderError("Provider returned empty text", provider=request.provider)
        return text.strip()

    # Bookkeeping
    def _fail(self, job: RewriteJob, reason: str) -> None:
        job.error = reason
        job.transition(JobStatus.FAILED)
        print(f"[ERROR] Job {job.id} failed: {reason}")
        self._persist(job, expected_status=JobStatus.PROCESSING)

    def _persist(self, job: RewriteJob, expected_status: Optional[str] = None) -> None:
        if self.store is not None:
            self.store.save(job, expected_status=expected_status)
