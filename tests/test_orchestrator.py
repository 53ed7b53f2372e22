"""Tests for chunk selection, dispatch and reassembly."""

import asyncio

import pytest

from rewriter.errors import InvalidInput, InvalidTransition, ProviderError, UnknownPreset
from rewriter.models import JobStatus, MixingMode, RewriteJob
from tests.conftest import StubEstimator, StubProvider, make_words


def _job(text, size=50, **fields):
    return RewriteJob(input_text=text, provider="openai", max_words_per_chunk=size, **fields)


@pytest.mark.asyncio
async def test_selected_chunk_is_the_only_one_rewritten(make_orchestrator):
    text = make_words(120)
    provider = StubProvider(transform=str.upper)
    orchestrator = make_orchestrator(provider=provider)
    job = _job(text, selected_chunk_ids=["chunk_0001"])

    await orchestrator.rewrite_document(job)

    words = text.split()
    expected = words[:50] + [w.upper() for w in words[50:100]] + words[100:]
    assert job.status == JobStatus.COMPLETED
    assert job.output_text.split() == expected
    assert len(provider.requests) == 1
    assert job.chunks[0].content.split() == words[:50]


@pytest.mark.asyncio
async def test_identity_provider_reproduces_input_exactly(make_orchestrator):
    text = "Intro line here.\n\n" + make_words(75) + "\nTrailing   spaces stay.\n"
    orchestrator = make_orchestrator()
    job = _job(text, size=20)

    await orchestrator.rewrite_document(job)

    assert job.output_text == text


@pytest.mark.asyncio
async def test_empty_selection_rewrites_every_chunk(make_orchestrator):
    provider = StubProvider(transform=str.upper)
    orchestrator = make_orchestrator(provider=provider)
    job = _job(make_words(120))

    await orchestrator.rewrite_document(job)

    assert len(provider.requests) == 3
    assert job.output_text == make_words(120).upper()


@pytest.mark.asyncio
async def test_reassembly_ignores_completion_order(make_orchestrator):
    text = make_words(30)
    chunks_text = [" ".join(text.split()[i : i + 10]) for i in (0, 10, 20)]
    provider = StubProvider(
        transform=lambda content: f"<{content}>",
        delays={chunks_text[0]: 0.03, chunks_text[1]: 0.01, chunks_text[2]: 0},
    )
    orchestrator = make_orchestrator(provider=provider)
    job = _job(text, size=10)

    await orchestrator.rewrite_document(job)

    assert job.output_text == " ".join(f"<{content}>" for content in chunks_text)


@pytest.mark.asyncio
async def test_scores_are_recorded_after_output(make_orchestrator):
    estimator = StubEstimator(score=lambda text: 90 if text.startswith("w0") else 12)
    orchestrator = make_orchestrator(provider=StubProvider(transform=str.upper), estimator=estimator)
    job = _job(make_words(60))

    await orchestrator.rewrite_document(job)

    assert job.input_ai_score == 90
    assert job.output_ai_score == 12
    assert job.output_text in estimator.texts


@pytest.mark.asyncio
async def test_provider_failure_fails_whole_job(make_orchestrator, store):
    text = make_words(120)
    failing_chunk = " ".join(text.split()[50:100])
    estimator = StubEstimator()
    orchestrator = make_orchestrator(
        provider=StubProvider(transform=str.upper, fail_on={failing_chunk}), estimator=estimator
    )
    job = _job(text)

    with pytest.raises(ProviderError) as excinfo:
        await orchestrator.rewrite_document(job)

    assert excinfo.value.chunk_id == "chunk_0001"
    assert excinfo.value.retryable
    assert job.status == JobStatus.FAILED
    assert job.output_text is None
    assert job.output_ai_score is None
    assert "chunk_0001" in job.error
    # no partially rewritten content leaks into the job
    assert [c.content for c in job.chunks] == [" ".join(text.split()[i : i + 50]) for i in (0, 50, 100)]
    assert store.load(job.id).status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_failure_cancels_in_flight_calls(make_orchestrator):
    text = make_words(20)
    first, second = " ".join(text.split()[:10]), " ".join(text.split()[10:])
    provider = StubProvider(fail_on={first}, delays={second: 5})
    orchestrator = make_orchestrator(provider=provider)
    job = _job(text, size=10)

    with pytest.raises(ProviderError):
        await asyncio.wait_for(orchestrator.rewrite_document(job), timeout=2)

    assert provider.cancelled == [second]


@pytest.mark.asyncio
async def test_estimator_failure_leaves_output_undefined(make_orchestrator):
    orchestrator = make_orchestrator(estimator=StubEstimator(fail=True))
    job = _job(make_words(10))

    with pytest.raises(ProviderError):
        await orchestrator.rewrite_document(job)

    assert job.status == JobStatus.FAILED
    assert job.output_text is None
    assert job.output_ai_score is None


@pytest.mark.asyncio
async def test_out_of_range_score_is_a_provider_error(make_orchestrator):
    orchestrator = make_orchestrator(estimator=StubEstimator(score=150))
    job = _job(make_words(10))

    with pytest.raises(ProviderError, match="out of range"):
        await orchestrator.rewrite_document(job)
    assert job.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_cancelled_job_moves_to_failed(make_orchestrator):
    text = make_words(10)
    provider = StubProvider(delays={text: 5})
    orchestrator = make_orchestrator(provider=provider)
    job = _job(text)

    task = asyncio.ensure_future(orchestrator.rewrite_document(job))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert job.status == JobStatus.FAILED
    assert job.output_text is None
    assert job.error == "Rewrite cancelled"


@pytest.mark.asyncio
async def test_validation_errors_happen_before_any_provider_call(make_orchestrator):
    provider = StubProvider()
    orchestrator = make_orchestrator(provider=provider)

    with pytest.raises(UnknownPreset):
        await orchestrator.rewrite_document(_job(make_words(10), selected_presets=["nope"]))
    with pytest.raises(InvalidInput):
        await orchestrator.rewrite_document(_job(make_words(10), selected_chunk_ids=["chunk_0099"]))
    with pytest.raises(InvalidInput):
        await orchestrator.rewrite_document(_job("   "))
    with pytest.raises(InvalidInput):
        await orchestrator.rewrite_document(_job(make_words(10), size=0))

    assert provider.requests == []


@pytest.mark.asyncio
async def test_completed_job_cannot_be_run_again(make_orchestrator):
    orchestrator = make_orchestrator()
    job = _job(make_words(10))
    await orchestrator.rewrite_document(job)

    with pytest.raises(InvalidTransition):
        await orchestrator.rewrite_document(job)


@pytest.mark.asyncio
async def test_stale_chunks_are_rebuilt(make_orchestrator):
    orchestrator = make_orchestrator(provider=StubProvider(transform=str.upper))
    job = _job(make_words(20), size=10)
    orchestrator.chunk_job(job)
    job.input_text = make_words(30, prefix="x")

    await orchestrator.rewrite_document(job)

    assert len(job.chunks) == 3
    assert job.output_text == make_words(30, prefix="x").upper()


@pytest.mark.asyncio
async def test_mixing_mode_controls_sources(make_orchestrator):
    provider = StubProvider()
    orchestrator = make_orchestrator(provider=provider)
    job = _job(
        make_words(10),
        style_text="STYLE",
        content_mix_text="CONTENT",
        mixing_mode=MixingMode.STYLE,
        selected_presets=["hedge-once"],
        custom_instructions="Keep it short.",
    )

    await orchestrator.rewrite_document(job)

    request = provider.requests[0]
    assert request.style_source == "STYLE"
    assert request.content_source is None
    assert request.instructions.startswith("Hedge once:")
    assert request.instructions.endswith("Keep it short.")


@pytest.mark.asyncio
async def test_chunk_scores_tracked_when_enabled(make_orchestrator):
    orchestrator = make_orchestrator(
        provider=StubProvider(transform=str.upper),
        estimator=StubEstimator(score=7),
        track_chunk_scores=True,
    )
    job = _job(make_words(120), selected_chunk_ids=["chunk_0002"])

    await orchestrator.rewrite_document(job)

    assert [c.ai_score for c in job.chunks] == [None, None, 7]


@pytest.mark.asyncio
async def test_score_chunks_fills_every_chunk(make_orchestrator, store):
    orchestrator = make_orchestrator(estimator=StubEstimator(score=55))
    job = orchestrator.create_job(_job(make_words(120)))

    await orchestrator.score_chunks(job)

    assert [c.ai_score for c in store.load(job.id).chunks] == [55, 55, 55]


@pytest.mark.asyncio
async def test_rerewrite_uses_previous_output(make_orchestrator, store):
    orchestrator = make_orchestrator(provider=StubProvider(transform=str.upper))
    job = _job(make_words(10), selected_presets=["no-meta"])
    await orchestrator.rewrite_document(job)

    child = orchestrator.rerewrite(job)

    assert child.input_text == job.output_text
    assert child.parent_job_id == job.id
    assert child.status == JobStatus.PENDING
    assert child.selected_presets == ["no-meta"]
    assert store.load(child.id).input_text == job.output_text


def test_rerewrite_requires_completed_job(make_orchestrator):
    with pytest.raises(InvalidTransition):
        make_orchestrator().rerewrite(_job(make_words(10)))


@pytest.mark.asyncio
async def test_input_score_failure_cancels_chunk_calls(make_orchestrator, store):
    text = make_words(30)
    chunks_text = [" ".join(text.split()[i : i + 10]) for i in (0, 10, 20)]
    provider = StubProvider(delays={content: 5 for content in chunks_text})
    estimator = StubEstimator(fail_on={text}, delay=0.01)
    orchestrator = make_orchestrator(provider=provider, estimator=estimator)
    job = _job(text, size=10)

    with pytest.raises(ProviderError, match="detector down"):
        await asyncio.wait_for(orchestrator.rewrite_document(job), timeout=2)

    # the output is never scored
    assert estimator.texts == [text]
    assert sorted(provider.cancelled) == sorted(chunks_text)
    assert job.status == JobStatus.FAILED
    assert store.load(job.id).status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_scoring_a_stale_copy_keeps_finished_run(make_orchestrator, store):
    runner = make_orchestrator(provider=StubProvider(transform=str.upper))
    scorer = make_orchestrator(estimator=StubEstimator(score=5, delay=0.05))
    job = runner.create_job(_job(make_words(120)))

    finished, scored = await asyncio.gather(
        runner.rewrite_document(store.load(job.id)), scorer.score_chunks(store.load(job.id))
    )

    stored = store.load(job.id)
    assert finished.status == JobStatus.COMPLETED
    assert stored.status == JobStatus.COMPLETED
    assert stored.output_text == make_words(120).upper()
    # scores for the pre-rewrite text are not attached to rewritten chunks
    assert [c.ai_score for c in stored.chunks] == [None, None, None]
    assert scored.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_concurrent_runs_of_one_job_rewrite_once(make_orchestrator, store):
    provider = StubProvider(transform=str.upper)
    orchestrator = make_orchestrator(provider=provider)
    job = orchestrator.create_job(_job(make_words(120)))

    results = await asyncio.gather(
        orchestrator.rewrite_document(store.load(job.id)),
        orchestrator.rewrite_document(store.load(job.id)),
        return_exceptions=True,
    )

    assert sum(isinstance(result, InvalidTransition) for result in results) == 1
    assert len(provider.requests) == 3
    assert store.load(job.id).status == JobStatus.COMPLETED
