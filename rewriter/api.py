"""Flask blueprint implementing the rewrite APIs."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, Response, current_app, jsonify, request, session

from .chunker import chunk_text, count_words
from .config import PROVIDERS, RewriterConfig, effective_chunk_size
from .errors import InvalidInput, InvalidTransition, JobNotFound, ProviderError, RewriterError, UnknownPreset
from .export import to_csv, to_json, to_text, to_xlsx
from .models import RewriteJob
from .orchestrator import Orchestrator
from .presets import DEFAULT_PRESET_IDS, list_presets
from .prompt import RewriteRequest
from .providers import build_default_services
from .storage import JobStore

rewrite_bp = Blueprint("rewrite", __name__, url_prefix="/api/rewrite")

EXTENSION_KEY = "rewriter"


def init_rewriter(
    app: Flask,
    orchestrator: Optional[Orchestrator] = None,
    config: Optional[RewriterConfig] = None,
) -> Orchestrator:
    """Attach an orchestrator to ``app`` and register the blueprint."""
    if orchestrator is None:
        config = config or RewriterConfig.from_env()
        provider, estimator = build_default_services(config)
        orchestrator = Orchestrator(config, provider, estimator, JobStore())
    app.extensions[EXTENSION_KEY] = orchestrator
    app.register_blueprint(rewrite_bp)
    return orchestrator


def _orchestrator() -> Orchestrator:
    return current_app.extensions[EXTENSION_KEY]


def _store() -> JobStore:
    store = _orchestrator().store
    if store is None:
        raise RuntimeError("Rewrite job store is not configured")
    return store


def _require_auth() -> Optional[Response]:
    if request.endpoint == "rewrite.health":
        return None
    if not session.get("authenticated", False):
        return jsonify({"error": "Unauthorized"}), 401
    return None


@rewrite_bp.before_request
def before_request():
    auth_error = _require_auth()
    if auth_error:
        return auth_error


@rewrite_bp.errorhandler(InvalidInput)
@rewrite_bp.errorhandler(UnknownPreset)
def handle_bad_request(exc: RewriterError):
    return jsonify({"error": str(exc)}), 400


@rewrite_bp.errorhandler(JobNotFound)
def handle_not_found(exc: JobNotFound):
    return jsonify({"error": "Job not found", "jobId": exc.job_id}), 404


@rewrite_bp.errorhandler(InvalidTransition)
def handle_conflict(exc: InvalidTransition):
    return jsonify({"error": str(exc)}), 409


@rewrite_bp.errorhandler(ProviderError)
def handle_provider_error(exc: ProviderError):
    return jsonify(exc.to_dict()), 502


def _payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidInput("Request body must be a JSON object")
    return payload


def _string(payload: Dict[str, Any], key: str, required: bool = False) -> Optional[str]:
    value = payload.get(key)
    if value is None or value == "":
        if required:
            raise InvalidInput(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be a string")
    if required and not value.strip():
        raise InvalidInput(f"{key} is required")
    return value


def _string_list(payload: Dict[str, Any], key: str, default: Optional[list] = None) -> list:
    value = payload.get(key)
    if value is None:
        return list(default or [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidInput(f"{key} must be a list of strings")
    return value


def _int(payload: Dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{key} must be an integer")
    return value


def _provider(payload: Dict[str, Any], key: str) -> str:
    value = _string(payload, key) or _orchestrator().config.default_provider
    if value not in PROVIDERS:
        raise InvalidInput(f"Unknown provider: {value}")
    return value


def _job_from_payload(payload: Dict[str, Any]) -> RewriteJob:
    return RewriteJob(
        input_text=_string(payload, "inputText", required=True),
        provider=_provider(payload, "provider"),
        style_text=_string(payload, "styleText"),
        content_mix_text=_string(payload, "contentMixText"),
        custom_instructions=_string(payload, "customInstructions"),
        selected_presets=_string_list(payload, "selectedPresets", DEFAULT_PRESET_IDS),
        selected_chunk_ids=_string_list(payload, "selectedChunkIds"),
        mixing_mode=_string(payload, "mixingMode"),
        max_words_per_chunk=_int(payload, "maxWordsPerChunk"),
    )


@rewrite_bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@rewrite_bp.route("/presets")
def presets():
    category = request.args.get("category")
    return jsonify(
        {
            "presets": [
                {
                    "id": preset.id,
                    "title": preset.title,
                    "description": preset.description,
                    "category": preset.category,
                    "isDefault": preset.is_default,
                }
                for preset in list_presets(category)
            ],
            "defaults": DEFAULT_PRESET_IDS,
        }
    )


@rewrite_bp.route("/chunk-text", methods=["POST"])
def chunk_preview():
    payload = _payload()
    text = _string(payload, "text", required=True)
    max_words = _int(payload, "maxWords")
    if max_words is None:
        max_words = effective_chunk_size(count_words(text), _orchestrator().config.max_words_per_chunk)
    chunks = chunk_text(text, max_words)
    return jsonify({"chunks": [chunk.to_dict() for chunk in chunks], "maxWords": max_words})


@rewrite_bp.route("/jobs", methods=["POST"])
def create_job():
    job = _orchestrator().create_job(_job_from_payload(_payload()))
    return jsonify({"success": True, "job": job.to_dict()}), 201


@rewrite_bp.route("/jobs")
def list_jobs():
    return jsonify({"jobs": [job.to_dict() for job in _store().list_jobs()]})


@rewrite_bp.route("/jobs/<job_id>")
def get_job(job_id: str):
    return jsonify({"job": _store().load(job_id).to_dict()})


def _run_job(orchestrator: Orchestrator, job: RewriteJob) -> None:
    try:
        asyncio.run(orchestrator.rewrite_document(job))
    except RewriterError as exc:
        # already recorded on the job by the orchestrator
        print(f"[ERROR] Rewrite job {job.id} ended with error: {exc}")


@rewrite_bp.route("/jobs/<job_id>/run", methods=["POST"])
def run_job(job_id: str):
    orchestrator = _orchestrator()
    job = _store().load(job_id)
    payload = request.get_json(silent=True) or {}
    if "selectedChunkIds" in payload:
        job.selected_chunk_ids = _string_list(payload, "selectedChunkIds")

    # validate synchronously so bad requests never reach a provider
    orchestrator.prepare(job)

    if request.args.get("wait", "false").lower() == "true":
        asyncio.run(orchestrator.rewrite_document(job))
        return jsonify({"success": True, "job": job.to_dict()})

    threading.Thread(
        target=_run_job, args=(orchestrator, job), name=f"rw_main_{job_id}", daemon=True
    ).start()
    return jsonify({"success": True, "jobId": job_id}), 202


@rewrite_bp.route("/jobs/<job_id>/rerewrite", methods=["POST"])
def rerewrite_job(job_id: str):
    child = _orchestrator().rerewrite(_store().load(job_id))
    return jsonify({"success": True, "job": child.to_dict()}), 201


@rewrite_bp.route("/jobs/<job_id>/scores", methods=["POST"])
def score_job_chunks(job_id: str):
    job = asyncio.run(_orchestrator().score_chunks(_store().load(job_id)))
    return jsonify({"chunks": [chunk.to_dict() for chunk in job.chunks]})


@rewrite_bp.route("/jobs/<job_id>/result")
def get_job_result(job_id: str):
    job = _store().load(job_id)
    fmt = request.args.get("format", "json").lower()

    if fmt == "csv":
        return Response(
            to_csv(job),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=rewrite_{job_id[:8]}.csv"},
        )
    if fmt == "xlsx":
        return Response(
            to_xlsx(job),
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=rewrite_{job_id[:8]}.xlsx"},
        )
    if fmt == "txt":
        return Response(
            to_text(job),
            mimetype="text/plain",
            headers={"Content-Disposition": f"attachment; filename=rewrite_{job_id[:8]}.txt"},
        )
    return jsonify(to_json(job))


def _rewrite_request(payload: Dict[str, Any], chunk_index: int = 0, total_chunks: int = 1) -> RewriteRequest:
    content_source = _string(payload, "contentSource")
    style_source = _string(payload, "styleSource")
    # sources are sent unless the caller switches them off
    if payload.get("useContentSource") is False:
        content_source = None
    if payload.get("useStyleSource") is False:
        style_source = None
    return RewriteRequest(
        content=_string(payload, "inputText", required=True),
        instructions=_string(payload, "instructions") or "",
        provider=_provider(payload, "llmProvider"),
        content_source=content_source,
        style_source=style_source,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
    )


@rewrite_bp.route("/process-text", methods=["POST"])
def process_text():
    """Rewrite a whole text in one provider call, without creating a job."""
    result = asyncio.run(_orchestrator().process_chunk(_rewrite_request(_payload())))
    return jsonify({"result": result})


@rewrite_bp.route("/process-chunk", methods=["POST"])
def process_chunk():
    payload = _payload()
    chunk_index = _int(payload, "chunkIndex") or 0
    total_chunks = _int(payload, "totalChunks") or 1
    rewrite_request = _rewrite_request(payload, chunk_index, total_chunks)
    result = asyncio.run(_orchestrator().process_chunk(rewrite_request))
    return jsonify({"result": result, "chunkIndex": chunk_index, "totalChunks": total_chunks})


@rewrite_bp.route("/detect-ai", methods=["POST"])
def detect_ai():
    payload = _payload()
    text = _string(payload, "text", required=True)
    score = asyncio.run(_orchestrator().score_text(text, _provider(payload, "llmProvider")))
    return jsonify({"score": score})
