"""Storage helpers for rewrite job records."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from job_storage import PersistentJobStorage

from .errors import InvalidTransition, JobNotFound
from .models import RewriteJob, is_forward


class JobStore:
    """Persists :class:`RewriteJob` records through :class:`PersistentJobStorage`.

    Writes never move a stored job backwards through its state machine, so a
    stale copy saved late cannot undo a run that already finished.
    """

    def __init__(self, storage: Optional[PersistentJobStorage] = None):
        self.storage = storage or PersistentJobStorage(prefix="rw")

    def save(self, job: RewriteJob, expected_status: Optional[str] = None) -> None:
        """Write ``job``, refusing a status the stored record has moved past.

        With ``expected_status`` the stored record must still be in that
        status, which lets exactly one caller claim a pending job.
        """

        def guard(stored: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if stored is not None:
                current = stored.get("status")
                if expected_status is not None and current != expected_status:
                    raise InvalidTransition(current, job.status, f"job is already {current}")
                if not is_forward(current, job.status):
                    raise InvalidTransition(current, job.status, "stored job has moved on")
            return job.to_dict()

        self.storage.modify_job(job.id, guard)

    def update_chunk_scores(self, job_id: str, scores: Dict[str, tuple]) -> RewriteJob:
        """Set ``aiScore`` on stored chunks, leaving every other field alone.

        ``scores`` maps chunk id to ``(content, score)``. A score is only
        applied while the stored chunk still has the content that was scored.
        """

        def apply(stored: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if stored is None:
                raise JobNotFound(job_id)
            for chunk in stored.get("chunks", []):
                scored = scores.get(chunk.get("id"))
                if scored is not None and scored[0] == chunk.get("content"):
                    chunk["aiScore"] = scored[1]
            return stored

        return RewriteJob.from_dict(self.storage.modify_job(job_id, apply))

    def load(self, job_id: str) -> RewriteJob:
        data = self.storage.get_job(job_id)
        if data is None:
            raise JobNotFound(job_id)
        return RewriteJob.from_dict(data)

    def list_jobs(self) -> List[RewriteJob]:
        jobs = [RewriteJob.from_dict(data) for data in self.storage.list_jobs()]
        # most recent first
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def delete(self, job_id: str) -> None:
        if not self.storage.cleanup_job(job_id):
            raise JobNotFound(job_id)
