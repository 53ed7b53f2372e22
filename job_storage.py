"""
Persistent Job Storage
----------------------
Provides Redis-based persistent storage for rewrite job records,
preventing data loss on server restarts.
"""

import json
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import redis
from dotenv import load_dotenv

load_dotenv()


class PersistentJobStorage:
    """Redis-based persistent storage for job records."""

    def __init__(self, prefix: str = "rw", redis_url: Optional[str] = None, ttl: int = 86400):
        """Create a storage helper scoped by a namespace prefix.

        The prefix keeps several tools sharing one Redis instance from
        colliding on keys. When Redis cannot be reached the helper keeps
        jobs in process memory instead.
        """

        # Redis connection with fallback to in-memory for development
        self._memory_jobs: Dict[str, Dict[str, Any]] = {}
        self._memory_lock = threading.Lock()
        try:
            redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379/0')
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            # Test connection
            self.redis_client.ping()
            self.redis_available = True
            print("[INFO] Redis connected successfully")
        except (redis.ConnectionError, redis.RedisError) as e:
            print(f"[WARNING] Redis not available, falling back to in-memory storage: {e}")
            self.redis_client = None
            self.redis_available = False

        # Key prefixes (scoped by namespace)
        namespace = prefix.strip() or "rw"
        self.JOB_PREFIX = f"{namespace}_job:"
        self.JOB_LIST_KEY = f"{namespace}_jobs_list"

        # TTL for jobs (24 hours by default)
        self.JOB_TTL = ttl

    @classmethod
    def in_memory(cls, prefix: str = "rw") -> "PersistentJobStorage":
        """Build a storage helper that never touches Redis."""
        storage = cls.__new__(cls)
        storage._memory_jobs = {}
        storage._memory_lock = threading.Lock()
        storage.redis_client = None
        storage.redis_available = False
        namespace = prefix.strip() or "rw"
        storage.JOB_PREFIX = f"{namespace}_job:"
        storage.JOB_LIST_KEY = f"{namespace}_jobs_list"
        storage.JOB_TTL = 86400
        return storage

    def _get_job_key(self, job_id: str) -> str:
        """Get Redis key for job data."""
        return f"{self.JOB_PREFIX}{job_id}"

    def _serialize(self, data: Any) -> str:
        """Serialize data for Redis storage."""
        return json.dumps(data, default=str, ensure_ascii=False)

    def _deserialize(self, data: str) -> Any:
        """Deserialize data from Redis."""
        return json.loads(data)

    # Job Management
    def create_job(self, job_id: str, job_data: Dict[str, Any]) -> None:
        """Create a new job entry."""
        job_data = dict(job_data)
        job_data['last_update'] = time.time()
        self._write(job_id, job_data)

    def save_job(self, job_id: str, job_data: Dict[str, Any]) -> None:
        """Create or replace a job entry."""
        self.create_job(job_id, job_data)

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get job data by ID."""
        if self.redis_available:
            data = self.redis_client.get(self._get_job_key(job_id))
            if data:
                return self._deserialize(data)
            return None
        job = self._memory_jobs.get(job_id)
        return self._deserialize(self._serialize(job)) if job is not None else None

    def update_job(self, job_id: str, updates: Dict[str, Any]) -> bool:
        """Merge ``updates`` into an existing job. Returns False for unknown jobs."""

        def merge(job_data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if job_data is None:
                return None
            job_data.update(updates)
            return job_data

        return self.modify_job(job_id, merge) is not None

    def modify_job(
        self,
        job_id: str,
        mutate: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]],
    ) -> Optional[Dict[str, Any]]:
        """Atomically read, transform and write one job record.

        ``mutate`` receives the stored record (``None`` if there is none) and
        returns the record to store, or ``None`` to leave storage untouched.
        Exceptions raised by ``mutate`` abort the write and propagate. Redis
        uses WATCH/MULTI and retries when another writer got in first; the
        in-memory fallback holds a lock for the whole read-modify-write.
        """
        if not self.redis_available:
            with self._memory_lock:
                current = self._memory_jobs.get(job_id)
                job_data = mutate(self._deserialize(self._serialize(current)) if current is not None else None)
                if job_data is None:
                    return None
                job_data['last_update'] = time.time()
                self._memory_jobs[job_id] = self._deserialize(self._serialize(job_data))
                return job_data

        key = self._get_job_key(job_id)
        try:
            with self.redis_client.pipeline() as pipe:
                while True:
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        job_data = mutate(self._deserialize(raw) if raw else None)
                        if job_data is None:
                            pipe.unwatch()
                            return None
                        job_data['last_update'] = time.time()
                        pipe.multi()
                        pipe.setex(key, self.JOB_TTL, self._serialize(job_data))
                        pipe.sadd(self.JOB_LIST_KEY, job_id)
                        pipe.execute()
                        return job_data
                    except redis.WatchError:
                        print(f"[WARNING] Job {job_id} changed during update, retrying")
                        continue
        except redis.RedisError as e:
            print(f"[ERROR] Failed to update job {job_id}: {e}")
            raise

    def _write(self, job_id: str, job_data: Dict[str, Any]) -> None:
        try:
            if self.redis_available:
                # Store job data with TTL and add it to the jobs list
                self.redis_client.setex(self._get_job_key(job_id), self.JOB_TTL, self._serialize(job_data))
                self.redis_client.sadd(self.JOB_LIST_KEY, job_id)
            else:
                self._memory_jobs[job_id] = self._deserialize(self._serialize(job_data))
        except redis.RedisError as e:
            print(f"[ERROR] Failed to store job {job_id}: {e}")
            raise

    # Job Discovery and Recovery
    def get_active_jobs(self) -> List[str]:
        """Get list of active job IDs."""
        if not self.redis_available:
            return list(self._memory_jobs.keys())

        job_ids = self.redis_client.smembers(self.JOB_LIST_KEY)
        # Filter out expired jobs
        active_jobs = []
        for job_id in job_ids:
            if self.redis_client.exists(self._get_job_key(job_id)):
                active_jobs.append(job_id)
            else:
                # Clean up expired job from list
                self.redis_client.srem(self.JOB_LIST_KEY, job_id)
        return active_jobs

    def list_jobs(self) -> List[Dict[str, Any]]:
        jobs = []
        for job_id in self.get_active_jobs():
            job = self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    def cleanup_job(self, job_id: str) -> bool:
        """Remove a job record."""
        if self.redis_available:
            removed = self.redis_client.delete(self._get_job_key(job_id))
            self.redis_client.srem(self.JOB_LIST_KEY, job_id)
            return bool(removed)
        return self._memory_jobs.pop(job_id, None) is not None
