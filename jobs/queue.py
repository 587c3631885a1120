"""
SQLite-backed job queue.

Research jobs live in a single ``jobs`` table that doubles as a polled
queue; the latest progress snapshot of each job is kept in
``job_progress`` for streaming. Methods are synchronous; async callers
wrap them in ``asyncio.to_thread``.
"""

import json
import logging
import os
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from core.errors import JobNotFoundError
from models.config import JobStatus

__all__ = ["Job", "JobQueue", "DEFAULT_DB_PATH", "MAX_ATTEMPTS"]

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./data/jobs.db"
MAX_ATTEMPTS = 3
BUSY_TIMEOUT_MS = 5000

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'pending',
    data TEXT NOT NULL,
    result TEXT,
    progress INTEGER NOT NULL DEFAULT 0,
    current_step TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL,
    started_at REAL,
    completed_at REAL,
    attempts INTEGER NOT NULL DEFAULT 0,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_created ON jobs(created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at);

CREATE TABLE IF NOT EXISTS job_progress (
    job_id TEXT PRIMARY KEY,
    progress_data TEXT NOT NULL,
    updated_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_progress_updated ON job_progress(updated_at);
"""


@dataclass
class Job:
    id: str
    status: JobStatus
    data: Dict[str, Any]
    progress: int = 0
    current_step: str = ""
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: float = 0.0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    attempts: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Job":
        return cls(
            id=row["id"],
            status=JobStatus(row["status"]),
            data=json.loads(row["data"]),
            progress=row["progress"],
            current_step=row["current_step"] or "",
            result=json.loads(row["result"]) if row["result"] is not None else None,
            error=row["error"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            attempts=row["attempts"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "data": self.data,
            "progress": self.progress,
            "currentStep": self.current_step,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "attempts": self.attempts,
        }


class JobQueue:
    """SQLite job store used as a polled queue."""

    def __init__(self, db_path: Optional[str] = None, max_attempts: int = MAX_ATTEMPTS):
        self.db_path = db_path or os.getenv("SQLITE_DB_PATH") or DEFAULT_DB_PATH
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._closed = False
        self._init_db()

    def _init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
        logger.info(f"Initialized job queue at {self.db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise RuntimeError("Job queue is closed")
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_MS / 1000)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════════════════
    # Producer
    # ══════════════════════════════════════════════════════════════════════

    def create_job(self, data: Dict[str, Any]) -> str:
        """Insert a pending job and return its id."""
        job_id = str(uuid.uuid4())
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO jobs (id, status, data, created_at) VALUES (?, ?, ?, ?)",
                    (job_id, JobStatus.PENDING.value, json.dumps(data), time.time()),
                )
        logger.info(f"Created job {job_id}")
        return job_id

    # ══════════════════════════════════════════════════════════════════════
    # Consumer
    # ══════════════════════════════════════════════════════════════════════

    def get_next_job(self) -> Optional[Job]:
        """Claim the oldest pending job with attempts left, or None."""
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    """SELECT id FROM jobs
                    WHERE status = ? AND attempts < ?
                    ORDER BY created_at, rowid
                    LIMIT 1""",
                    (JobStatus.PENDING.value, self.max_attempts),
                ).fetchone()
                if row is None:
                    return None

                claimed = conn.execute(
                    """UPDATE jobs
                    SET status = ?, started_at = ?, attempts = attempts + 1
                    WHERE id = ? AND status = ?""",
                    (JobStatus.PROCESSING.value, time.time(), row["id"], JobStatus.PENDING.value),
                ).rowcount
                if not claimed:
                    return None

                job_row = conn.execute("SELECT * FROM jobs WHERE id = ?", (row["id"],)).fetchone()
        job = Job.from_row(job_row)
        logger.info(f"Claimed job {job.id} (attempt {job.attempts})")
        return job

    def update_progress(
        self,
        job_id: str,
        percent: float,
        step: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record progress for a processing job.

        Progress never decreases and is ignored once the job is terminal.
        """
        clamped = int(min(max(percent, 0), 100))
        with self._lock:
            with self._connect() as conn:
                updated = conn.execute(
                    """UPDATE jobs
                    SET progress = MAX(progress, ?),
                        current_step = COALESCE(?, current_step)
                    WHERE id = ? AND status = ?""",
                    (clamped, step, job_id, JobStatus.PROCESSING.value),
                ).rowcount
                if updated and data is not None:
                    conn.execute(
                        """INSERT OR REPLACE INTO job_progress (job_id, progress_data, updated_at)
                        VALUES (?, ?, ?)""",
                        (job_id, json.dumps(data), time.time()),
                    )
        logger.debug(f"Job {job_id} progress {clamped}% {step or ''}")

    def complete_job(self, job_id: str, result: Any) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """UPDATE jobs
                    SET status = ?, result = ?, error = NULL,
                        completed_at = ?, progress = 100, current_step = 'Completed'
                    WHERE id = ?""",
                    (JobStatus.COMPLETED.value, json.dumps(result), time.time(), job_id),
                )
        logger.info(f"Job {job_id} completed")

    def fail_job(self, job_id: str, error: str) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """UPDATE jobs
                    SET status = ?, error = ?, result = NULL,
                        completed_at = ?, current_step = 'Failed'
                    WHERE id = ?""",
                    (JobStatus.FAILED.value, error or "Unknown error", time.time(), job_id),
                )
        logger.error(f"Job {job_id} failed: {error}")

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return Job.from_row(row) if row else None

    def require_job(self, job_id: str) -> Job:
        """Like get_job, but raises JobNotFoundError for an unknown id."""
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_job_progress(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Latest progress snapshot of a job, or None."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT progress_data FROM job_progress WHERE job_id = ?", (job_id,)
            ).fetchone()
        return json.loads(row["progress_data"]) if row else None

    def count_by_status(self) -> Dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM jobs GROUP BY status"
            ).fetchall()
        counts = {status.value: 0 for status in JobStatus}
        counts.update({row["status"]: row["n"] for row in rows})
        return counts

    # ══════════════════════════════════════════════════════════════════════
    # Maintenance
    # ══════════════════════════════════════════════════════════════════════

    def cleanup_old_jobs(self, days_old: int = 7) -> int:
        """Delete terminal jobs finished more than ``days_old`` days ago."""
        cutoff = time.time() - days_old * 86400
        with self._lock:
            with self._connect() as conn:
                deleted = conn.execute(
                    """DELETE FROM jobs
                    WHERE status IN (?, ?) AND completed_at < ?""",
                    (JobStatus.COMPLETED.value, JobStatus.FAILED.value, cutoff),
                ).rowcount
                conn.execute(
                    "DELETE FROM job_progress WHERE job_id NOT IN (SELECT id FROM jobs)"
                )
        if deleted:
            logger.info(f"Cleaned up {deleted} jobs older than {days_old} days")
        return deleted

    def recover_stale_jobs(self) -> int:
        """
        Requeue jobs left ``processing`` by a previous worker.

        Jobs that already used every attempt are failed instead.
        Returns the number of jobs requeued.
        """
        with self._lock:
            with self._connect() as conn:
                requeued = conn.execute(
                    "UPDATE jobs SET status = ? WHERE status = ? AND attempts < ?",
                    (JobStatus.PENDING.value, JobStatus.PROCESSING.value, self.max_attempts),
                ).rowcount
                abandoned = conn.execute(
                    """UPDATE jobs
                    SET status = ?, error = ?, result = NULL, completed_at = ?
                    WHERE status = ?""",
                    (
                        JobStatus.FAILED.value,
                        f"Job abandoned after {self.max_attempts} attempts",
                        time.time(),
                        JobStatus.PROCESSING.value,
                    ),
                ).rowcount
        if requeued or abandoned:
            logger.warning(
                f"Recovered stale jobs: {requeued} requeued, {abandoned} failed"
            )
        return requeued

    def close(self) -> None:
        self._closed = True
        logger.info("Job queue closed")
