"""In-memory background job queue for API-triggered backtests."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Literal

from quantpilot.core.utils.errors import QuantPilotError
from quantpilot.core.utils.logging import get_logger

JobTask = Callable[[], dict[str, Any]]
JobType = Literal["backtest"]
JobStatus = Literal["pending", "running", "completed", "failed"]
_LOGGER_NAME = "quantpilot.api.jobs"


@dataclass(frozen=True)
class JobRecord:
    """Snapshot payload for one background job."""

    job_id: str
    job_type: JobType
    owner_id: str
    status: JobStatus
    submitted_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    request: dict[str, Any]
    result: dict[str, Any] | None
    error_code: str | None
    error_message: str | None
    error_traceback: str | None


@dataclass
class _MutableJob:
    """Internal mutable job state."""

    job_id: str
    job_type: JobType
    owner_id: str
    status: JobStatus
    submitted_at: datetime
    request: dict[str, Any]
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_traceback: str | None = None

    def to_record(self) -> JobRecord:
        """Create immutable record snapshot from mutable state."""
        return JobRecord(
            job_id=self.job_id,
            job_type=self.job_type,
            owner_id=self.owner_id,
            status=self.status,
            submitted_at=self.submitted_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
            request=dict(self.request),
            result=None if self.result is None else dict(self.result),
            error_code=self.error_code,
            error_message=self.error_message,
            error_traceback=self.error_traceback,
        )


class InMemoryJobQueue:
    """
    Thread-safe in-memory job queue backed by a thread pool.

    Jobs cannot be cancelled once submitted; callers can only ignore results.
    """

    def __init__(self, max_workers: int = 2) -> None:
        safe_workers = max(1, int(max_workers))
        self._executor = ThreadPoolExecutor(
            max_workers=safe_workers, thread_name_prefix="quantpilot-job"
        )
        self._lock = Lock()
        self._jobs: dict[str, _MutableJob] = {}
        self._counter = 0

    def submit(
        self,
        job_type: JobType,
        request: dict[str, Any],
        task: JobTask,
        owner_id: str,
    ) -> JobRecord:
        """
        Submit a new background job.

        Args:
            job_type: Semantic job type label.
            request: Request payload snapshot.
            task: Work function returning serialized result payload.
            owner_id: User id of the workspace the job runs in.

        Returns:
            Snapshot of the pending job.
        """
        with self._lock:
            self._counter += 1
            job = _MutableJob(
                job_id=f"job_{self._counter:06d}",
                job_type=job_type,
                owner_id=owner_id,
                status="pending",
                submitted_at=datetime.now(tz=UTC),
                request=dict(request),
            )
            self._jobs[job.job_id] = job
            record = job.to_record()

        self._executor.submit(self._run_job, job.job_id, task)
        return record

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return None if job is None else job.to_record()

    def list(self, limit: int = 100, owner_id: str | None = None) -> list[JobRecord]:
        """List jobs in reverse submission order, optionally for one owner only."""
        safe_limit = max(1, int(limit))
        with self._lock:
            ordered = sorted(
                (
                    job
                    for job in self._jobs.values()
                    if owner_id is None or job.owner_id == owner_id
                ),
                key=lambda job: (job.submitted_at, job.job_id),
                reverse=True,
            )
            return [job.to_record() for job in ordered[:safe_limit]]

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=False)

    def _run_job(self, job_id: str, task: JobTask) -> None:
        """Execute job task and persist final state."""
        self._update(job_id, status="running", started_at=datetime.now(tz=UTC))
        try:
            result = task()
        except Exception as exc:
            get_logger(_LOGGER_NAME).exception("Job %s failed: %s", job_id, exc)
            error_code = exc.error_code if isinstance(exc, QuantPilotError) else "internal_error"
            self._update(
                job_id,
                status="failed",
                finished_at=datetime.now(tz=UTC),
                error_code=error_code,
                error_message=str(exc),
                error_traceback="".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                ),
            )
            return
        self._update(
            job_id,
            status="completed",
            finished_at=datetime.now(tz=UTC),
            result=dict(result),
        )

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            for name, value in changes.items():
                setattr(job, name, value)
