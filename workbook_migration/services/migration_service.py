from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import PurePath
from typing import Any, Protocol

from ..models.job import JobStatus, MigrationJob
from ..models.results import DryRunResult, MigrationResult
from .orchestrator import MigrationOrchestrator
from .progress import ProgressHub, Subscription

"""Migration entry points and job bookkeeping.

- dry_run(bytes, file_name)  -> preview + job_id (opens the job's progress channel)
- start_import(job_id)       -> acknowledgement; the import runs on the executor
- subscribe(job_id)          -> progress subscription (push feed)

Jobs live in memory. A job is discarded once its import finishes and
evicted by ``expire_jobs()`` when it was never imported within the TTL.
"""

__all__ = [
    "MigrationServiceError",
    "UnsupportedWorkbookError",
    "JobNotFoundError",
    "JobStateError",
    "TaskExecutor",
    "DryRunResponse",
    "ImportAck",
    "MigrationService",
    "ALLOWED_EXTENSIONS",
]

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".xlsx", ".xls"})
DEFAULT_JOB_TTL = timedelta(minutes=30)
DEFAULT_MAX_WORKBOOK_BYTES = 20 * 1024 * 1024


class MigrationServiceError(Exception):
    pass


class UnsupportedWorkbookError(MigrationServiceError):
    """Rejected upload: wrong extension, empty or too large."""


class JobNotFoundError(MigrationServiceError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found or expired: {job_id}")


class JobStateError(MigrationServiceError):
    """The job exists but cannot accept the requested operation."""


class TaskExecutor(Protocol):
    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any: ...


@dataclass(frozen=True)
class DryRunResponse:
    job_id: str
    file_name: str
    file_size: int
    dry_run: DryRunResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "file_name": self.file_name,
            "file_size": self.file_size,
            **self.dry_run.to_dict(),
        }


@dataclass(frozen=True)
class ImportAck:
    job_id: str
    status: str = "started"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "job_id": self.job_id}


class MigrationService:
    def __init__(
        self,
        orchestrator: MigrationOrchestrator,
        *,
        progress: ProgressHub | None = None,
        executor: TaskExecutor | None = None,
        job_ttl: timedelta = DEFAULT_JOB_TTL,
        max_workbook_bytes: int = DEFAULT_MAX_WORKBOOK_BYTES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.progress = progress or orchestrator.progress or ProgressHub()
        # orchestrator と同じ hub に publish させる
        self.orchestrator.progress = self.progress
        self.executor: TaskExecutor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="migration"
        )
        self.job_ttl = job_ttl
        self.max_workbook_bytes = max_workbook_bytes
        self._clock = clock or (lambda: datetime.now(UTC))
        self._jobs: dict[str, MigrationJob] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------ validation
    def validate_upload(self, workbook: bytes, file_name: str) -> None:
        suffix = PurePath(file_name).suffix.lower()
        if suffix not in ALLOWED_EXTENSIONS:
            raise UnsupportedWorkbookError(
                f"unsupported file type '{suffix or file_name}': expected .xlsx or .xls"
            )
        if not workbook:
            raise UnsupportedWorkbookError("uploaded workbook is empty")
        if len(workbook) > self.max_workbook_bytes:
            raise UnsupportedWorkbookError(
                f"workbook too large: {len(workbook)} bytes (limit {self.max_workbook_bytes})"
            )

    # ------------------------------------------------------------ entry points
    def dry_run(self, workbook: bytes, file_name: str) -> DryRunResponse:
        """Validate, preview and register a job for a later import.

        Raises:
            UnsupportedWorkbookError: rejected upload
            WorkbookLoadError: the bytes are not a readable workbook
        """
        self.expire_jobs()
        self.validate_upload(workbook, file_name)
        preview = self.orchestrator.parse_workbook(workbook)

        job = MigrationJob(
            job_id=str(uuid.uuid4()),
            file_name=file_name,
            workbook=workbook,
            created_at=self._clock(),
        )
        with self._lock:
            self._jobs[job.job_id] = job
        self.progress.open(job.job_id)
        logger.info(
            f"dry run job_id={job.job_id} file={file_name} size={job.file_size} "
            f"records={preview.total_records} warnings={preview.total_warnings}"
        )
        return DryRunResponse(
            job_id=job.job_id, file_name=file_name, file_size=job.file_size, dry_run=preview
        )

    def start_import(self, job_id: str) -> ImportAck:
        """Fire-and-forget import; await the complete event for the result.

        Raises:
            JobNotFoundError: unknown or expired job
            JobStateError: the job is already importing
        """
        self.expire_jobs()
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status is not JobStatus.PENDING:
                raise JobStateError(f"job {job_id} is {job.status.value}")
            job.status = JobStatus.IMPORTING
        # 再 import 用にチャネルを開き直す (dry run 後に閉じられている場合)
        self.progress.open(job_id)
        self.executor.submit(self._run_import, job)
        logger.info(f"import started job_id={job_id}")
        return ImportAck(job_id=job_id)

    def subscribe(self, job_id: str, timeout: float | None = None) -> Subscription:
        try:
            return self.progress.subscribe(job_id, timeout=timeout)
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def get_job(self, job_id: str) -> MigrationJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    @property
    def job_count(self) -> int:
        with self._lock:
            return len(self._jobs)

    def expire_jobs(self) -> list[str]:
        """Evict pending jobs older than the TTL and close their channels."""
        now = self._clock()
        with self._lock:
            expired = [jid for jid, job in self._jobs.items() if job.is_expired(now, self.job_ttl)]
            for jid in expired:
                self._jobs.pop(jid).status = JobStatus.EXPIRED
        for jid in expired:
            self.progress.close(jid)
            logger.info(f"job expired job_id={jid}")
        return expired

    def shutdown(self, wait: bool = True) -> None:
        shutdown = getattr(self.executor, "shutdown", None)
        if shutdown is not None:
            shutdown(wait=wait)

    # ------------------------------------------------------------- internals
    def _run_import(self, job: MigrationJob) -> MigrationResult:
        result = self.orchestrator.import_data(job.workbook, job.job_id)
        job.status = JobStatus.COMPLETE if result.success else JobStatus.FAILED
        with self._lock:
            self._jobs.pop(job.job_id, None)
        # terminal イベント未送信 (hub 不在等) でもチャネルは破棄
        self.progress.close(job.job_id)
        return result
