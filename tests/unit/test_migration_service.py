from __future__ import annotations
from datetime import UTC, datetime, timedelta

import pytest

from conftest import InlineExecutor
from workbook_migration.db.weekly_store import InMemoryWeeklyStore
from workbook_migration.excel.reader import WorkbookLoadError
from workbook_migration.models.job import JobStatus
from workbook_migration.models.progress_event import ProgressPhase
from workbook_migration.services.migration_service import (
    JobNotFoundError,
    JobStateError,
    MigrationService,
    UnsupportedWorkbookError,
)
from workbook_migration.services.orchestrator import MigrationOrchestrator


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 27, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class DeferredExecutor:
    """Queues work until run_all() is called."""

    def __init__(self) -> None:
        self.pending: list = []

    def submit(self, fn, /, *args, **kwargs):
        self.pending.append((fn, args, kwargs))

    def run_all(self) -> None:
        while self.pending:
            fn, args, kwargs = self.pending.pop(0)
            fn(*args, **kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def _service(store, executor, clock=None, **kwargs) -> MigrationService:
    return MigrationService(MigrationOrchestrator(store), executor=executor, clock=clock, **kwargs)


def test_dry_run_registers_job(weekly_workbook: bytes, store: InMemoryWeeklyStore, inline_executor):
    service = _service(store, inline_executor)
    response = service.dry_run(weekly_workbook, "weekly.xlsx")
    assert response.file_name == "weekly.xlsx"
    assert response.file_size == len(weekly_workbook)
    assert response.dry_run.total_records == 2
    job = service.get_job(response.job_id)
    assert job is not None and job.status is JobStatus.PENDING
    assert response.job_id in service.progress
    data = response.to_dict()
    assert data["job_id"] == response.job_id
    assert data["total_records"] == 2
    assert len(data["tables"]) == 11


@pytest.mark.parametrize(
    "name,data,message",
    [
        ("weekly.csv", b"x", "unsupported file type"),
        ("weekly", b"x", "unsupported file type"),
        ("weekly.xlsx", b"", "empty"),
    ],
)
def test_validate_upload_rejects(name, data, message, store, inline_executor):
    service = _service(store, inline_executor)
    with pytest.raises(UnsupportedWorkbookError) as e:
        service.dry_run(data, name)
    assert message in str(e.value)
    assert service.job_count == 0


def test_validate_upload_size_limit(store, inline_executor):
    service = _service(store, inline_executor, max_workbook_bytes=10)
    with pytest.raises(UnsupportedWorkbookError) as e:
        service.validate_upload(b"x" * 11, "big.XLSX")
    assert "too large" in str(e.value)


def test_dry_run_unreadable_workbook(store, inline_executor):
    service = _service(store, inline_executor)
    with pytest.raises(WorkbookLoadError):
        service.dry_run(b"garbage", "weekly.xlsx")
    assert service.job_count == 0


def test_start_import_runs_job_and_discards_it(weekly_workbook: bytes, store, inline_executor: InlineExecutor):
    service = _service(store, inline_executor)
    job_id = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    sub = service.subscribe(job_id, timeout=1)
    ack = service.start_import(job_id)
    assert ack.to_dict() == {"status": "started", "job_id": job_id}
    assert inline_executor.submitted == 1
    events = list(sub)
    assert events[-1].phase is ProgressPhase.COMPLETE
    assert events[-1].result.total_inserted == 2
    # 完了後ジョブは破棄される
    assert service.get_job(job_id) is None
    with pytest.raises(JobNotFoundError):
        service.start_import(job_id)


def test_start_import_twice_is_rejected(weekly_workbook: bytes, store):
    executor = DeferredExecutor()
    service = _service(store, executor)
    job_id = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    service.start_import(job_id)
    assert service.get_job(job_id).status is JobStatus.IMPORTING
    with pytest.raises(JobStateError):
        service.start_import(job_id)
    executor.run_all()
    assert service.get_job(job_id) is None
    assert store.count("financial_weekly") == 1


def test_unknown_job(store, inline_executor):
    service = _service(store, inline_executor)
    with pytest.raises(JobNotFoundError) as e:
        service.start_import("nope")
    assert str(e.value) == "Job not found or expired: nope"
    with pytest.raises(JobNotFoundError):
        service.subscribe("nope")


def test_pending_job_expires_after_ttl(weekly_workbook: bytes, store, inline_executor, clock: FakeClock):
    service = _service(store, inline_executor, clock=clock)
    job_id = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    clock.advance(minutes=29)
    assert service.expire_jobs() == []
    clock.advance(minutes=2)
    assert service.expire_jobs() == [job_id]
    assert job_id not in service.progress
    with pytest.raises(JobNotFoundError):
        service.start_import(job_id)


def test_expired_jobs_are_evicted_on_next_dry_run(weekly_workbook: bytes, store, inline_executor, clock):
    service = _service(store, inline_executor, clock=clock, job_ttl=timedelta(minutes=5))
    old = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    clock.advance(minutes=6)
    new = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    assert service.get_job(old) is None
    assert service.get_job(new) is not None
    assert service.job_count == 1


def test_importing_job_never_expires(weekly_workbook: bytes, store, clock):
    executor = DeferredExecutor()
    service = _service(store, executor, clock=clock)
    job_id = service.dry_run(weekly_workbook, "weekly.xlsx").job_id
    service.start_import(job_id)
    clock.advance(hours=2)
    assert service.expire_jobs() == []
    executor.run_all()


def test_failed_import_marks_job_failed(make_workbook, inline_executor):
    class BrokenStore(InMemoryWeeklyStore):
        def upsert(self, table, key, values):
            raise RuntimeError("db down")

    service = _service(BrokenStore(), inline_executor)
    job_id = service.dry_run(make_workbook({"Weekly Revenue Report": {
        (1, 1): "Week Ending", (2, 1): datetime(2025, 1, 25), (2, 2): 1.0,
    }}), "weekly.xlsx").job_id
    job = service.get_job(job_id)
    sub = service.subscribe(job_id, timeout=1)
    service.start_import(job_id)
    result = list(sub)[-1].result
    assert result.failed_tables == ["revenue_weekly"]
    assert job.status is JobStatus.FAILED
