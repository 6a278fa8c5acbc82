"""Domain models for the workbook migration engine.

This package contains the typed weekly records, result models, progress
events and job bookkeeping shared across the parsers, orchestrator and
client controller.
"""

from .error_record import ErrorRecord
from .job import JobStatus, MigrationJob
from .progress_event import ProgressEvent, ProgressPhase
from .records import RECORD_TYPES, RecordGroup, WeeklyRecord
from .results import DryRunResult, MigrationResult, TableImportResult, TableSummary

__all__ = [
    # Records
    "RecordGroup",
    "WeeklyRecord",
    "RECORD_TYPES",
    # Results
    "DryRunResult",
    "TableSummary",
    "MigrationResult",
    "TableImportResult",
    # Progress / jobs
    "ProgressEvent",
    "ProgressPhase",
    "JobStatus",
    "MigrationJob",
    "ErrorRecord",
]
