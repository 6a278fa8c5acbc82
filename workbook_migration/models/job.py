from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

"""MigrationJob model correlating a dry run with its later import.

State transitions: pending -> importing -> (complete | failed)
A pending job older than the TTL becomes expired and is evicted.
"""

__all__ = [
    "JobStatus",
    "MigrationJob",
]


class JobStatus(Enum):
    PENDING = "pending"
    IMPORTING = "importing"
    COMPLETE = "complete"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass
class MigrationJob:
    job_id: str
    file_name: str
    workbook: bytes  # import 時に再パースするため保持
    created_at: datetime
    status: JobStatus = JobStatus.PENDING

    @property
    def file_size(self) -> int:
        return len(self.workbook)

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        if self.status is JobStatus.IMPORTING:
            return False
        return now - self.created_at > ttl
