from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

Records parser failures, table import failures and fatal workbook load
errors. ``scope`` names the unit of work that failed (parser name, table
name, or ``<WORKBOOK>`` for workbook-level failures).
"""

__all__ = [
    "ErrorRecord",
    "WORKBOOK_SCOPE",
]

WORKBOOK_SCOPE = "<WORKBOOK>"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        job_id: Migration job identifier (empty for CLI dry runs)
        scope: Parser name, table name or ``<WORKBOOK>``
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Exception message
    """
    timestamp: str  # ISO8601 UTC
    job_id: str
    scope: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(job_id: str, scope: str, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            job_id=job_id,
            scope=scope,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
