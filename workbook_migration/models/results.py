from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Dry-run and import result models.

Both results are transient: computed per call, returned to the caller and
never persisted. ``to_dict()`` renders the JSON shape handed to clients.
"""

__all__ = [
    "TableSummary",
    "DryRunResult",
    "TableImportResult",
    "MigrationResult",
]


@dataclass(frozen=True)
class TableSummary:
    """Per-table dry-run preview."""
    table_name: str
    record_count: int
    sample_records: list[dict[str, Any]]  # 先頭 N 件 (flat rows)
    warnings: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "record_count": self.record_count,
            "sample_records": list(self.sample_records),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class DryRunResult:
    tables: list[TableSummary]
    workbook_warnings: list[str] = field(default_factory=list)  # パーサ失敗など
    skipped_sheets: list[str] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(t.record_count for t in self.tables)

    @property
    def all_warnings(self) -> list[str]:
        warnings = list(self.workbook_warnings)
        for table in self.tables:
            warnings.extend(table.warnings)
        return warnings

    @property
    def total_warnings(self) -> int:
        return len(self.all_warnings)

    def table(self, table_name: str) -> TableSummary | None:
        for summary in self.tables:
            if summary.table_name == table_name:
                return summary
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "total_records": self.total_records,
            "total_warnings": self.total_warnings,
            "all_warnings": self.all_warnings,
            "workbook_warnings": list(self.workbook_warnings),
            "skipped_sheets": list(self.skipped_sheets),
        }


@dataclass(frozen=True)
class TableImportResult:
    """Outcome of one table's upsert loop.

    A failed table reports zero counts (its transaction was rolled back) and
    exactly one synthetic warning.
    """
    table_name: str
    inserted: int
    updated: int
    warnings: list[str]
    failed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "inserted": self.inserted,
            "updated": self.updated,
            "warnings": list(self.warnings),
            "failed": self.failed,
        }


@dataclass(frozen=True)
class MigrationResult:
    success: bool
    tables: list[TableImportResult]
    workbook_warnings: list[str] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return sum(t.inserted for t in self.tables)

    @property
    def total_updated(self) -> int:
        return sum(t.updated for t in self.tables)

    @property
    def all_warnings(self) -> list[str]:
        warnings = list(self.workbook_warnings)
        for table in self.tables:
            warnings.extend(table.warnings)
        return warnings

    @property
    def total_warnings(self) -> int:
        return len(self.all_warnings)

    @property
    def failed_tables(self) -> list[str]:
        return [t.table_name for t in self.tables if t.failed]

    def table(self, table_name: str) -> TableImportResult | None:
        for result in self.tables:
            if result.table_name == table_name:
                return result
        return None

    @classmethod
    def fatal(cls, message: str) -> MigrationResult:
        """Result for a run that aborted before the table loop."""
        return cls(success=False, tables=[], workbook_warnings=[message])

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "tables": [t.to_dict() for t in self.tables],
            "total_inserted": self.total_inserted,
            "total_updated": self.total_updated,
            "total_warnings": self.total_warnings,
            "all_warnings": self.all_warnings,
            "failed_tables": self.failed_tables,
        }
