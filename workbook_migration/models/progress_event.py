from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .results import MigrationResult

"""Progress event model published on a job's progress channel.

Phase transitions: parsing -> importing -> (complete | error)
Only the terminal ``complete`` event carries the MigrationResult.
"""

__all__ = [
    "ProgressPhase",
    "ProgressEvent",
]


class ProgressPhase(Enum):
    PARSING = "parsing"
    IMPORTING = "importing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    phase: ProgressPhase
    message: str
    current: int = 0
    total: int = 0
    warnings: int = 0  # 累積警告数
    sheet: str | None = None
    table: str | None = None
    result: MigrationResult | None = None

    def __post_init__(self) -> None:
        if self.result is not None and self.phase is not ProgressPhase.COMPLETE:
            raise ValueError("only a complete event may carry a result")

    @property
    def is_terminal(self) -> bool:
        return self.phase in (ProgressPhase.COMPLETE, ProgressPhase.ERROR)

    @classmethod
    def parsing(cls, message: str, *, total: int = 0, sheet: str | None = None) -> ProgressEvent:
        return cls(phase=ProgressPhase.PARSING, message=message, total=total, sheet=sheet)

    @classmethod
    def importing(
        cls, table: str, *, current: int, total: int, warnings: int
    ) -> ProgressEvent:
        return cls(
            phase=ProgressPhase.IMPORTING,
            message=f"Importing {table}...",
            current=current,
            total=total,
            warnings=warnings,
            table=table,
        )

    @classmethod
    def complete(cls, result: MigrationResult, *, total: int) -> ProgressEvent:
        return cls(
            phase=ProgressPhase.COMPLETE,
            message="Import complete",
            current=total,
            total=total,
            warnings=result.total_warnings,
            result=result,
        )

    @classmethod
    def error(cls, message: str) -> ProgressEvent:
        return cls(phase=ProgressPhase.ERROR, message=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "phase": self.phase.value,
            "message": self.message,
            "current": self.current,
            "total": self.total,
            "warnings": self.warnings,
        }
        if self.sheet is not None:
            data["sheet"] = self.sheet
        if self.table is not None:
            data["table"] = self.table
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data
