from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import ClassVar

from ...models.records import RecordGroup, WeeklyRecord
from ..reader import Sheet, Workbook

"""Uniform sheet parser contract.

A parser consumes the loaded workbook plus a ParseContext and returns its
record groups. Parsers are pure: no I/O, no side effects. Row anomalies are
embedded in each record's warnings. A missing source sheet raises
SheetMissingError; any other structural problem raises as well and the
orchestrator isolates it.
"""

__all__ = [
    "ParseContext",
    "ParsedGroups",
    "SheetParser",
]

ParsedGroups = dict[RecordGroup, list[WeeklyRecord]]


@dataclass(frozen=True)
class ParseContext:
    # 最新の財務週 (単一スナップショットのシートが参照)
    reference_week: date | None = None


class SheetParser:
    name: ClassVar[str]
    sheet_names: ClassVar[tuple[str, ...]]
    groups: ClassVar[tuple[RecordGroup, ...]]

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        raise NotImplementedError

    @property
    def label(self) -> str:
        """Sheet name shown on the progress stream."""
        return self.sheet_names[0] if len(self.sheet_names) == 1 else self.name

    def _empty(self) -> ParsedGroups:
        return {group: [] for group in self.groups}

    def _label(self, sheet: Sheet, row: int, col: int) -> str:
        value = sheet.cell(row, col)
        return value.strip() if isinstance(value, str) else ""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(sheets={list(self.sheet_names)})"
