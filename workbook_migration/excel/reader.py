from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import openpyxl
import pandas as pd

"""Workbook loading.

openpyxl reads cached cell values (``data_only=True``); each sheet becomes a
headerless DataFrame anchored at A1 so parsers can address cells by 1-based
(row, column) like the spreadsheet itself. Excel error literals such as
``#N/A`` stay strings (pandas' own reader would turn them into NaN) so the
cell extractor can flag them; empty cells become None/NaN.

A second pass with ``data_only=False`` finds formula cells that were saved
without a cached result (files written by scripts rather than Excel); those
cells hold an ``UncachedFormula`` instead of None.
"""

__all__ = [
    "WorkbookLoadError",
    "SheetMissingError",
    "UncachedFormula",
    "Sheet",
    "Workbook",
    "load_workbook",
]

logger = logging.getLogger(__name__)


class WorkbookLoadError(Exception):
    """Raised when the workbook bytes cannot be opened or read."""


class SheetMissingError(Exception):
    """Raised by a parser when its source sheet is absent from the workbook."""

    def __init__(self, sheet_name: str) -> None:
        self.sheet_name = sheet_name
        super().__init__(f"sheet not found: {sheet_name}")


@dataclass(frozen=True)
class UncachedFormula:
    """Formula cell saved without a computed result (e.g. written by a script)."""
    formula: str


@dataclass(frozen=True)
class Sheet:
    name: str
    frame: pd.DataFrame

    @property
    def row_count(self) -> int:
        return int(self.frame.shape[0])

    @property
    def column_count(self) -> int:
        return int(self.frame.shape[1])

    def cell(self, row: int, col: int) -> Any:
        """Raw value at 1-based (row, col); None outside the used range."""
        if row < 1 or col < 1 or row > self.row_count or col > self.column_count:
            return None
        return self.frame.iat[row - 1, col - 1]


class Workbook:
    def __init__(self, sheets: dict[str, Sheet]) -> None:
        self._sheets = sheets

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets)

    def get_sheet(self, name: str) -> Sheet | None:
        sheet = self._sheets.get(name)
        if sheet is not None:
            return sheet
        # 大文字小文字・前後空白の揺れは許容
        wanted = name.strip().lower()
        for sheet_name, candidate in self._sheets.items():
            if sheet_name.strip().lower() == wanted:
                return candidate
        return None

    def require_sheet(self, name: str) -> Sheet:
        sheet = self.get_sheet(name)
        if sheet is None:
            raise SheetMissingError(name)
        return sheet


def load_workbook(source: bytes | str | Path) -> Workbook:
    """Load every sheet of a workbook from bytes or a file path.

    Raises:
        WorkbookLoadError: the source is empty, missing or not a readable workbook
    """
    if isinstance(source, bytes | bytearray):
        if not source:
            raise WorkbookLoadError("workbook is empty")
        handle: Any = io.BytesIO(source)
    else:
        path = Path(source)
        if not path.exists():
            raise WorkbookLoadError(f"workbook not found: {path}")
        handle = path

    try:
        book = openpyxl.load_workbook(handle, data_only=True)
        if hasattr(handle, "seek"):
            handle.seek(0)
        formulas = openpyxl.load_workbook(handle, data_only=False)
    except Exception as e:
        raise WorkbookLoadError(f"failed to read workbook: {e}") from e
    sheets: dict[str, Sheet] = {}
    try:
        for ws in book.worksheets:
            # min_row/min_col を 1 に固定 (使用範囲が B2 始まりでも A1 基準)
            bounds = dict(min_row=1, min_col=1, max_row=ws.max_row, max_col=ws.max_column)
            rows = [list(row) for row in ws.iter_rows(values_only=True, **bounds)]
            _mark_uncached_formulas(rows, formulas[ws.title].iter_rows(**bounds))
            sheets[ws.title] = Sheet(name=ws.title, frame=pd.DataFrame(rows))
    finally:
        book.close()
        formulas.close()

    logger.debug(f"loaded workbook sheets={list(sheets)}")
    return Workbook(sheets)


def _mark_uncached_formulas(rows: list[list[Any]], formula_rows: Iterator[tuple[Any, ...]]) -> None:
    """Replace formula cells saved without a cached result by UncachedFormula."""
    for r, formula_row in enumerate(formula_rows):
        for c, cell in enumerate(formula_row):
            if cell.data_type != "f" or rows[r][c] is not None:
                continue
            # ArrayFormula は text 属性に式を持つ
            text = str(getattr(cell.value, "text", cell.value))
            rows[r][c] = UncachedFormula(text[1:] if text.startswith("=") else text)
