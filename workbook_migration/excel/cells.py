from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, TypeVar

import numpy as np
import pandas as pd

from ..models.records import WeeklyRecord
from .reader import Sheet, UncachedFormula
from .week import to_saturday

"""Cell extraction helpers shared by the sheet parsers.

Conversion rules:
- empty / NaN cell            -> None
- boolean                     -> 1 / 0
- Excel error literal (#REF!) -> 0 plus a warning
- uncached formula            -> 0 plus a warning
- currency / percent strings  -> number ("$1,234.50" -> 1234.5, "45%" -> 45)
- non-numeric text or a date where a number is expected -> None plus a warning

Warnings always carry the ``Sheet!A1`` reference of the offending cell.
"""

__all__ = [
    "FORMULA_ERRORS",
    "column_letter",
    "cell_ref",
    "sheet_ref",
    "is_empty",
    "extract_cell",
    "extract_numeric",
    "extract_text",
    "extract_date",
    "RowMapping",
    "TransposedLayout",
    "ParsedColumn",
    "parse_transposed_sheet",
    "deduplicate",
]

FORMULA_ERRORS = frozenset(
    {"#DIV/0!", "#N/A", "#NAME?", "#NULL!", "#NUM!", "#REF!", "#VALUE!", "#SPILL!", "#CALC!"}
)

_STRIP_CHARS = re.compile(r"[$,%\s]")
_NUMBER_PREFIX = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")

R = TypeVar("R", bound=WeeklyRecord)


def column_letter(col: int) -> str:
    letters = ""
    while col > 0:
        col, rem = divmod(col - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def cell_ref(row: int, col: int) -> str:
    """1-based (row, col) -> ``A1`` style reference."""
    return f"{column_letter(col)}{row}"


def sheet_ref(sheet: Sheet, row: int, col: int) -> str:
    return f"{sheet.name}!{cell_ref(row, col)}"


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def extract_cell(value: Any, ref: str, warnings: list[str]) -> Any:
    """Normalize a raw cell value into a plain Python value."""
    if isinstance(value, UncachedFormula):
        warnings.append(f"{ref}: Uncached formula \"{value.formula}\", set to 0")
        return 0
    if is_empty(value):
        return None
    if isinstance(value, bool | np.bool_):
        return 1 if value else 0
    if isinstance(value, str):
        text = value.strip()
        if text.upper() in FORMULA_ERRORS:
            warnings.append(f"{ref}: Formula error {text}, set to 0")
            return 0
        return text
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


def extract_numeric(value: Any, ref: str, warnings: list[str]) -> float | None:
    cell = extract_cell(value, ref, warnings)
    if cell is None:
        return None
    if isinstance(cell, int | float):
        return float(cell)
    if isinstance(cell, date):
        warnings.append(f"{ref}: expected a number but found a date, ignored")
        return None
    text = _STRIP_CHARS.sub("", str(cell))
    match = _NUMBER_PREFIX.match(text)
    if match is None:
        warnings.append(f"{ref}: non-numeric value '{cell}' ignored")
        return None
    return float(match.group(0))


def extract_text(value: Any) -> str | None:
    if is_empty(value) or isinstance(value, UncachedFormula):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def extract_date(value: Any) -> date | None:
    # NaT は datetime のサブクラス
    if is_empty(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


@dataclass(frozen=True)
class RowMapping:
    row: int
    field: str


@dataclass(frozen=True)
class TransposedLayout:
    """Sheet layout with one week per column.

    ``date_row`` holds the week dates; each mapped row holds one field.
    """
    date_row: int
    start_col: int
    rows: tuple[RowMapping, ...]


@dataclass
class ParsedColumn:
    week_date: date
    column: int
    values: dict[str, float | None]
    warnings: list[str] = field(default_factory=list)


def parse_transposed_sheet(
    sheet: Sheet, layout: TransposedLayout, *, warn_missing: bool = True
) -> Iterator[ParsedColumn]:
    """Yield one ParsedColumn per week column holding at least one value.

    Columns without a date in ``date_row`` are skipped, as are columns where
    every mapped cell is empty. In a populated column each empty mapped cell
    adds a ``missing value`` warning.
    """
    for col in range(layout.start_col, sheet.column_count + 1):
        week = extract_date(sheet.cell(layout.date_row, col))
        if week is None:
            continue
        warnings: list[str] = []
        values: dict[str, float | None] = {}
        missing: list[str] = []
        for mapping in layout.rows:
            raw = sheet.cell(mapping.row, col)
            ref = sheet_ref(sheet, mapping.row, col)
            values[mapping.field] = extract_numeric(raw, ref, warnings)
            if is_empty(raw):
                missing.append(f"{ref}: missing value for {mapping.field}")
        if all(v is None for v in values.values()):
            continue
        if warn_missing:
            warnings.extend(missing)
        yield ParsedColumn(week_date=to_saturday(week), column=col, values=values, warnings=warnings)


def _format_key(key: tuple[Any, ...]) -> str:
    return ", ".join(v.isoformat() if isinstance(v, date) else str(v) for v in key)


def deduplicate(records: Iterable[R]) -> list[R]:
    """Keep one record per natural key; the later record wins."""
    by_key: dict[tuple[Any, ...], R] = {}
    for record in records:
        key = record.natural_key()
        if key in by_key:
            del by_key[key]
            record.add_warning(
                f"duplicate {record.group.table_name} record for ({_format_key(key)}); later value kept"
            )
        by_key[key] = record
    return list(by_key.values())
