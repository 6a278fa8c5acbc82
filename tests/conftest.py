# Shared pytest fixtures
from __future__ import annotations
import io
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import openpyxl
import pandas as pd
import pytest

from workbook_migration.db.weekly_store import InMemoryWeeklyStore
from workbook_migration.services.progress import ProgressHub

Cells = dict[tuple[int, int], Any]


def _sheet_rows(cells: Cells) -> list[list[Any]]:
    max_row = max(r for r, _ in cells)
    max_col = max(c for _, c in cells)
    rows: list[list[Any]] = [[None] * max_col for _ in range(max_row)]
    for (r, c), value in cells.items():
        rows[r - 1][c - 1] = value
    return rows


def build_workbook(sheets: dict[str, Cells]) -> bytes:
    """Write {sheet: {(row, col): value}} (1-based) to xlsx bytes."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, cells in sheets.items():
            cells = {(1, 1): name, **cells} if (1, 1) not in cells else cells
            pd.DataFrame(_sheet_rows(cells)).to_excel(writer, sheet_name=name, header=False, index=False)
    return buffer.getvalue()


def build_formula_workbook(sheets: dict[str, Cells]) -> bytes:
    """Like build_workbook, but "=..." strings stay formulas with no cached result."""
    book = openpyxl.Workbook()
    book.remove(book.active)
    for name, cells in sheets.items():
        ws = book.create_sheet(name)
        for (r, c), value in cells.items():
            ws.cell(row=r, column=c, value=value)
    buffer = io.BytesIO()
    book.save(buffer)
    return buffer.getvalue()


WEEK = datetime(2025, 1, 25)  # 土曜日

FINANCIAL_VALUES = {
    4: 310523.45,  # total trading income
    5: 120000.00,
    6: 190523.45,
    7: 1500.00,
    8: 80000.00,
    9: 65000.00,
    10: 112023.45,
}


def weekly_report_cells(week: datetime = WEEK, col: int = 3) -> Cells:
    cells: Cells = {(3, col): week}
    for row, value in FINANCIAL_VALUES.items():
        cells[(row, col)] = value
    return cells


def revenue_cells(week: datetime = WEEK, amount: float = 95420.00) -> Cells:
    return {
        (1, 1): "Week Ending",
        (1, 2): "Class 1A",
        (2, 1): week,
        (2, 2): amount,
    }


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
        self.submitted += 1
        return fn(*args, **kwargs)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: kpi_dashboard
job_ttl_minutes: 30
progress_timeout_seconds: 5
sample_size: 3
data_source: backfilled
max_workbook_mb: 20
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "migration.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_workbook() -> Callable[[dict[str, Cells]], bytes]:
    return build_workbook


@pytest.fixture()
def weekly_workbook() -> bytes:
    """Weekly Report (one financial week) + Weekly Revenue Report (class 1A)."""
    return build_workbook(
        {
            "Weekly Report": weekly_report_cells(),
            "Weekly Revenue Report": revenue_cells(),
        }
    )


@pytest.fixture()
def workbook_file(temp_workdir: Path, weekly_workbook: bytes) -> Path:
    path = temp_workdir / "data" / "weekly.xlsx"
    path.write_bytes(weekly_workbook)
    return path


@pytest.fixture()
def store() -> InMemoryWeeklyStore:
    return InMemoryWeeklyStore()


@pytest.fixture()
def hub() -> ProgressHub:
    return ProgressHub()


@pytest.fixture()
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
