from __future__ import annotations
from datetime import datetime
from pathlib import Path

import pytest

from conftest import build_formula_workbook, build_workbook
from workbook_migration.excel.reader import (
    SheetMissingError,
    UncachedFormula,
    WorkbookLoadError,
    load_workbook,
)


def test_load_workbook_from_bytes_keeps_error_literals():
    data = build_workbook({"Sheet A": {(2, 2): "#N/A", (2, 3): 12.5, (3, 1): datetime(2025, 1, 25)}})
    wb = load_workbook(data)
    sheet = wb.require_sheet("Sheet A")
    # エラー値は文字列のまま
    assert sheet.cell(2, 2) == "#N/A"
    assert sheet.cell(2, 3) == 12.5
    assert sheet.cell(99, 99) is None
    assert sheet.cell(0, 1) is None


def test_load_workbook_from_path(temp_workdir: Path):
    path = temp_workdir / "data" / "wb.xlsx"
    path.write_bytes(build_workbook({"One": {(2, 1): 1}, "Two": {(2, 1): 2}}))
    wb = load_workbook(path)
    assert wb.sheet_names == ["One", "Two"]


def test_get_sheet_is_case_and_whitespace_tolerant():
    wb = load_workbook(build_workbook({"WEEKLY REPORT": {(2, 1): 1}}))
    assert wb.get_sheet(" Weekly Report") is not None
    assert wb.get_sheet("Phone (2)") is None
    with pytest.raises(SheetMissingError) as e:
        wb.require_sheet("Phone (2)")
    assert e.value.sheet_name == "Phone (2)"
    assert "sheet not found" in str(e.value)


def test_load_workbook_rejects_empty_and_garbage(temp_workdir: Path):
    with pytest.raises(WorkbookLoadError):
        load_workbook(b"")
    with pytest.raises(WorkbookLoadError):
        load_workbook(b"this is not a workbook")
    with pytest.raises(WorkbookLoadError):
        load_workbook(temp_workdir / "data" / "missing.xlsx")


def test_formula_without_cached_result_is_marked():
    data = build_formula_workbook(
        {"Calc": {(1, 1): "label", (2, 3): "=10+10", (3, 3): 5, (4, 3): "=SUM(C2:C3)"}}
    )
    sheet = load_workbook(data).require_sheet("Calc")
    assert sheet.cell(2, 3) == UncachedFormula("10+10")
    assert sheet.cell(4, 3) == UncachedFormula("SUM(C2:C3)")
    assert sheet.cell(3, 3) == 5
    assert sheet.cell(1, 1) == "label"
    assert sheet.cell(1, 3) is None


def test_formula_marking_from_path(temp_workdir: Path):
    path = temp_workdir / "data" / "calc.xlsx"
    path.write_bytes(build_formula_workbook({"Calc": {(1, 1): "=1+1"}}))
    assert load_workbook(path).require_sheet("Calc").cell(1, 1) == UncachedFormula("1+1")
