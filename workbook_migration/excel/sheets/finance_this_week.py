from __future__ import annotations

from ...models.records import CashPositionRecord, RecordGroup
from ..cells import extract_numeric, sheet_ref
from ..reader import Workbook
from ..week import current_week_ending
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Finance This Week" sheet.

The sheet is a single-week snapshot laid out like an email report and has
no date of its own: the record is keyed by the context's reference week
(latest financial week) or, failing that, the current week ending.
"""

SHEET_NAME = "Finance This Week"
VALUE_COL = 2

EVERYDAY_ROWS = (8, 10)  # ANZ + NAB
SINGLE_VALUE_ROWS = (
    ("tax_savings", 11),
    ("capital_account", 12),
    ("credit_cards", 17),
    ("total_cash_available", 18),
    ("total_payables", 25),
)
RECEIVABLES_ROW = 22
RECEIVABLES_COLUMNS = (
    ("total_receivables", 2),
    ("current_receivables", 3),
    ("over_30_days", 4),
    ("over_60_days", 5),
    ("over_90_days", 6),
)


class FinanceThisWeekParser(SheetParser):
    name = "finance_this_week"
    sheet_names = (SHEET_NAME,)
    groups = (RecordGroup.CASH_POSITION,)

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheet = workbook.require_sheet(SHEET_NAME)
        warnings: list[str] = []

        def value(row: int, col: int = VALUE_COL) -> float | None:
            return extract_numeric(sheet.cell(row, col), sheet_ref(sheet, row, col), warnings)

        balances = [b for b in (value(row) for row in EVERYDAY_ROWS) if b is not None]
        values: dict[str, float | None] = {"everyday_account": sum(balances) if balances else None}
        for name, row in SINGLE_VALUE_ROWS:
            values[name] = value(row)
        for name, col in RECEIVABLES_COLUMNS:
            values[name] = value(RECEIVABLES_ROW, col)

        if all(v is None for v in values.values()):
            return {RecordGroup.CASH_POSITION: []}

        week_date = context.reference_week or current_week_ending()
        record = CashPositionRecord(week_date=week_date, **values, warnings=warnings)
        return {RecordGroup.CASH_POSITION: [record]}
