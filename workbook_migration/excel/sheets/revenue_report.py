from __future__ import annotations

import logging

from ...models.records import RecordGroup, RevenueRecord, WeeklyRecord
from ..cells import deduplicate, extract_date, extract_numeric, sheet_ref
from ..reader import Workbook
from ..week import to_saturday
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Weekly Revenue Report" sheet (one week per row)."""

logger = logging.getLogger(__name__)

SHEET_NAME = "Weekly Revenue Report"
FIRST_ROW = 2
DATE_COL = 1

CATEGORY_COLUMNS = (
    (2, "class_1a"),
    (3, "class_10a_sheds"),
    (4, "class_10b_pools"),
    (5, "inspections"),
    (6, "retrospective"),
    (7, "class_2_9_commercial"),
    (8, "planning_1_10"),
    (28, "access_labour_hire"),  # 列 AB
)


class RevenueReportParser(SheetParser):
    name = "revenue_report"
    sheet_names = (SHEET_NAME,)
    groups = (RecordGroup.REVENUE,)

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheet = workbook.require_sheet(SHEET_NAME)
        records: list[WeeklyRecord] = []
        for row in range(FIRST_ROW, sheet.row_count + 1):
            week = extract_date(sheet.cell(row, DATE_COL))
            if week is None:
                continue
            week_date = to_saturday(week)
            for col, category in CATEGORY_COLUMNS:
                warnings: list[str] = []
                amount = extract_numeric(sheet.cell(row, col), sheet_ref(sheet, row, col), warnings)
                if amount is None:
                    for message in warnings:
                        logger.warning(message)
                    continue
                records.append(
                    RevenueRecord(week_date=week_date, category=category, amount=amount, warnings=warnings)
                )
        return {RecordGroup.REVENUE: deduplicate(records)}
