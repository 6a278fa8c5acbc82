from __future__ import annotations

from collections.abc import Callable

from ...models.records import (
    FinancialRecord,
    GoogleReviewRecord,
    LeadRecord,
    ProjectRecord,
    RecordGroup,
    SalesRecord,
    TeamPerformanceRecord,
    WeeklyRecord,
)
from ..cells import ParsedColumn, RowMapping, TransposedLayout, deduplicate, parse_transposed_sheet
from ..reader import Sheet, Workbook
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Weekly Report" sheet (transposed: one week per column).

Row 3 holds the week dates; data starts at column C. The sheet feeds six
record groups: financial, projects, sales, leads, google reviews and team
performance.
"""

SHEET_NAME = "Weekly Report"
DATE_ROW = 3
START_COL = 3

FINANCIAL_ROWS = (
    RowMapping(4, "total_trading_income"),
    RowMapping(5, "total_cost_of_sales"),
    RowMapping(6, "gross_profit"),
    RowMapping(7, "other_income"),
    RowMapping(8, "operating_expenses"),
    RowMapping(9, "wages_and_salaries"),
    RowMapping(10, "net_profit"),
)

PROJECT_ROWS: dict[str, tuple[RowMapping, ...]] = {
    "residential": (
        RowMapping(18, "hyperflo_count"),
        RowMapping(19, "xero_invoiced_amount"),
        RowMapping(21, "new_business_percentage"),
    ),
    "commercial": (
        RowMapping(26, "hyperflo_count"),
        RowMapping(27, "xero_invoiced_amount"),
    ),
    "retrospective": (
        RowMapping(30, "hyperflo_count"),
        RowMapping(31, "xero_invoiced_amount"),
    ),
}

# 各区分の先頭行: issued count / issued value / won count / won value
SALES_START_ROWS = {"residential": 35, "commercial": 41, "retrospective": 47}
SALES_FIELDS = ("quotes_issued_count", "quotes_issued_value", "quotes_won_count", "quotes_won_value")

# 件数行 (次の行が cost per lead)
LEAD_ROWS = {"google": 55, "seo": 57, "meta": 59, "bing": 61, "tiktok": 63, "other": 65}

REVIEW_ROW = 70

TEAM_ACTUAL_ROWS = {
    "cairns": 74,
    "mackay": 77,
    "nq_commercial": 80,
    "seq_residential": 83,
    "seq_commercial": 86,
    "town_planning": 89,
    "townsville": 92,
    "wide_bay": 95,
    "all_in_access": 98,
}


class WeeklyReportParser(SheetParser):
    name = "weekly_report"
    sheet_names = (SHEET_NAME,)
    groups = (
        RecordGroup.FINANCIAL,
        RecordGroup.PROJECTS,
        RecordGroup.SALES,
        RecordGroup.LEADS,
        RecordGroup.GOOGLE_REVIEWS,
        RecordGroup.TEAM_PERFORMANCE,
    )

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheet = workbook.require_sheet(SHEET_NAME)
        result = self._empty()
        result[RecordGroup.FINANCIAL] = self._collect(
            sheet,
            FINANCIAL_ROWS,
            lambda c: FinancialRecord(week_date=c.week_date, **c.values, warnings=c.warnings),
        )
        result[RecordGroup.PROJECTS] = self._parse_projects(sheet)
        result[RecordGroup.SALES] = self._parse_sales(sheet)
        result[RecordGroup.LEADS] = self._parse_leads(sheet)
        result[RecordGroup.GOOGLE_REVIEWS] = self._collect(
            sheet,
            (RowMapping(REVIEW_ROW, "review_count"),),
            lambda c: GoogleReviewRecord(week_date=c.week_date, **c.values, warnings=c.warnings),
        )
        result[RecordGroup.TEAM_PERFORMANCE] = self._parse_team(sheet)
        return result

    def _collect(
        self,
        sheet: Sheet,
        rows: tuple[RowMapping, ...],
        build: Callable[[ParsedColumn], WeeklyRecord],
        *,
        warn_missing: bool = True,
    ) -> list[WeeklyRecord]:
        layout = TransposedLayout(date_row=DATE_ROW, start_col=START_COL, rows=rows)
        records = [build(c) for c in parse_transposed_sheet(sheet, layout, warn_missing=warn_missing)]
        return deduplicate(records)

    def _parse_projects(self, sheet: Sheet) -> list[WeeklyRecord]:
        records: list[WeeklyRecord] = []
        for project_type, rows in PROJECT_ROWS.items():
            records.extend(
                self._collect(
                    sheet,
                    rows,
                    lambda c, t=project_type: ProjectRecord(
                        week_date=c.week_date, project_type=t, **c.values, warnings=c.warnings
                    ),
                )
            )
        return records

    def _parse_sales(self, sheet: Sheet) -> list[WeeklyRecord]:
        records: list[WeeklyRecord] = []
        for sales_type, start in SALES_START_ROWS.items():
            rows = tuple(RowMapping(start + i, name) for i, name in enumerate(SALES_FIELDS))
            records.extend(
                self._collect(
                    sheet,
                    rows,
                    lambda c, t=sales_type: SalesRecord(
                        week_date=c.week_date, sales_type=t, **c.values, warnings=c.warnings
                    ),
                )
            )
        return records

    def _parse_leads(self, sheet: Sheet) -> list[WeeklyRecord]:
        records: list[WeeklyRecord] = []
        for source, count_row in LEAD_ROWS.items():
            rows = (RowMapping(count_row, "lead_count"), RowMapping(count_row + 1, "cost_per_lead"))
            records.extend(
                self._collect(
                    sheet,
                    rows,
                    lambda c, s=source: self._lead_record(c, s),
                    warn_missing=False,  # オーガニック流入は単価なしが普通
                )
            )
        return records

    @staticmethod
    def _lead_record(column: ParsedColumn, source: str) -> LeadRecord:
        count = column.values["lead_count"]
        cost = column.values["cost_per_lead"]
        total = count * cost if count is not None and cost is not None else None
        return LeadRecord(
            week_date=column.week_date,
            source=source,
            lead_count=count,
            cost_per_lead=cost,
            total_cost=total,
            warnings=column.warnings,
        )

    def _parse_team(self, sheet: Sheet) -> list[WeeklyRecord]:
        records: list[WeeklyRecord] = []
        for region, row in TEAM_ACTUAL_ROWS.items():
            records.extend(
                self._collect(
                    sheet,
                    (RowMapping(row, "actual_invoiced"),),
                    lambda c, r=region: TeamPerformanceRecord(
                        week_date=c.week_date, region=r, **c.values, warnings=c.warnings
                    ),
                )
            )
        return records
