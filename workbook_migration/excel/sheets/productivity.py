from __future__ import annotations

from dataclasses import dataclass

from ...models.records import ProductivityRecord, RecordGroup, WeeklyRecord
from ..cells import RowMapping, TransposedLayout, deduplicate, parse_transposed_sheet
from ..reader import Sheet, Workbook
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Productivity" sheet (transposed, one week per column).

Each staff member occupies three rows: jobs completed (label ends with "#"),
revenue generated and inspections completed. Column B holds the staff name;
section headers ("Certifiers ...", "Cadets") set the role of the staff
listed below them. Week data starts at column D (C is an average column).
"""

SHEET_NAME = "Productivity"
DATE_ROW = 3
START_COL = 4
LABEL_COL = 1
NAME_COL = 2
FIRST_ROW = 4


@dataclass(frozen=True)
class StaffGroup:
    staff_name: str
    role: str
    count_row: int

    @property
    def layout(self) -> TransposedLayout:
        return TransposedLayout(
            date_row=DATE_ROW,
            start_col=START_COL,
            rows=(
                RowMapping(self.count_row, "jobs_completed"),
                RowMapping(self.count_row + 1, "revenue_generated"),
                RowMapping(self.count_row + 2, "inspections_completed"),
            ),
        )


class ProductivityParser(SheetParser):
    name = "productivity"
    sheet_names = (SHEET_NAME,)
    groups = (RecordGroup.STAFF_PRODUCTIVITY,)

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheet = workbook.require_sheet(SHEET_NAME)
        records: list[WeeklyRecord] = []
        for group in self.find_staff_groups(sheet):
            for column in parse_transposed_sheet(sheet, group.layout, warn_missing=False):
                records.append(
                    ProductivityRecord(
                        week_date=column.week_date,
                        staff_name=group.staff_name,
                        role=group.role,
                        **column.values,
                        warnings=column.warnings,
                    )
                )
        return {RecordGroup.STAFF_PRODUCTIVITY: deduplicate(records)}

    def find_staff_groups(self, sheet: Sheet) -> list[StaffGroup]:
        groups: list[StaffGroup] = []
        role = "other"
        row = FIRST_ROW
        while row <= sheet.row_count:
            label = self._label(sheet, row, LABEL_COL)
            lowered = label.lower()
            if "certifier" in lowered:
                role = "certifier"
            elif "cadet" in lowered:
                role = "cadet"
            else:
                name = self._label(sheet, row, NAME_COL)
                if name and label.endswith("#"):
                    groups.append(StaffGroup(staff_name=name, role=role, count_row=row))
                    row += 3
                    continue
            row += 1
        return groups
