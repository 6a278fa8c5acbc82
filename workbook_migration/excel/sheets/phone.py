from __future__ import annotations

from dataclasses import dataclass

from ...models.records import PhoneRecord, RecordGroup, WeeklyRecord
from ..cells import RowMapping, TransposedLayout, deduplicate, parse_transposed_sheet
from ..reader import Sheet, Workbook
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Phone (2)" sheet.

"Phone (2)" is used rather than "Phone": the latter is mostly formula
errors. A staff name label in column A is followed by Inbound, Outbound and
Missed rows; week data starts at column C.
"""

SHEET_NAME = "Phone (2)"
DATE_ROW = 3
START_COL = 3
LABEL_COL = 1
FIRST_ROW = 4

NON_STAFF_LABELS = frozenset({"inbound", "outbound", "missed", "team", "average"})


@dataclass(frozen=True)
class PhoneGroup:
    staff_name: str
    name_row: int

    @property
    def layout(self) -> TransposedLayout:
        return TransposedLayout(
            date_row=DATE_ROW,
            start_col=START_COL,
            rows=(
                RowMapping(self.name_row + 1, "inbound_calls"),
                RowMapping(self.name_row + 2, "outbound_calls"),
                RowMapping(self.name_row + 3, "missed_calls"),
            ),
        )


class PhoneParser(SheetParser):
    name = "phone"
    sheet_names = (SHEET_NAME,)
    groups = (RecordGroup.PHONE,)

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheet = workbook.require_sheet(SHEET_NAME)
        records: list[WeeklyRecord] = []
        for group in self.find_staff_groups(sheet):
            for column in parse_transposed_sheet(sheet, group.layout, warn_missing=False):
                records.append(
                    PhoneRecord(
                        week_date=column.week_date,
                        staff_name=group.staff_name,
                        **column.values,
                        warnings=column.warnings,
                    )
                )
        return {RecordGroup.PHONE: deduplicate(records)}

    def find_staff_groups(self, sheet: Sheet) -> list[PhoneGroup]:
        groups: list[PhoneGroup] = []
        row = FIRST_ROW
        while row <= sheet.row_count - 2:
            label = self._label(sheet, row, LABEL_COL)
            lowered = label.lower()
            if not label or lowered in NON_STAFF_LABELS or "total" in lowered:
                row += 1
                continue
            following = [self._label(sheet, row + offset, LABEL_COL).lower() for offset in (1, 2, 3)]
            if "inbound" in following[0] and "outbound" in following[1] and "missed" in following[2]:
                groups.append(PhoneGroup(staff_name=label, name_row=row))
                row += 4
                continue
            row += 1
        return groups
