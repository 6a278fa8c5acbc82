from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from ...models.records import MarketingRecord, RecordGroup, WeeklyRecord, round_half_up
from ..cells import RowMapping, TransposedLayout, parse_transposed_sheet
from ..reader import Sheet, SheetMissingError, Workbook
from .base import ParseContext, ParsedGroups, SheetParser

"""Parser for the "Marketing Weekly APP" and "Marketing Weekly BA" sheets.

Both sheets are transposed. Each platform has a four-row block
(impressions, clicks, cost, conversions) whose first row label also names
the platform. Values from both sheets are summed per (week, platform) and
the ratios are computed on the merged totals:
    ctr = clicks / impressions
    cpc = cost / clicks
"""

logger = logging.getLogger(__name__)

SHEET_NAMES = ("Marketing Weekly APP", "Marketing Weekly BA")
DATE_ROW = 3
START_COL = 3
LABEL_COL = 1
FIRST_ROW = 4

# 先勝ち: "google ads" より先に "google" が一致する
PLATFORM_PATTERNS = (
    ("google", "google_ads"),
    ("google ads", "google_ads"),
    ("meta", "meta_ads"),
    ("facebook", "meta_ads"),
    ("meta/facebook", "meta_ads"),
    ("bing", "bing_ads"),
    ("bing ads", "bing_ads"),
    ("tiktok", "tiktok_ads"),
    ("seo", "seo"),
)

METRIC_FIELDS = ("impressions", "clicks", "cost", "conversions")


@dataclass(frozen=True)
class PlatformGroup:
    platform: str
    impressions_row: int
    clicks_row: int
    cost_row: int
    conversions_row: int

    @property
    def layout(self) -> TransposedLayout:
        return TransposedLayout(
            date_row=DATE_ROW,
            start_col=START_COL,
            rows=(
                RowMapping(self.impressions_row, "impressions"),
                RowMapping(self.clicks_row, "clicks"),
                RowMapping(self.cost_row, "cost"),
                RowMapping(self.conversions_row, "conversions"),
            ),
        )


@dataclass
class _Totals:
    values: dict[str, float | None] = field(default_factory=lambda: dict.fromkeys(METRIC_FIELDS))
    warnings: list[str] = field(default_factory=list)

    def add(self, values: dict[str, float | None], warnings: list[str]) -> None:
        for name in METRIC_FIELDS:
            current, extra = self.values[name], values.get(name)
            if current is None and extra is None:
                continue
            self.values[name] = (current or 0) + (extra or 0)
        self.warnings.extend(warnings)


def match_platform(label: str) -> str | None:
    lowered = label.lower()
    for pattern, platform in PLATFORM_PATTERNS:
        if pattern in lowered:
            return platform
    return None


class MarketingParser(SheetParser):
    name = "marketing"
    sheet_names = SHEET_NAMES
    groups = (RecordGroup.MARKETING,)

    def parse(self, workbook: Workbook, context: ParseContext) -> ParsedGroups:
        sheets = [s for s in (workbook.get_sheet(n) for n in SHEET_NAMES) if s is not None]
        if not sheets:
            raise SheetMissingError(", ".join(SHEET_NAMES))
        if len(sheets) < len(SHEET_NAMES):
            logger.info(f"marketing: only {[s.name for s in sheets]} present")

        merged: dict[tuple[date, str], _Totals] = {}
        for sheet in sheets:
            for group in self.find_platform_groups(sheet):
                for column in parse_transposed_sheet(sheet, group.layout, warn_missing=False):
                    totals = merged.setdefault((column.week_date, group.platform), _Totals())
                    totals.add(column.values, column.warnings)

        records: list[WeeklyRecord] = []
        for (week_date, platform), totals in merged.items():
            # 件数は丸めてから比率を出す
            values = {
                name: round_half_up(v) if v is not None and name in MarketingRecord.integer_fields else v
                for name, v in totals.values.items()
            }
            impressions, clicks, cost = values["impressions"], values["clicks"], values["cost"]
            records.append(
                MarketingRecord(
                    week_date=week_date,
                    platform=platform,
                    **values,
                    ctr=clicks / impressions if clicks is not None and (impressions or 0) > 0 else None,
                    cpc=cost / clicks if cost is not None and (clicks or 0) > 0 else None,
                    warnings=totals.warnings,
                )
            )
        return {RecordGroup.MARKETING: records}

    def find_platform_groups(self, sheet: Sheet) -> list[PlatformGroup]:
        groups: list[PlatformGroup] = []
        seen: set[str] = set()
        row = FIRST_ROW
        while row <= sheet.row_count - 3:
            label = self._label(sheet, row, LABEL_COL)
            platform = match_platform(label) if label else None
            group = self._metric_block(sheet, row, platform) if platform else None
            if group is None:
                row += 1
                continue
            # 同一プラットフォームは最初のブロックのみ
            if group.platform not in seen:
                seen.add(group.platform)
                groups.append(group)
            row += 4
        return groups

    def _metric_block(self, sheet: Sheet, row: int, platform: str) -> PlatformGroup | None:
        found: dict[str, int] = {}
        for offset in range(4):
            label = self._label(sheet, row + offset, LABEL_COL).lower()
            if "impression" in label:
                found["impressions"] = row + offset
            elif "click" in label:
                found["clicks"] = row + offset
            elif "cost" in label or "spend" in label:
                found["cost"] = row + offset
            elif "conversion" in label or "lead" in label or "enquir" in label:
                found["conversions"] = row + offset
        if "impressions" not in found and "clicks" not in found:
            return None
        return PlatformGroup(
            platform=platform,
            impressions_row=found.get("impressions", row),
            clicks_row=found.get("clicks", row + 1),
            cost_row=found.get("cost", row + 2),
            conversions_row=found.get("conversions", row + 3),
        )
