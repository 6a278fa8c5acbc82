from __future__ import annotations
from datetime import date, datetime

import pytest

from conftest import build_formula_workbook, build_workbook, weekly_report_cells
from workbook_migration.excel.reader import SheetMissingError, load_workbook
from workbook_migration.excel.sheets import (
    SHEET_PARSERS,
    FinanceThisWeekParser,
    MarketingParser,
    ParseContext,
    PhoneParser,
    ProductivityParser,
    RevenueReportParser,
    WeeklyReportParser,
)
from workbook_migration.excel.week import current_week_ending
from workbook_migration.models.records import RecordGroup

JAN_25 = date(2025, 1, 25)
FEB_01 = date(2025, 2, 1)


def _parse(parser, sheets, context: ParseContext | None = None):
    return parser.parse(load_workbook(build_workbook(sheets)), context or ParseContext())


def _by(records, attr):
    return {getattr(r, attr): r for r in records}


def test_parser_order_and_names():
    assert [p.name for p in SHEET_PARSERS] == [
        "weekly_report",
        "revenue_report",
        "finance_this_week",
        "productivity",
        "phone",
        "marketing",
    ]


def test_every_parser_raises_sheet_missing_on_empty_workbook():
    wb = load_workbook(build_workbook({"Unrelated": {(2, 1): 1}}))
    for parser in SHEET_PARSERS:
        with pytest.raises(SheetMissingError):
            parser.parse(wb, ParseContext())


class TestWeeklyReport:
    @pytest.fixture()
    def groups(self):
        cells = weekly_report_cells()
        cells.update(
            {
                (18, 3): 5, (19, 3): 12000.0,                       # residential projects (row 21 empty)
                (35, 3): 10, (36, 3): 50000.0, (37, 3): 4, (38, 3): 20000.0,  # residential sales
                (55, 3): 20, (56, 3): 12.5,                          # google leads
                (57, 3): 8,                                          # seo leads, no cost
                (70, 3): 3,                                          # google reviews
                (74, 3): 45000.0,                                    # cairns
                (77, 3): "#REF!",                                    # mackay
                (3, 4): datetime(2025, 2, 1),
                (4, 4): 1000.0,
            }
        )
        return _parse(WeeklyReportParser(), {"Weekly Report": cells})

    def test_financial(self, groups):
        financial = _by(groups[RecordGroup.FINANCIAL], "week_date")
        assert set(financial) == {JAN_25, FEB_01}
        jan = financial[JAN_25]
        assert jan.total_trading_income == 310523.45
        assert jan.net_profit == 112023.45
        assert jan.warnings == []
        feb = financial[FEB_01]
        assert feb.total_trading_income == 1000.0
        assert feb.gross_profit is None
        assert "Weekly Report!D5: missing value for total_cost_of_sales" in feb.warnings
        assert len(feb.warnings) == 6

    def test_projects_and_sales(self, groups):
        projects = groups[RecordGroup.PROJECTS]
        assert len(projects) == 1
        residential = projects[0]
        assert residential.project_type == "residential"
        assert residential.hyperflo_count == 5
        assert residential.warnings == ["Weekly Report!C21: missing value for new_business_percentage"]
        (sales,) = groups[RecordGroup.SALES]
        assert sales.sales_type == "residential"
        assert (sales.quotes_issued_count, sales.quotes_won_value) == (10, 20000.0)

    def test_leads_compute_total_cost(self, groups):
        leads = _by(groups[RecordGroup.LEADS], "source")
        assert set(leads) == {"google", "seo"}
        assert leads["google"].total_cost == 250.0
        assert leads["seo"].cost_per_lead is None
        assert leads["seo"].total_cost is None
        assert leads["seo"].warnings == []

    def test_reviews_and_team(self, groups):
        (reviews,) = groups[RecordGroup.GOOGLE_REVIEWS]
        assert reviews.review_count == 3
        team = _by(groups[RecordGroup.TEAM_PERFORMANCE], "region")
        assert team["cairns"].actual_invoiced == 45000.0
        assert team["mackay"].actual_invoiced == 0
        assert team["mackay"].warnings == ["Weekly Report!C77: Formula error #REF!, set to 0"]

    def test_uncached_lead_formulas_are_kept_as_zero(self):
        cells = weekly_report_cells()
        cells.update({(55, 3): "=10+10", (56, 3): "=5*2"})
        workbook = load_workbook(build_formula_workbook({"Weekly Report": cells}))
        groups = WeeklyReportParser().parse(workbook, ParseContext())
        (google,) = groups[RecordGroup.LEADS]
        assert google.source == "google"
        assert (google.lead_count, google.cost_per_lead, google.total_cost) == (0, 0, 0)
        assert google.warnings == [
            'Weekly Report!C55: Uncached formula "10+10", set to 0',
            'Weekly Report!C56: Uncached formula "5*2", set to 0',
        ]


class TestRevenueReport:
    def test_rows_become_category_records(self):
        cells = {
            (1, 1): "Week Ending",
            (2, 1): datetime(2025, 1, 25), (2, 2): 95420.0, (2, 3): "abc", (2, 28): 500.0,
            (3, 1): "Total", (3, 2): 999999.0,
            (4, 1): datetime(2025, 2, 1), (4, 4): "$1,250.50",
        }
        groups = _parse(RevenueReportParser(), {"Weekly Revenue Report": cells})
        records = groups[RecordGroup.REVENUE]
        keys = {(r.week_date, r.category): r.amount for r in records}
        assert keys == {
            (JAN_25, "class_1a"): 95420.0,
            (JAN_25, "access_labour_hire"): 500.0,
            (FEB_01, "class_10b_pools"): 1250.5,
        }

    def test_duplicate_week_later_wins(self):
        cells = {
            (1, 1): "Week Ending",
            (2, 1): datetime(2025, 1, 25), (2, 2): 100.0,
            (3, 1): datetime(2025, 1, 27), (3, 2): 200.0,  # snaps back to the 25th
        }
        (record,) = _parse(RevenueReportParser(), {"Weekly Revenue Report": cells})[RecordGroup.REVENUE]
        assert record.amount == 200.0
        assert record.warnings and "later value kept" in record.warnings[0]


class TestFinanceThisWeek:
    CELLS = {
        (8, 1): "ANZ", (8, 2): 1000.0,
        (10, 1): "NAB", (10, 2): 2500.0,
        (11, 2): 200.0,
        (17, 2): -300.0,
        (18, 2): 3400.0,
        (22, 2): 10000.0, (22, 3): 6000.0, (22, 4): 2000.0, (22, 5): 1500.0, (22, 6): 500.0,
        (25, 2): 4000.0,
    }

    def test_snapshot_keyed_by_reference_week(self):
        groups = _parse(
            FinanceThisWeekParser(), {"Finance This Week": self.CELLS}, ParseContext(reference_week=JAN_25)
        )
        (record,) = groups[RecordGroup.CASH_POSITION]
        assert record.week_date == JAN_25
        assert record.everyday_account == 3500.0
        assert record.tax_savings == 200.0
        assert record.capital_account is None
        assert record.credit_cards == -300.0
        assert record.total_receivables == 10000.0
        assert record.over_90_days == 500.0
        assert record.total_payables == 4000.0

    def test_without_reference_week_uses_current_week(self):
        (record,) = _parse(FinanceThisWeekParser(), {"Finance This Week": self.CELLS})[RecordGroup.CASH_POSITION]
        assert record.week_date == current_week_ending()

    def test_empty_sheet_yields_no_record(self):
        groups = _parse(FinanceThisWeekParser(), {"Finance This Week": {(8, 1): "ANZ"}})
        assert groups[RecordGroup.CASH_POSITION] == []


class TestProductivity:
    def test_staff_groups_and_roles(self):
        cells = {
            (3, 4): datetime(2025, 1, 25), (3, 5): datetime(2025, 2, 1),
            (4, 1): "Certifiers",
            (5, 1): "Jobs #", (5, 2): "Jane Smith", (5, 4): 5, (5, 5): 6,
            (6, 1): "Revenue $", (6, 4): 5000.0,
            (7, 1): "Inspections", (7, 4): 3,
            (8, 1): "Cadets",
            (9, 1): "Jobs #", (9, 2): "Tom Lee", (9, 4): 2,
            (10, 1): "Revenue $",
            (11, 1): "Inspections",
        }
        records = _parse(ProductivityParser(), {"Productivity": cells})[RecordGroup.STAFF_PRODUCTIVITY]
        keys = {(r.staff_name, r.week_date): r for r in records}
        assert set(keys) == {("Jane Smith", JAN_25), ("Jane Smith", FEB_01), ("Tom Lee", JAN_25)}
        jane = keys[("Jane Smith", JAN_25)]
        assert jane.role == "certifier"
        assert (jane.jobs_completed, jane.revenue_generated, jane.inspections_completed) == (5, 5000.0, 3)
        assert keys[("Jane Smith", FEB_01)].revenue_generated is None
        assert keys[("Tom Lee", JAN_25)].role == "cadet"


class TestPhone:
    def test_staff_blocks_skip_totals(self):
        cells = {
            (3, 3): datetime(2025, 1, 25),
            (4, 1): "Alice", (5, 1): "Inbound", (5, 3): 10, (6, 1): "Outbound", (6, 3): 4,
            (7, 1): "Missed", (7, 3): 1,
            (8, 1): "Team Total", (9, 1): "Inbound", (9, 3): 99, (10, 1): "Outbound", (11, 1): "Missed",
            (12, 1): "Bob", (13, 1): "Inbound calls", (13, 3): 7, (14, 1): "Outbound calls",
            (15, 1): "Missed calls", (15, 3): 2,
        }
        records = _parse(PhoneParser(), {"Phone (2)": cells})[RecordGroup.PHONE]
        phones = _by(records, "staff_name")
        assert set(phones) == {"Alice", "Bob"}
        assert (phones["Alice"].inbound_calls, phones["Alice"].outbound_calls) == (10, 4)
        assert phones["Bob"].outbound_calls is None
        assert phones["Bob"].warnings == []

    def test_plain_phone_sheet_is_ignored(self):
        with pytest.raises(SheetMissingError):
            _parse(PhoneParser(), {"Phone": {(4, 1): "Alice"}})


class TestMarketing:
    @staticmethod
    def _block(first_row: int, label: str, values: tuple) -> dict:
        names = (f"{label} Impressions", "Clicks", "Cost", "Conversions")
        cells = {}
        for offset, (name, value) in enumerate(zip(names, values)):
            cells[(first_row + offset, 1)] = name
            cells[(first_row + offset, 3)] = value
        return cells

    def test_sheets_are_merged_and_ratios_computed(self):
        app = {(3, 3): datetime(2025, 1, 25), **self._block(4, "Google Ads", (1000, 50, 250.0, 5))}
        ba = {
            (3, 3): datetime(2025, 1, 25),
            **self._block(4, "Google Ads", (1000, 50, 250.0, 5)),
            **self._block(8, "SEO", (100, 0, 0.0, 1)),
        }
        records = _parse(MarketingParser(), {"Marketing Weekly APP": app, "Marketing Weekly BA": ba})[
            RecordGroup.MARKETING
        ]
        platforms = _by(records, "platform")
        google = platforms["google_ads"]
        assert (google.impressions, google.clicks, google.cost, google.conversions) == (2000, 100, 500.0, 10)
        assert google.ctr == pytest.approx(0.05)
        assert google.cpc == pytest.approx(5.0)
        seo = platforms["seo"]
        assert seo.ctr == 0
        assert seo.cpc is None

    def test_ratios_use_rounded_counts(self):
        ba = {(3, 3): datetime(2025, 1, 25), **self._block(4, "Google Ads", (999.6, 49.5, 250.0, 4.5))}
        (record,) = _parse(MarketingParser(), {"Marketing Weekly BA": ba})[RecordGroup.MARKETING]
        assert (record.impressions, record.clicks, record.conversions) == (1000, 50, 5)
        assert record.ctr == pytest.approx(0.05)
        assert record.cpc == pytest.approx(5.0)

    def test_single_sheet_is_enough(self):
        ba = {(3, 3): datetime(2025, 1, 25), **self._block(4, "Meta/Facebook", (400, 20, 80.0, 2))}
        (record,) = _parse(MarketingParser(), {"Marketing Weekly BA": ba})[RecordGroup.MARKETING]
        assert record.platform == "meta_ads"
        assert record.cpc == pytest.approx(4.0)
