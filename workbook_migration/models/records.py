from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, ClassVar

"""Typed weekly record models (one concrete shape per target table).

Every parsed record carries:
- ``week_date``: week-ending Saturday
- discriminator fields which, together with ``week_date``, form the natural key
- nullable business values specific to the table
- ``warnings``: advisory parse anomalies (never block the import)

``value_row()`` applies the store coercions: NOT NULL columns fall back to 0
and integer columns are rounded half-up.
"""

__all__ = [
    "RecordGroup",
    "WeeklyRecord",
    "FinancialRecord",
    "ProjectRecord",
    "SalesRecord",
    "LeadRecord",
    "GoogleReviewRecord",
    "TeamPerformanceRecord",
    "RevenueRecord",
    "CashPositionRecord",
    "ProductivityRecord",
    "PhoneRecord",
    "MarketingRecord",
    "RECORD_TYPES",
    "PROJECT_TYPES",
    "SALES_TYPES",
    "LEAD_SOURCES",
    "REGIONS",
    "REVENUE_CATEGORIES",
    "STAFF_ROLES",
    "MARKETING_PLATFORMS",
    "round_half_up",
]


PROJECT_TYPES = ("residential", "commercial", "retrospective")
SALES_TYPES = ("residential", "commercial", "retrospective")
LEAD_SOURCES = ("google", "seo", "meta", "bing", "tiktok", "other")
REGIONS = (
    "cairns",
    "mackay",
    "nq_commercial",
    "seq_residential",
    "seq_commercial",
    "town_planning",
    "townsville",
    "wide_bay",
    "all_in_access",
)
REVENUE_CATEGORIES = (
    "class_1a",
    "class_10a_sheds",
    "class_10b_pools",
    "inspections",
    "retrospective",
    "class_2_9_commercial",
    "planning_1_10",
    "access_labour_hire",
)
STAFF_ROLES = ("certifier", "cadet", "admin", "town_planner", "manager", "other")
MARKETING_PLATFORMS = ("google_ads", "meta_ads", "bing_ads", "tiktok_ads", "seo")


class RecordGroup(Enum):
    """The eleven record groups. Value is the target table name."""
    FINANCIAL = "financial_weekly"
    PROJECTS = "projects_weekly"
    SALES = "sales_weekly"
    LEADS = "leads_weekly"
    GOOGLE_REVIEWS = "google_reviews_weekly"
    TEAM_PERFORMANCE = "team_performance_weekly"
    REVENUE = "revenue_weekly"
    CASH_POSITION = "cash_position_weekly"
    STAFF_PRODUCTIVITY = "staff_productivity_weekly"
    PHONE = "phone_weekly"
    MARKETING = "marketing_performance_weekly"

    @property
    def table_name(self) -> str:
        return self.value


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class WeeklyRecord:
    """Behaviour shared by every concrete record dataclass."""

    group: ClassVar[RecordGroup]
    key_fields: ClassVar[tuple[str, ...]] = ()
    value_fields: ClassVar[tuple[str, ...]] = ()
    required_fields: ClassVar[frozenset[str]] = frozenset()  # NOT NULL 列
    integer_fields: ClassVar[frozenset[str]] = frozenset()

    week_date: date
    warnings: list[str]

    def natural_key(self) -> tuple[Any, ...]:
        return (self.week_date, *(getattr(self, name) for name in self.key_fields))

    def key_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {"week_ending": self.week_date}
        for name in self.key_fields:
            row[name] = getattr(self, name)
        return row

    def value_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for name in self.value_fields:
            value = getattr(self, name)
            if value is None:
                row[name] = 0 if name in self.required_fields else None
            elif name in self.integer_fields:
                row[name] = round_half_up(value)
            else:
                row[name] = value
        return row

    def sample_row(self) -> dict[str, Any]:
        """Flat JSON-friendly rendering used by the dry-run preview."""
        row: dict[str, Any] = {"week_date": self.week_date.isoformat()}
        for name in self.key_fields + self.value_fields:
            value = getattr(self, name)
            row[name] = round_half_up(value) if value is not None and name in self.integer_fields else value
        return row

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)


@dataclass(frozen=True)
class FinancialRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.FINANCIAL
    value_fields: ClassVar[tuple[str, ...]] = (
        "total_trading_income",
        "total_cost_of_sales",
        "gross_profit",
        "other_income",
        "operating_expenses",
        "wages_and_salaries",
        "net_profit",
    )
    required_fields: ClassVar[frozenset[str]] = frozenset(value_fields)

    week_date: date
    total_trading_income: float | None = None
    total_cost_of_sales: float | None = None
    gross_profit: float | None = None
    other_income: float | None = None
    operating_expenses: float | None = None
    wages_and_salaries: float | None = None
    net_profit: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.PROJECTS
    key_fields: ClassVar[tuple[str, ...]] = ("project_type",)
    value_fields: ClassVar[tuple[str, ...]] = (
        "hyperflo_count",
        "xero_invoiced_amount",
        "new_business_percentage",
    )
    required_fields: ClassVar[frozenset[str]] = frozenset({"hyperflo_count", "xero_invoiced_amount"})
    integer_fields: ClassVar[frozenset[str]] = frozenset({"hyperflo_count"})

    week_date: date
    project_type: str
    hyperflo_count: float | None = None
    xero_invoiced_amount: float | None = None
    new_business_percentage: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SalesRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.SALES
    key_fields: ClassVar[tuple[str, ...]] = ("sales_type",)
    value_fields: ClassVar[tuple[str, ...]] = (
        "quotes_issued_count",
        "quotes_issued_value",
        "quotes_won_count",
        "quotes_won_value",
    )
    required_fields: ClassVar[frozenset[str]] = frozenset(value_fields)
    integer_fields: ClassVar[frozenset[str]] = frozenset({"quotes_issued_count", "quotes_won_count"})

    week_date: date
    sales_type: str
    quotes_issued_count: float | None = None
    quotes_issued_value: float | None = None
    quotes_won_count: float | None = None
    quotes_won_value: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LeadRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.LEADS
    key_fields: ClassVar[tuple[str, ...]] = ("source",)
    value_fields: ClassVar[tuple[str, ...]] = ("lead_count", "cost_per_lead", "total_cost")
    required_fields: ClassVar[frozenset[str]] = frozenset({"lead_count"})
    integer_fields: ClassVar[frozenset[str]] = frozenset({"lead_count"})

    week_date: date
    source: str
    lead_count: float | None = None
    cost_per_lead: float | None = None
    total_cost: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GoogleReviewRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.GOOGLE_REVIEWS
    value_fields: ClassVar[tuple[str, ...]] = ("review_count",)
    required_fields: ClassVar[frozenset[str]] = frozenset({"review_count"})
    integer_fields: ClassVar[frozenset[str]] = frozenset({"review_count"})

    week_date: date
    review_count: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TeamPerformanceRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.TEAM_PERFORMANCE
    key_fields: ClassVar[tuple[str, ...]] = ("region",)
    value_fields: ClassVar[tuple[str, ...]] = ("actual_invoiced",)
    required_fields: ClassVar[frozenset[str]] = frozenset({"actual_invoiced"})

    week_date: date
    region: str
    actual_invoiced: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RevenueRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.REVENUE
    key_fields: ClassVar[tuple[str, ...]] = ("category",)
    value_fields: ClassVar[tuple[str, ...]] = ("amount",)
    required_fields: ClassVar[frozenset[str]] = frozenset({"amount"})

    week_date: date
    category: str
    amount: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CashPositionRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.CASH_POSITION
    value_fields: ClassVar[tuple[str, ...]] = (
        "everyday_account",
        "tax_savings",
        "capital_account",
        "credit_cards",
        "total_cash_available",
        "total_receivables",
        "current_receivables",
        "over_30_days",
        "over_60_days",
        "over_90_days",
        "total_payables",
    )

    week_date: date
    everyday_account: float | None = None
    tax_savings: float | None = None
    capital_account: float | None = None
    credit_cards: float | None = None
    total_cash_available: float | None = None
    total_receivables: float | None = None
    current_receivables: float | None = None
    over_30_days: float | None = None
    over_60_days: float | None = None
    over_90_days: float | None = None
    total_payables: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProductivityRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.STAFF_PRODUCTIVITY
    key_fields: ClassVar[tuple[str, ...]] = ("staff_name",)
    value_fields: ClassVar[tuple[str, ...]] = (
        "role",
        "jobs_completed",
        "revenue_generated",
        "inspections_completed",
    )
    integer_fields: ClassVar[frozenset[str]] = frozenset({"jobs_completed", "inspections_completed"})

    week_date: date
    staff_name: str
    role: str = "other"
    jobs_completed: float | None = None
    revenue_generated: float | None = None
    inspections_completed: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PhoneRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.PHONE
    key_fields: ClassVar[tuple[str, ...]] = ("staff_name",)
    value_fields: ClassVar[tuple[str, ...]] = ("inbound_calls", "outbound_calls", "missed_calls")
    integer_fields: ClassVar[frozenset[str]] = frozenset(value_fields)

    week_date: date
    staff_name: str
    inbound_calls: float | None = None
    outbound_calls: float | None = None
    missed_calls: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MarketingRecord(WeeklyRecord):
    group: ClassVar[RecordGroup] = RecordGroup.MARKETING
    key_fields: ClassVar[tuple[str, ...]] = ("platform",)
    value_fields: ClassVar[tuple[str, ...]] = (
        "impressions",
        "clicks",
        "cost",
        "conversions",
        "ctr",
        "cpc",
    )
    integer_fields: ClassVar[frozenset[str]] = frozenset({"impressions", "clicks", "conversions"})

    week_date: date
    platform: str
    impressions: float | None = None
    clicks: float | None = None
    cost: float | None = None
    conversions: float | None = None
    ctr: float | None = None
    cpc: float | None = None
    warnings: list[str] = field(default_factory=list)


RECORD_TYPES: dict[RecordGroup, type[WeeklyRecord]] = {
    RecordGroup.FINANCIAL: FinancialRecord,
    RecordGroup.PROJECTS: ProjectRecord,
    RecordGroup.SALES: SalesRecord,
    RecordGroup.LEADS: LeadRecord,
    RecordGroup.GOOGLE_REVIEWS: GoogleReviewRecord,
    RecordGroup.TEAM_PERFORMANCE: TeamPerformanceRecord,
    RecordGroup.REVENUE: RevenueRecord,
    RecordGroup.CASH_POSITION: CashPositionRecord,
    RecordGroup.STAFF_PRODUCTIVITY: ProductivityRecord,
    RecordGroup.PHONE: PhoneRecord,
    RecordGroup.MARKETING: MarketingRecord,
}
