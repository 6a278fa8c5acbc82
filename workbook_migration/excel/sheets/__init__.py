"""Sheet parsers, one per physical sheet layout.

``SHEET_PARSERS`` is the order the orchestrator runs them in. The weekly
report runs first so the finance snapshot can key its record by the latest
financial week.
"""

from .base import ParseContext, ParsedGroups, SheetParser
from .finance_this_week import FinanceThisWeekParser
from .marketing import MarketingParser
from .phone import PhoneParser
from .productivity import ProductivityParser
from .revenue_report import RevenueReportParser
from .weekly_report import WeeklyReportParser

SHEET_PARSERS: tuple[SheetParser, ...] = (
    WeeklyReportParser(),
    RevenueReportParser(),
    FinanceThisWeekParser(),
    ProductivityParser(),
    PhoneParser(),
    MarketingParser(),
)

__all__ = [
    "SHEET_PARSERS",
    "ParseContext",
    "ParsedGroups",
    "SheetParser",
    "WeeklyReportParser",
    "RevenueReportParser",
    "FinanceThisWeekParser",
    "ProductivityParser",
    "PhoneParser",
    "MarketingParser",
]
