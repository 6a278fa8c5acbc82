from __future__ import annotations

from datetime import date, datetime, timedelta

"""Week-ending normalization.

All weekly records are keyed by the Saturday that ends their week. Dates up
to three days after a Saturday snap back to it; later weekdays snap forward
to the next Saturday.
"""

__all__ = [
    "SATURDAY",
    "to_saturday",
    "current_week_ending",
]

SATURDAY = 5  # date.weekday(): Monday=0


def to_saturday(value: date | datetime) -> date:
    day = value.date() if isinstance(value, datetime) else value
    days_since = (day.weekday() - SATURDAY) % 7
    if days_since == 0:
        return day
    if days_since <= 3:
        return day - timedelta(days=days_since)
    return day + timedelta(days=7 - days_since)


def current_week_ending(today: date | None = None) -> date:
    return to_saturday(today or date.today())
