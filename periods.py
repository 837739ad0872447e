from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_bounds(d: date) -> tuple[date, date]:
    first = d.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def shift_months(d: date, count: int) -> date:
    """First day of the month ``count`` months away from ``d``."""
    month_index = (d.year * 12) + (d.month - 1) + count
    return date(month_index // 12, (month_index % 12) + 1, 1)


def resolve_period(
    period: Optional[str],
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    """Turn a report period slug into a concrete, inclusive date window.

    ``month`` and ``quarter`` run from their first day up to ``today``;
    ``year`` and ``ytd`` run from January 1st. ``custom`` needs both
    ``start`` and ``end``.
    """
    today = today or date.today()
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        if start > end:
            raise ValueError("Start date must be before end date")
        return Period("custom", start, end)
    if period == "quarter":
        quarter_month = ((today.month - 1) // 3) * 3 + 1
        return Period("quarter", date(today.year, quarter_month, 1), today)
    if period in ("year", "ytd"):
        return Period(period, date(today.year, 1, 1), today)
    if period in (None, "", "month"):
        return Period("month", today.replace(day=1), today)
    raise ValueError(f"Unknown period: {period}")


def previous_period(period: Period) -> Period:
    """The window of equal length ending the day before ``period`` starts."""
    prev_end = period.start - timedelta(days=1)
    prev_start = prev_end - (period.end - period.start)
    return Period("previous", prev_start, prev_end)
