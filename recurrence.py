from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import RecurringFrequency
from schemas import TransactionRecord


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(base.day, days_in_month(year, month)))


def calculate_next_date(from_date: date, frequency: RecurringFrequency) -> date:
    """Step ``from_date`` forward one period.

    Monthly and yearly steps clamp to the last day of the target month, so
    Jan 31 becomes Feb 28 (or 29) and Feb 29 becomes Feb 28 a year later.
    """
    if frequency == RecurringFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == RecurringFrequency.weekly:
        return from_date + timedelta(weeks=1)
    if frequency == RecurringFrequency.monthly:
        return _add_months(from_date, 1)
    if frequency == RecurringFrequency.yearly:
        return _add_months(from_date, 12)
    raise ValueError(f"Unsupported recurring frequency: {frequency}")


def next_occurrence(txn: TransactionRecord) -> Optional[date]:
    """Due date following the current one, or None once past the end date."""
    if not txn.is_recurring or txn.recurring_frequency is None:
        raise ValueError("Transaction is not recurring")
    current = txn.next_recurring_date or txn.date
    upcoming = calculate_next_date(current, txn.recurring_frequency)
    if txn.recurring_end_date and upcoming > txn.recurring_end_date:
        return None
    return upcoming
