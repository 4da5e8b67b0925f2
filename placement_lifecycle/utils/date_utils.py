"""Date manipulation utilities"""

from datetime import date
from dateutil.relativedelta import relativedelta


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length"""
    return from_date + relativedelta(months=months)


def whole_months_between(start: date, end: date) -> int:
    """Count complete calendar months from start to end; partial months round down"""
    if end <= start:
        return 0
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def is_within_months(start: date, as_of: date, months: int) -> bool:
    """True while as_of falls on or before start + months calendar months"""
    return as_of <= add_months(start, months)
