"""Date manipulation utilities"""

from datetime import date, timedelta


def add_days(from_date: date, days: int) -> date:
    """Add calendar days to a date"""
    return from_date + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Calendar days from start to end (inclusive-exclusive), negative if end < start"""
    return (end - start).days


def month_key(day: date) -> str:
    """Bucket key used for monthly trends, e.g. '2025-05'"""
    return day.strftime("%Y-%m")


def month_name(day: date) -> str:
    return day.strftime("%b %Y")
