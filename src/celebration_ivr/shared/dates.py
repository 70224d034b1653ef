"""
Calendar helpers for keypad date entry and school-year scoping.

Event dates are stored as Gregorian dates. Callers may also key them in the
Hebrew calendar (day, then a month menu); those are converted with pyluach.
"""

from datetime import date, timedelta
from typing import Literal

from pyluach import dates as hebrew, hebrewcal

Calendar = Literal["gregorian", "hebrew"]

HEBREW_MONTH_DAYS = 30


def school_year(day: date, start_month: int = 9) -> int:
    """School year a calendar day belongs to, named by the year it ends in."""
    return day.year + 1 if day.month >= start_month else day.year


def infer_event_date(
    day: int,
    month: int,
    today: date,
    past_window_days: int = 183,
) -> date | None:
    """Resolve a keyed-in day and month to a full date.

    The current year is assumed unless that puts the date more than
    ``past_window_days`` behind ``today``; such dates are taken to be next
    year's. Returns None for impossible dates (31 April, 29 February in a
    common year).
    """
    try:
        candidate = date(today.year, month, day)
    except ValueError:
        candidate = None

    if candidate is None or today - candidate > timedelta(days=past_window_days):
        try:
            return date(today.year + 1, month, day)
        except ValueError:
            return None
    return candidate


def parse_day_month(raw: str, today: date, past_window_days: int = 183) -> date | None:
    """Parse a 4-digit ``DDMM`` keypad entry."""
    if len(raw) != 4 or not raw.isdigit():
        return None
    return infer_event_date(int(raw[:2]), int(raw[2:]), today, past_window_days)


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


# Hebrew calendar


def hebrew_year(today: date) -> int:
    return hebrew.HebrewDate.from_pydate(today).year


def hebrew_months(year: int) -> list[tuple[int, str]]:
    """``(month number, name)`` pairs of a Hebrew year, Tishrei first.

    Leap years list Adar I and Adar II.
    """
    return [(month.month, month.month_name()) for month in hebrewcal.Year(year).itermonths()]


def _to_gregorian(year: int, month: int, day: int) -> date | None:
    try:
        return hebrew.HebrewDate(year, month, day).to_pydate()
    except ValueError:
        return None


def infer_hebrew_event_date(
    day: int,
    month: int,
    today: date,
    past_window_days: int = 183,
) -> date | None:
    """Resolve a Hebrew day and month to a Gregorian date.

    Same year inference as ``infer_event_date``, applied to the Hebrew year.
    Returns None when the month has no such day that year (30 Heshvan in a
    short year).
    """
    year = hebrew_year(today)
    candidate = _to_gregorian(year, month, day)
    if candidate is None or today - candidate > timedelta(days=past_window_days):
        # Adar II only exists in leap years
        if month == 13 and not hebrewcal.Year(year + 1).leap:
            month = 12
        return _to_gregorian(year + 1, month, day)
    return candidate


def format_hebrew_date(value: date) -> str:
    """``15 Sivan 5784`` style rendering of a Gregorian date."""
    hd = hebrew.HebrewDate.from_pydate(value)
    return f"{hd.day} {hd.month_name()} {hd.year}"


def hebrew_month_name(value: date) -> str:
    return hebrew.HebrewDate.from_pydate(value).month_name()


def display_date(value: date, calendar: Calendar = "gregorian") -> str:
    """Date as announced to the caller."""
    if calendar == "hebrew":
        return format_hebrew_date(value)
    return format_date(value)
