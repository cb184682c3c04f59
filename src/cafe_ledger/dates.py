"""Date helpers for the Vietnamese-locale views."""

from __future__ import annotations

import calendar
from datetime import date

# date.weekday() order: Monday first
WEEKDAY_CODES = ("T2", "T3", "T4", "T5", "T6", "T7", "CN")


def parse_day(value: str) -> date:
    return date.fromisoformat(value)


def format_date_vn(value: str) -> str:
    """``2026-01-02`` -> ``02/01/2026``; unparseable input is returned as-is."""
    try:
        return parse_day(value).strftime("%d/%m/%Y")
    except ValueError:
        return value


def weekday_vn(value: str) -> str:
    try:
        return WEEKDAY_CODES[parse_day(value).weekday()]
    except ValueError:
        return ""


def month_key(value: str) -> str:
    """``YYYY-MM`` prefix of an ISO date."""
    return value[:7]


def month_days(month: str) -> list[str]:
    """Every ISO date of a ``YYYY-MM`` month."""
    year, mon = (int(part) for part in month.split("-"))
    _, last = calendar.monthrange(year, mon)
    return [date(year, mon, day).isoformat() for day in range(1, last + 1)]
