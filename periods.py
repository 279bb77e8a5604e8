import re
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidRange, ValidationError

PERIOD_TYPES = ("monthly", "quarterly", "yearly", "custom")
ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def parse_calendar_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        raise ValidationError("Expected a calendar date, got a timestamp")
    if isinstance(value, date):
        return value
    message = f"Invalid date {value!r}, expected YYYY-MM-DD"
    if not isinstance(value, str) or not ISO_DATE.fullmatch(value):
        raise ValidationError(message)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValidationError(message) from exc


def check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")


def _first_of_month(year: int, month: int) -> date:
    try:
        return date(year, month, 1)
    except (OverflowError, ValueError) as exc:
        raise ValidationError(f"Year {year} is outside the supported range") from exc


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return _first_of_month(year, month)


def month_start(year: int, month: int) -> date:
    check_month(month)
    return _first_of_month(year, month)


def month_end(year: int, month: int) -> date:
    start = month_start(year, month)
    return start.replace(day=monthrange(year, month)[1])


def normalize_period_type(period_type: Optional[str]) -> str:
    if period_type in PERIOD_TYPES:
        return period_type
    return "custom"


def resolve_period(
    period_type: Optional[str],
    start: Optional[Union[str, date]],
    end: Optional[Union[str, date]],
    *,
    today: Optional[date] = None,
) -> Period:
    """Turn a report request into concrete dates.

    Explicit start and end always win. Without them, ``monthly``, ``quarterly``
    and ``yearly`` expand to the calendar month, quarter or year containing
    ``today``.
    """
    slug = normalize_period_type(period_type)
    if start is not None and end is not None:
        start_date = parse_calendar_date(start)
        end_date = parse_calendar_date(end)
        if start_date > end_date:
            raise InvalidRange("Start date must be on or before end date")
        return Period(slug, start_date, end_date)
    if slug == "custom":
        raise ValidationError("Custom period requires start and end dates")

    today = today or local_today()
    if slug == "monthly":
        return Period(
            slug,
            month_start(today.year, today.month),
            month_end(today.year, today.month),
        )
    if slug == "quarterly":
        first_month = ((today.month - 1) // 3) * 3 + 1
        return Period(
            slug,
            month_start(today.year, first_month),
            month_end(today.year, first_month + 2),
        )

    # yearly
    return Period(slug, date(today.year, 1, 1), date(today.year, 12, 31))
