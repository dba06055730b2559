from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta


def day_key(instant: datetime | date, tz: tzinfo | None = None) -> str:
    if isinstance(instant, datetime):
        if instant.tzinfo is not None:
            instant = instant.astimezone(tz)
        return instant.date().isoformat()
    return instant.isoformat()


def today_key(now: datetime | None = None, tz: tzinfo | None = None) -> str:
    return day_key(now if now is not None else datetime.now().astimezone(), tz)


def to_day(value: Any, tz: tzinfo | None = None) -> date:
    if isinstance(value, datetime):
        return date.fromisoformat(day_key(value, tz))
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return date.fromisoformat(day_key(parse_timestamp(text), tz))


def shift_day(key: str, days: int) -> str:
    return (to_day(key) + timedelta(days=days)).isoformat()


def one_month_ago(today: str) -> str:
    return shift_day(today, -30)


def one_year_ago(today: str) -> str:
    return (to_day(today) - relativedelta(years=1)).isoformat()


def day_of_year(key: str) -> int:
    return to_day(key).timetuple().tm_yday


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Empty timestamp.")
        parsed = isoparse(text)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def utc_timestamp(instant: datetime) -> str:
    return instant.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def human_date(value: Any) -> str:
    day = to_day(value)
    return f"{day:%B} {day.day}, {day.year}"


def long_date(value: Any) -> str:
    day = to_day(value)
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def short_date(value: Any) -> str:
    day = to_day(value)
    return f"{day:%b} {day.day}, {day.year}"


def format_or_raw(formatter: Callable[[Any], str], value: Any) -> str:
    """Apply a date formatter, falling back to the stored text when it is not a readable date."""
    try:
        return formatter(value)
    except (ValueError, OverflowError):
        return str(value or "")
