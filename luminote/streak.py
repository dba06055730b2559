from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Sequence

from .days import to_day
from .models import Entry

logger = logging.getLogger(__name__)


def calculate_streak(day_keys: Iterable[str], today: str) -> int:
    """Count consecutive journaling days ending today, or yesterday if today is still blank."""
    days = sorted({to_day(key) for key in day_keys}, reverse=True)
    if not days:
        return 0

    cursor = to_day(today)
    present = set(days)
    if cursor not in present and cursor - timedelta(days=1) in present:
        cursor -= timedelta(days=1)

    streak = 0
    for day in days:
        if day == cursor:
            streak += 1
            cursor -= timedelta(days=1)
        elif day < cursor:
            break
    return streak


def streak_for_entries(entries: Sequence[Entry], today: str) -> int:
    day_keys: list[str] = []
    for entry in entries:
        if not entry.date or entry.is_capsule:
            continue
        try:
            to_day(entry.date)
        except ValueError:
            logger.warning("Skipping entry %s with unreadable date %r", entry.id, entry.date)
            continue
        day_keys.append(entry.date)
    return calculate_streak(day_keys, today)
