from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, tzinfo
from typing import Any, Iterable

from .capsules import CapsuleScheduler, ViewCallback, validate_capsule
from .days import one_month_ago, one_year_ago, parse_timestamp, short_date, today_key, utc_timestamp
from .errors import StoreError
from .models import (
    STATUS_SCHEDULED,
    TEXT_FIELDS,
    Entry,
    JournalSnapshot,
    Notification,
    SparkSettings,
    UserProfile,
    normalize_text,
    parse_text_field,
)
from .spark import select_daily_prompt, validate_spark_changes
from .store import Backend
from .streak import streak_for_entries

logger = logging.getLogger(__name__)

AFFIRMATION_SLOTS = 3
STORE_MANAGED_FIELDS = ("id", "created_at", "updated_at")


def compose_affirmations(lines: Iterable[str]) -> str:
    kept = [line.strip() for line in lines if line and line.strip()]
    return "\n".join(kept[:AFFIRMATION_SLOTS])


def split_affirmations(text: str) -> list[str]:
    lines = [line for line in (text or "").split("\n") if line.strip()]
    lines = lines[:AFFIRMATION_SLOTS]
    return lines + [""] * (AFFIRMATION_SLOTS - len(lines))


class JournalService:
    def __init__(
        self,
        backend: Backend,
        scheduler: CapsuleScheduler | None = None,
        tz: tzinfo | None = None,
    ):
        self._backend = backend
        self._scheduler = scheduler or CapsuleScheduler(backend)
        self._tz = tz
        self._day_locks: dict[str, threading.Lock] = {}
        self._day_locks_guard = threading.Lock()
        self.spark = ""

    @property
    def backend(self) -> Backend:
        return self._backend

    def start(self, now: datetime | None = None, on_view: ViewCallback | None = None) -> JournalSnapshot:
        now = self._now(now)
        report = self._scheduler.unlock_due(now, on_view)
        snapshot = self.load(now, notification=report.notification)
        self.spark = self.daily_spark(now)
        return replace(snapshot, spark=self.spark)

    def load(self, now: datetime | None = None, notification: Notification | None = None) -> JournalSnapshot:
        now = self._now(now)
        today = today_key(now, self._tz)
        try:
            entries = [Entry.from_record(row) for row in self._backend.list_entries({}, "-date")]
        except StoreError:
            logger.exception("Error loading journal data")
            entries = []

        month_ago = one_month_ago(today)
        year_ago = one_year_ago(today)
        return JournalSnapshot(
            today=today,
            today_entry=_first_for_day(entries, today),
            month_ago_entry=_first_for_day(entries, month_ago),
            year_ago_entry=_first_for_day(entries, year_ago),
            streak=streak_for_entries(entries, today),
            total_entries=len(entries),
            spark=self.spark,
            notification=notification,
        )

    def current_user(self) -> UserProfile | None:
        try:
            return UserProfile.from_record(self._backend.get_current_user())
        except StoreError:
            logger.exception("Error loading user profile")
            return None

    def daily_spark(self, now: datetime | None = None) -> str:
        today = today_key(self._now(now), self._tz)
        return select_daily_prompt(SparkSettings.from_user(self.current_user()), today)

    def save_entry(
        self,
        fields: dict[str, Any],
        now: datetime | None = None,
        autosave: bool = False,
    ) -> Entry | None:
        today = today_key(self._now(now), self._tz)
        payload: dict[str, Any] = {"date": today}
        payload.update(_normalized_fields(fields))
        spark = str(payload.pop("spark_prompt", None) or self.spark)

        with self._day_lock(today):
            try:
                current = self._entry_for_day(today)
                if current is None:
                    payload["spark_prompt"] = spark
                    record = self._backend.create_entry(payload)
                    logger.info("Created journal entry for %s", today)
                    return Entry.from_record({**payload, **(record or {})})

                if spark and not current.spark_prompt:
                    payload["spark_prompt"] = spark
                for name, value in current.legacy_migration().items():
                    payload.setdefault(name, value)
                if not _has_changes(current.raw, payload):
                    return current
                record = self._backend.update_entry(current.id, payload)
                logger.log(
                    logging.DEBUG if autosave else logging.INFO,
                    "Updated journal entry %s for %s",
                    current.id,
                    today,
                )
                return Entry.from_record({**current.raw, **payload, **(record or {})})
            except StoreError:
                logger.exception("Error saving entry for %s", today)
                return None

    def schedule_capsule(
        self,
        body: str,
        deliver_at: datetime,
        now: datetime | None = None,
    ) -> Notification | None:
        now = self._now(now)
        validate_capsule(body, deliver_at, now)
        deliver_at = parse_timestamp(deliver_at)
        today = today_key(now, self._tz)

        with self._day_lock(today):
            try:
                current = self._entry_for_day(today)
                payload: dict[str, Any] = {}
                if current is not None:
                    payload.update(
                        {key: value for key, value in current.raw.items() if key not in STORE_MANAGED_FIELDS}
                    )
                payload = _normalized_fields(payload)
                payload.update(
                    {
                        "date": today,
                        "body": body,
                        "deliver_at": utc_timestamp(deliver_at),
                        "is_capsule": True,
                        "status": STATUS_SCHEDULED,
                    }
                )
                if current is not None:
                    self._backend.update_entry(current.id, payload)
                else:
                    self._backend.create_entry(payload)
            except StoreError:
                logger.exception("Error scheduling capsule for %s", today)
                return None

        logger.info("Scheduled capsule from %s for %s", today, deliver_at.isoformat())
        return Notification(
            title="Capsule sealed",
            description=f"We’ll deliver this on {short_date(deliver_at)}.",
        )

    def update_spark_settings(self, **changes: Any) -> UserProfile | None:
        cleaned = validate_spark_changes(changes)
        try:
            return UserProfile.from_record(self._backend.update_current_user(cleaned))
        except StoreError:
            logger.exception("Failed to update spark settings")
            return None

    def _entry_for_day(self, day: str) -> Entry | None:
        matches = self._backend.list_entries({"date": day})
        return Entry.from_record(matches[0]) if matches else None

    def _day_lock(self, day: str) -> threading.Lock:
        with self._day_locks_guard:
            lock = self._day_locks.get(day)
            if lock is None:
                lock = threading.Lock()
                self._day_locks[day] = lock
            return lock

    @staticmethod
    def _now(now: datetime | None) -> datetime:
        if now is None:
            return datetime.now().astimezone()
        return parse_timestamp(now)


def _first_for_day(entries: list[Entry], day: str) -> Entry | None:
    return next((entry for entry in entries if entry.date == day), None)


def _normalized_fields(fields: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(fields)
    for name in TEXT_FIELDS:
        if name in normalized:
            normalized[name] = normalize_text(parse_text_field(normalized[name]))
    return normalized


def _has_changes(stored: dict[str, Any], payload: dict[str, Any]) -> bool:
    return any(
        json.dumps(stored.get(key), sort_keys=True, default=str) != json.dumps(value, sort_keys=True, default=str)
        for key, value in payload.items()
    )
