from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from dateutil.relativedelta import relativedelta

from .days import format_or_raw, parse_timestamp, short_date, utc_timestamp
from .errors import StoreError, ValidationError
from .models import STATUS_DELIVERED, STATUS_SCHEDULED, DeliveryReport, Entry, Notification
from .store import Backend

logger = logging.getLogger(__name__)

QUICK_DELIVERY_CHOICES = ("3m", "1y", "jan1")

ViewCallback = Callable[[str], Any]


def quick_delivery_date(choice: str, now: datetime) -> datetime:
    if choice == "3m":
        return now + relativedelta(months=3)
    if choice == "1y":
        return now + relativedelta(years=1)
    if choice == "jan1":
        start_of_year = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        return start_of_year + relativedelta(years=1)
    raise ValueError(f"Unsupported delivery choice: {choice}")


def default_delivery_date(now: datetime) -> datetime:
    return quick_delivery_date("3m", now)


def prefill_letter(entry: Entry | None) -> str:
    text = "Dear Future Me,\n\n"
    bright_spots = entry.text("bright_spots") if entry else ""
    intentions = entry.text("intentions") if entry else ""
    if bright_spots:
        text += f"Remember this day? Here were some of the bright spots:\n{bright_spots}\n\n"
    if intentions:
        text += f"You were focusing on these intentions:\n{intentions}\n\n"
    return text + "A note from your past self:\n"


def validate_capsule(body: str, deliver_at: datetime | None, now: datetime) -> None:
    if not (body or "").strip():
        raise ValidationError("Please write a note.")
    if deliver_at is None or parse_timestamp(deliver_at) <= parse_timestamp(now):
        raise ValidationError("Choose a future date.")


class CapsuleScheduler:
    def __init__(self, backend: Backend, max_workers: int = 8):
        self._backend = backend
        self._max_workers = max(1, int(max_workers))

    def due_capsules(self, now: datetime) -> list[Entry]:
        now = parse_timestamp(now)
        records = self._backend.list_entries({"is_capsule": True, "status": STATUS_SCHEDULED})
        due: list[Entry] = []
        for record in records:
            capsule = Entry.from_record(record)
            if capsule.deliver_at is None:
                logger.warning("Scheduled capsule %s has no delivery time; skipping", capsule.id)
                continue
            if capsule.deliver_at <= now:
                due.append(capsule)
        return due

    def unlock_due(self, now: datetime, on_view: ViewCallback | None = None) -> DeliveryReport:
        now = parse_timestamp(now)
        try:
            due = self.due_capsules(now)
        except StoreError:
            logger.exception("Error fetching scheduled capsules")
            return DeliveryReport(delivered=[], failed=[])
        if not due:
            return DeliveryReport(delivered=[], failed=[])

        delivered_at = utc_timestamp(now)
        workers = min(self._max_workers, len(due))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="luminote-capsule") as pool:
            pending = [(capsule, pool.submit(self._deliver, capsule, delivered_at)) for capsule in due]

        delivered: list[Entry] = []
        failed: list[str] = []
        for capsule, future in pending:
            try:
                delivered.append(future.result())
            except StoreError:
                logger.exception("Error delivering capsule %s", capsule.id)
                failed.append(capsule.id)

        logger.info("Delivered %d capsule(s), %d failed", len(delivered), len(failed))
        notification = _arrival_notification(delivered[0], on_view) if delivered else None
        return DeliveryReport(delivered=delivered, failed=failed, notification=notification)

    def _deliver(self, capsule: Entry, delivered_at: str) -> Entry:
        payload: dict[str, Any] = {
            "status": STATUS_DELIVERED,
            "delivered_at": delivered_at,
            **capsule.legacy_migration(),
        }
        self._backend.update_entry(capsule.id, payload)
        return Entry.from_record({**capsule.raw, **payload})


def _arrival_notification(capsule: Entry, on_view: ViewCallback | None) -> Notification:
    action = None
    if on_view is not None:
        def action() -> Any:
            return on_view(capsule.id)

    return Notification(
        title="A note from your past self",
        description=f"Your Luminote from {format_or_raw(short_date, capsule.date)} has arrived.",
        entry_id=capsule.id,
        action=action,
    )
