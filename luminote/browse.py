from __future__ import annotations

import logging

from .days import human_date
from .errors import NotFound, StoreError
from .models import STATUS_DELIVERED, STATUS_SCHEDULED, Entry, SearchHit
from .store import Backend

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 120
CONTEXT_CHARS = 50
PREVIEW_SEPARATOR = " • "

ENTRY_ICONS = {"journal": "📝", "sealed": "🔒", "delivered": "📬"}


def preview_text(entry: Entry, query: str = "") -> str:
    parts = [entry.text("bright_spots"), entry.text("intentions"), entry.text("affirmations"), entry.body]
    combined = PREVIEW_SEPARATOR.join(part for part in parts if part)

    needle = query.strip().lower()
    if needle:
        index = combined.lower().find(needle)
        if index != -1:
            start = max(0, index - CONTEXT_CHARS)
            end = min(len(combined), index + len(needle) + CONTEXT_CHARS)
            prefix = "..." if start > 0 else ""
            suffix = "..." if end < len(combined) else ""
            return f"{prefix}{combined[start:end]}{suffix}"

    if len(combined) > PREVIEW_LIMIT:
        return combined[:PREVIEW_LIMIT] + "..."
    return combined or "No content"


def entry_icon(entry: Entry) -> str:
    return ENTRY_ICONS[entry.kind]


def searchable_text(entry: Entry) -> str:
    parts = [
        entry.text("bright_spots"),
        entry.text("intentions"),
        entry.text("affirmations"),
        entry.body,
        entry.spark_prompt,
    ]
    if entry.date:
        try:
            parts.append(human_date(entry.date))
        except ValueError:
            pass
    return " ".join(part for part in parts if part).lower()


def search_entries(entries: list[Entry], query: str) -> list[SearchHit]:
    needle = query.strip().lower()
    if not needle:
        return []
    return [
        SearchHit(
            entry=entry,
            preview=preview_text(entry, query),
            spark_matched=needle in entry.spark_prompt.lower(),
        )
        for entry in entries
        if needle in searchable_text(entry)
    ]


class JournalBrowser:
    def __init__(self, backend: Backend):
        self._backend = backend

    def timeline(self) -> list[Entry]:
        return self._list({"archived": {"$ne": True}}, "-date", "timeline entries")

    def search(self, query: str) -> list[SearchHit]:
        if not query.strip():
            return []
        return search_entries(self.timeline(), query)

    def sealed_notes(self) -> list[Entry]:
        return self._list({"is_capsule": True, "status": STATUS_SCHEDULED}, "deliver_at", "sealed notes")

    def delivered_capsules(self) -> list[Entry]:
        return self._list({"status": STATUS_DELIVERED}, "-delivered_at", "delivered capsules")

    def entry_detail(self, entry_id: str) -> Entry | None:
        if not entry_id:
            return None
        try:
            return Entry.from_record(self._backend.get_entry(entry_id))
        except NotFound:
            logger.warning("Entry %s does not exist", entry_id)
            return None
        except StoreError:
            logger.exception("Error fetching entry %s", entry_id)
            return None

    def _list(self, filters: dict[str, object], sort: str, label: str) -> list[Entry]:
        try:
            return [Entry.from_record(row) for row in self._backend.list_entries(filters, sort)]
        except StoreError:
            logger.exception("Error fetching %s", label)
            return []
