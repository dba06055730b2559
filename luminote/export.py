from __future__ import annotations

import json
import logging
from datetime import date

from .days import today_key, to_day
from .errors import StoreError, ValidationError
from .models import Entry, ExportResult
from .store import Backend

logger = logging.getLogger(__name__)

EXPORT_EXTENSIONS = {"PlainText": "txt", "Markdown": "md", "JSON": "json"}
EXPORT_FORMATS = tuple(EXPORT_EXTENSIONS)
LARGE_EXPORT_THRESHOLD = 5000
PLAIN_SEPARATOR = "-" * 40 + "\n"

_SECTIONS = (
    ("bright_spots", "Bright Spots"),
    ("intentions", "Intentions"),
    ("affirmations", "Affirmations"),
)


def export_filename(fmt: str, today: str) -> str:
    return f"Luminote_Export_{today}.{EXPORT_EXTENSIONS.get(fmt, 'txt')}"


def render_export(entries: list[Entry], fmt: str, start: str, end: str) -> str:
    if not entries:
        return ""
    if fmt == "JSON":
        return json.dumps([entry.to_record() for entry in entries], indent=2, ensure_ascii=False)

    range_line = f"Range: {start} to {end}"
    count_line = f"Count: {len(entries)}"
    if fmt == "Markdown":
        header = f"# Luminote Export\n\n**{range_line}**\n\n**{count_line}**\n\n"
        return header + "\n---\n".join(_markdown_entry(entry) for entry in entries)

    header = f"Luminote Export\n{range_line}\n{count_line}\n\n"
    return header + PLAIN_SEPARATOR.join(_plain_entry(entry) for entry in entries)


def export_entries(
    backend: Backend,
    start: date | str,
    end: date | str,
    fmt: str = "PlainText",
    include_capsules: bool = True,
    today: str | None = None,
    record_range: bool = False,
) -> ExportResult | None:
    if fmt not in EXPORT_EXTENSIONS:
        raise ValidationError(f"Unsupported export format: {fmt}")
    if not start or not end:
        raise ValidationError("Please choose a date range.")
    start_key = to_day(start).isoformat()
    end_key = to_day(end).isoformat()

    filters: dict[str, object] = {
        "created_at": {
            "$gte": f"{start_key}T00:00:00",
            "$lte": f"{end_key}T23:59:59",
        }
    }
    if not include_capsules:
        filters["is_capsule"] = {"$ne": True}

    try:
        entries = [Entry.from_record(row) for row in backend.list_entries(filters, "created_at")]
    except StoreError:
        logger.exception("Export error")
        return None

    if len(entries) > LARGE_EXPORT_THRESHOLD:
        logger.warning("Large export: %d entries may take a moment to generate", len(entries))
    if not entries:
        logger.info("No entries found between %s and %s", start_key, end_key)
        return None

    content = render_export(entries, fmt, start_key, end_key)
    if record_range:
        try:
            backend.update_current_user(
                {"export_last_used_range": {"start": start_key, "end": end_key, "count": len(entries)}}
            )
        except StoreError:
            logger.exception("Failed to remember export range")

    return ExportResult(
        content=content,
        count=len(entries),
        filename=export_filename(fmt, today or today_key()),
    )


def _entry_timestamp(entry: Entry) -> str:
    if entry.created_at is not None:
        return entry.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
    return entry.date


def _entry_type(entry: Entry) -> str:
    return (entry.status or "scheduled") if entry.is_capsule else "journal"


def _lines(text: str) -> list[str]:
    return [line for line in text.split("\n") if line.strip()]


def _markdown_entry(entry: Entry) -> str:
    body = ""
    for name, title in _SECTIONS:
        lines = _lines(entry.text(name))
        if lines:
            body += f"### {title}\n" + "\n".join(f"- {line}" for line in lines) + "\n"
    if entry.body:
        body += f"### Note\n{entry.body}\n"
    return f"## Date: {_entry_timestamp(entry)}\n**Type:** `{_entry_type(entry)}`\n\n{body}"


def _plain_entry(entry: Entry) -> str:
    body = ""
    for name, title in _SECTIONS:
        lines = _lines(entry.text(name))
        if lines:
            body += f"{title}:\n" + "\n".join(f"  - {line}" for line in lines) + "\n"
    if entry.body:
        body += f"Note:\n{entry.body}\n"
    return f"Date: {_entry_timestamp(entry)}\nType: {_entry_type(entry)}\n{body}"
