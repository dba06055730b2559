from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Union

from .days import parse_timestamp

TEXT_FIELDS = ("bright_spots", "intentions", "affirmations")

STATUS_SCHEDULED = "scheduled"
STATUS_DELIVERED = "delivered"


@dataclass(frozen=True)
class LegacyText:
    lines: tuple[str, ...]


@dataclass(frozen=True)
class CurrentText:
    text: str


TextField = Union[LegacyText, CurrentText]


def parse_text_field(raw: Any) -> TextField:
    if isinstance(raw, (list, tuple)):
        return LegacyText(tuple("" if item is None else str(item) for item in raw))
    if raw is None:
        return CurrentText("")
    return CurrentText(str(raw))


def normalize_text(value: TextField) -> str:
    if isinstance(value, LegacyText):
        return "\n".join(value.lines)
    return value.text


@dataclass(frozen=True)
class Entry:
    id: str
    date: str
    bright_spots: TextField = CurrentText("")
    intentions: TextField = CurrentText("")
    affirmations: TextField = CurrentText("")
    spark_prompt: str = ""
    body: str = ""
    is_capsule: bool = False
    status: str | None = None
    deliver_at: datetime | None = None
    delivered_at: datetime | None = None
    archived: bool = False
    created_at: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Entry:
        return cls(
            id=str(record.get("id", "")),
            date=str(record.get("date") or ""),
            bright_spots=parse_text_field(record.get("bright_spots")),
            intentions=parse_text_field(record.get("intentions")),
            affirmations=parse_text_field(record.get("affirmations")),
            spark_prompt=str(record.get("spark_prompt") or ""),
            body=str(record.get("body") or ""),
            is_capsule=bool(record.get("is_capsule", False)),
            status=record.get("status") or None,
            deliver_at=_optional_timestamp(record.get("deliver_at")),
            delivered_at=_optional_timestamp(record.get("delivered_at")),
            archived=bool(record.get("archived", False)),
            created_at=_optional_timestamp(record.get("created_at")),
            raw=dict(record),
        )

    def text(self, name: str) -> str:
        if name not in TEXT_FIELDS:
            raise KeyError(name)
        return normalize_text(getattr(self, name))

    def legacy_migration(self) -> dict[str, str]:
        return {
            name: normalize_text(getattr(self, name))
            for name in TEXT_FIELDS
            if isinstance(getattr(self, name), LegacyText)
        }

    @property
    def is_sealed(self) -> bool:
        return self.is_capsule and self.status == STATUS_SCHEDULED

    @property
    def is_delivered(self) -> bool:
        return self.is_capsule and self.status == STATUS_DELIVERED

    @property
    def kind(self) -> str:
        if self.is_sealed:
            return "sealed"
        if self.is_delivered:
            return "delivered"
        return "journal"

    def to_record(self) -> dict[str, Any]:
        record = dict(self.raw)
        record.update(
            {
                "id": self.id,
                "date": self.date,
                "bright_spots": self.text("bright_spots"),
                "intentions": self.text("intentions"),
                "affirmations": self.text("affirmations"),
                "spark_prompt": self.spark_prompt,
                "body": self.body,
                "is_capsule": self.is_capsule,
                "status": self.status,
                "deliver_at": _iso_or_none(self.deliver_at),
                "delivered_at": _iso_or_none(self.delivered_at),
                "archived": self.archived,
                "created_at": _iso_or_none(self.created_at),
            }
        )
        return record


@dataclass(frozen=True)
class UserProfile:
    daily_spark_enabled: bool = False
    spark_mode: str = "prompt"
    daily_spark_theme: str = "random"
    export_last_used_range: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> UserProfile:
        last_range = record.get("export_last_used_range")
        return cls(
            daily_spark_enabled=bool(record.get("daily_spark_enabled", False)),
            spark_mode=str(record.get("spark_mode") or "prompt"),
            daily_spark_theme=str(record.get("daily_spark_theme") or "random"),
            export_last_used_range=dict(last_range) if isinstance(last_range, dict) else None,
            raw=dict(record),
        )


@dataclass(frozen=True)
class SparkSettings:
    enabled: bool = False
    mode: str = "prompt"
    theme: str = "random"

    @classmethod
    def from_user(cls, user: UserProfile | None) -> SparkSettings:
        if user is None:
            return cls()
        return cls(
            enabled=user.daily_spark_enabled,
            mode=user.spark_mode,
            theme=user.daily_spark_theme,
        )


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    entry_id: str | None = None
    action: Callable[[], Any] | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DeliveryReport:
    delivered: list[Entry]
    failed: list[str]
    notification: Notification | None = None


@dataclass(frozen=True)
class JournalSnapshot:
    today: str
    today_entry: Entry | None
    month_ago_entry: Entry | None
    year_ago_entry: Entry | None
    streak: int
    total_entries: int
    spark: str
    notification: Notification | None = None


@dataclass(frozen=True)
class SearchHit:
    entry: Entry
    preview: str
    spark_matched: bool


@dataclass(frozen=True)
class ExportResult:
    content: str
    count: int
    filename: str


def _optional_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
