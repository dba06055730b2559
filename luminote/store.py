from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

import requests

from .days import parse_timestamp, to_day
from .errors import NetworkFailure, NotFound, ValidationError
from .models import STATUS_DELIVERED, STATUS_SCHEDULED

logger = logging.getLogger(__name__)

ENTRY_DEFAULTS: dict[str, Any] = {
    "bright_spots": "",
    "intentions": "",
    "affirmations": "",
    "spark_prompt": "",
    "body": "",
    "is_capsule": False,
    "status": None,
    "deliver_at": None,
    "delivered_at": None,
    "archived": False,
}

USER_DEFAULTS: dict[str, Any] = {
    "daily_spark_enabled": True,
    "spark_mode": "prompt",
    "daily_spark_theme": "random",
    "export_last_used_range": None,
}

CURRENT_USER_SETTING_KEY = "current_user"


class Backend:
    """Entry and user-profile collaborator.

    Entry records are plain dicts. ``list_entries`` takes a filter mapping of
    field name to an exact value or a range predicate (``$gte``, ``$lte``,
    ``$gt``, ``$lt``, ``$ne``, ``$in``) and a sort field, prefixed with ``-``
    for descending order.
    """

    def list_entries(
        self,
        filters: dict[str, Any] | None = None,
        sort: str | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def get_entry(self, entry_id: str) -> dict[str, Any]:
        raise NotImplementedError

    def create_entry(self, payload: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def update_entry(self, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def get_current_user(self) -> dict[str, Any]:
        raise NotImplementedError

    def update_current_user(self, payload: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


def matches_filter(record: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    for key, expected in (filters or {}).items():
        actual = record.get(key)
        if isinstance(expected, dict) and any(str(op).startswith("$") for op in expected):
            for op, operand in expected.items():
                if not _apply_operator(op, actual, operand):
                    return False
        elif actual != expected:
            return False
    return True


def sort_records(records: list[dict[str, Any]], sort: str | None) -> list[dict[str, Any]]:
    if not sort:
        return list(records)
    descending = sort.startswith("-")
    field_name = sort.lstrip("-+")
    present = [row for row in records if row.get(field_name) is not None]
    missing = [row for row in records if row.get(field_name) is None]
    present.sort(key=lambda row: _sort_value(row[field_name]), reverse=descending)
    return present + missing


def _apply_operator(op: str, actual: Any, operand: Any) -> bool:
    if op == "$ne":
        return actual != operand
    if op == "$in":
        return actual in (operand or [])
    if actual is None:
        return False
    left, right = _comparable_pair(actual, operand)
    try:
        if op == "$gte":
            return left >= right
        if op == "$lte":
            return left <= right
        if op == "$gt":
            return left > right
        if op == "$lt":
            return left < right
    except TypeError:
        return False
    raise ValidationError(f"Unsupported filter operator: {op}")


def _comparable_pair(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, (str, datetime, date)) and isinstance(right, (str, datetime, date)):
        try:
            return parse_timestamp(left), parse_timestamp(right)
        except ValueError:
            return str(left), str(right)
    return left, right


def _sort_value(value: Any) -> Any:
    if isinstance(value, (str, datetime, date)):
        try:
            return (0, parse_timestamp(value).timestamp(), "")
        except (ValueError, OverflowError):
            return (1, 0.0, str(value))
    if isinstance(value, bool):
        return (0, float(value), "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    return (1, 0.0, str(value))


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _validate_entry(record: dict[str, Any]) -> None:
    day = record.get("date")
    if not day:
        raise ValidationError("Entry date is required.")
    try:
        to_day(day)
    except ValueError as exc:
        raise ValidationError(f"Invalid entry date: {day}") from exc

    status = record.get("status")
    if status not in (None, STATUS_SCHEDULED, STATUS_DELIVERED):
        raise ValidationError(f"Invalid capsule status: {status}")
    for key in ("deliver_at", "delivered_at"):
        if record.get(key) in (None, ""):
            continue
        try:
            parse_timestamp(record[key])
        except ValueError as exc:
            raise ValidationError(f"Invalid {key}: {record[key]}") from exc
    if record.get("is_capsule") and status == STATUS_SCHEDULED and not record.get("deliver_at"):
        raise ValidationError("Scheduled capsules require deliver_at.")


def _validate_transition(current: dict[str, Any], changes: dict[str, Any]) -> None:
    if current.get("status") == STATUS_DELIVERED and changes.get("status") == STATUS_SCHEDULED:
        raise ValidationError("A delivered capsule cannot be rescheduled.")
    delivered_at = current.get("delivered_at")
    if delivered_at and "delivered_at" in changes and changes["delivered_at"] != delivered_at:
        raise ValidationError("delivered_at cannot change once set.")


class LocalBackend(Backend):
    def __init__(self, db_file: Path):
        self._db_file = Path(db_file)
        self._db_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_file, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self):
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_entries_date
                ON entries(date);

                CREATE TABLE IF NOT EXISTS app_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def list_entries(
        self,
        filters: dict[str, Any] | None = None,
        sort: str | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock, self._connection() as conn:
            rows = conn.execute("SELECT payload FROM entries ORDER BY created_at ASC, id ASC").fetchall()
        records = [json.loads(row["payload"]) for row in rows]
        return sort_records([row for row in records if matches_filter(row, filters)], sort)

    def get_entry(self, entry_id: str) -> dict[str, Any]:
        with self._lock, self._connection() as conn:
            row = conn.execute("SELECT payload FROM entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise NotFound("Entry", entry_id)
        return json.loads(row["payload"])

    def create_entry(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Entry payload must be a mapping.")
        now = datetime.now().astimezone().isoformat()
        record = dict(ENTRY_DEFAULTS)
        record.update(json.loads(json.dumps(payload, default=_json_default)))
        record["id"] = uuid.uuid4().hex
        record["created_at"] = now
        record["updated_at"] = now
        _validate_entry(record)

        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO entries(id, date, payload, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record["id"], str(record["date"]), json.dumps(record), now, now),
            )
            conn.commit()
        logger.debug("Created entry %s for %s", record["id"], record["date"])
        return record

    def update_entry(self, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Entry payload must be a mapping.")
        changes = json.loads(json.dumps(payload, default=_json_default))
        changes.pop("id", None)
        changes.pop("created_at", None)
        now = datetime.now().astimezone().isoformat()

        with self._lock, self._connection() as conn:
            row = conn.execute("SELECT payload FROM entries WHERE id = ?", (entry_id,)).fetchone()
            if row is None:
                raise NotFound("Entry", entry_id)
            current = json.loads(row["payload"])
            _validate_transition(current, changes)
            record = {**current, **changes, "updated_at": now}
            _validate_entry(record)
            conn.execute(
                "UPDATE entries SET date = ?, payload = ?, updated_at = ? WHERE id = ?",
                (str(record["date"]), json.dumps(record), now, entry_id),
            )
            conn.commit()
        return record

    def insert_raw_entry(self, record: dict[str, Any]) -> dict[str, Any]:
        """Store a record verbatim, bypassing defaults; used to import legacy data."""
        stored = json.loads(json.dumps(record, default=_json_default))
        stored.setdefault("id", uuid.uuid4().hex)
        stored.setdefault("created_at", datetime.now().astimezone().isoformat())
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO entries(id, date, payload, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(stored["id"]),
                    str(stored.get("date") or ""),
                    json.dumps(stored),
                    str(stored["created_at"]),
                    str(stored["created_at"]),
                ),
            )
            conn.commit()
        return stored

    def get_current_user(self) -> dict[str, Any]:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (CURRENT_USER_SETTING_KEY,),
            ).fetchone()
        user = dict(USER_DEFAULTS)
        if row is not None:
            user.update(json.loads(row["value"]))
        return user

    def update_current_user(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("User payload must be a mapping.")
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (CURRENT_USER_SETTING_KEY,),
            ).fetchone()
            user = dict(USER_DEFAULTS)
            if row is not None:
                user.update(json.loads(row["value"]))
            user.update(json.loads(json.dumps(payload, default=_json_default)))
            conn.execute(
                """
                INSERT INTO app_settings(key, value)
                VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (CURRENT_USER_SETTING_KEY, json.dumps(user)),
            )
            conn.commit()
        return user


class RemoteBackend(Backend):
    """Entity CRUD client for the hosted journal backend.

    Sessions are not shared between threads: each thread that issues a request
    (capsule delivery runs on a worker pool) gets its own from ``session_factory``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 15.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        if not base_url.strip():
            raise ValueError("Backend URL is required.")
        self.base_url = base_url.strip().rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session_factory = session_factory
        self._headers = {"Accept": "application/json"}
        if api_key.strip():
            self._headers["Authorization"] = f"Bearer {api_key.strip()}"
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update(self._headers)
            self._local.session = session
        return session

    def list_entries(
        self,
        filters: dict[str, Any] | None = None,
        sort: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"q": json.dumps(filters or {}, default=_json_default)}
        if sort:
            params["sort_by"] = sort
        data = self._request("GET", "/entities/Entry", params=params)
        if isinstance(data, dict):
            data = data.get("items", [])
        return [dict(row) for row in data or []]

    def get_entry(self, entry_id: str) -> dict[str, Any]:
        return self._request("GET", f"/entities/Entry/{entry_id}", entity=("Entry", entry_id))

    def create_entry(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/entities/Entry", payload=payload)

    def update_entry(self, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            "PUT",
            f"/entities/Entry/{entry_id}",
            payload=payload,
            entity=("Entry", entry_id),
        )

    def get_current_user(self) -> dict[str, Any]:
        return self._request("GET", "/entities/User/me", entity=("User", "me"))

    def update_current_user(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("PUT", "/entities/User/me", payload=payload, entity=("User", "me"))

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        entity: tuple[str, str] | None = None,
    ) -> Any:
        body = None
        if payload is not None:
            body = json.dumps(payload, default=_json_default)
        try:
            response = self._session().request(
                method,
                f"{self.base_url}{path}",
                params=params,
                data=body,
                headers={"Content-Type": "application/json"} if body is not None else None,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404 and entity is not None:
            raise NotFound(*entity)
        if response.status_code in (400, 409, 422):
            raise ValidationError(_error_detail(response))
        if response.status_code >= 400:
            raise NetworkFailure(f"{method} {path} returned HTTP {response.status_code}: {_error_detail(response)}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure(f"{method} {path} returned invalid JSON.") from exc


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()[:300] or response.reason or ""
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or data)
    return str(data)
