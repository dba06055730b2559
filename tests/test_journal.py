from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from luminote.errors import NetworkFailure, ValidationError
from luminote.journal import JournalService, compose_affirmations, split_affirmations
from luminote.models import SparkSettings
from luminote.spark import select_daily_prompt
from luminote.store import LocalBackend

UTC = timezone.utc
NOW = datetime(2024, 6, 2, 9, 0, tzinfo=UTC)


class OfflineBackend(LocalBackend):
    def list_entries(self, filters=None, sort=None) -> list[dict[str, Any]]:
        raise NetworkFailure("offline")


class JournalServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.backend = LocalBackend(Path(self._tmp.name) / "luminote.sqlite3")
        self.service = JournalService(self.backend, tz=UTC)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _entries_for(self, day: str) -> list[dict[str, Any]]:
        return self.backend.list_entries({"date": day})

    def test_save_creates_then_updates_one_entry(self) -> None:
        created = self.service.save_entry({"bright_spots": "sun"}, now=NOW)
        updated = self.service.save_entry({"bright_spots": "sun\ntea", "intentions": "rest"}, now=NOW)

        self.assertEqual(created.date, "2024-06-02")
        self.assertEqual(updated.id, created.id)
        rows = self._entries_for("2024-06-02")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["bright_spots"], "sun\ntea")
        self.assertEqual(rows[0]["intentions"], "rest")

    def test_unchanged_save_skips_write(self) -> None:
        self.service.save_entry({"bright_spots": "sun"}, now=NOW)
        before = self._entries_for("2024-06-02")[0]["updated_at"]
        self.service.save_entry({"bright_spots": "sun"}, now=NOW, autosave=True)
        self.assertEqual(self._entries_for("2024-06-02")[0]["updated_at"], before)

    def test_spark_prompt_is_kept_from_first_save(self) -> None:
        self.service.spark = "What made you smile today?"
        self.service.save_entry({"bright_spots": "sun"}, now=NOW)
        self.service.spark = "What surprised you?"
        self.service.save_entry({"bright_spots": "rain"}, now=NOW)
        self.assertEqual(self._entries_for("2024-06-02")[0]["spark_prompt"], "What made you smile today?")

    def test_spark_prompt_fills_empty_slot(self) -> None:
        self.service.save_entry({"bright_spots": "sun"}, now=NOW)
        self.service.spark = "What surprised you?"
        self.service.save_entry({"bright_spots": "sun"}, now=NOW)
        self.assertEqual(self._entries_for("2024-06-02")[0]["spark_prompt"], "What surprised you?")

    def test_legacy_fields_are_rewritten_on_save(self) -> None:
        self.backend.insert_raw_entry({"id": "old", "date": "2024-06-02", "bright_spots": ["a", "b"]})
        saved = self.service.save_entry({"intentions": "focus"}, now=NOW)

        self.assertEqual(saved.id, "old")
        stored = self.backend.get_entry("old")
        self.assertEqual(stored["bright_spots"], "a\nb")
        self.assertEqual(stored["intentions"], "focus")

    def test_list_input_is_normalized(self) -> None:
        saved = self.service.save_entry({"affirmations": ["I am calm", "I am kind"]}, now=NOW)
        self.assertEqual(saved.text("affirmations"), "I am calm\nI am kind")

    def test_store_failure_is_reported_not_raised(self) -> None:
        service = JournalService(OfflineBackend(Path(self._tmp.name) / "offline.sqlite3"), tz=UTC)
        self.assertIsNone(service.save_entry({"bright_spots": "sun"}, now=NOW))
        snapshot = service.load(NOW)
        self.assertIsNone(snapshot.today_entry)
        self.assertEqual(snapshot.total_entries, 0)

    def test_schedule_capsule_seals_todays_entry(self) -> None:
        self.service.save_entry({"bright_spots": "sun", "intentions": "rest"}, now=NOW)
        notification = self.service.schedule_capsule(
            "Dear Future Me", datetime(2024, 9, 1, 12, 0, tzinfo=UTC), now=NOW
        )

        self.assertEqual(notification.title, "Capsule sealed")
        self.assertEqual(notification.description, "We’ll deliver this on Sep 1, 2024.")
        rows = self._entries_for("2024-06-02")
        self.assertEqual(len(rows), 1)
        self.assertTrue(rows[0]["is_capsule"])
        self.assertEqual(rows[0]["status"], "scheduled")
        self.assertEqual(rows[0]["deliver_at"], "2024-09-01T12:00:00Z")
        self.assertEqual(rows[0]["bright_spots"], "sun")
        self.assertEqual(rows[0]["body"], "Dear Future Me")

    def test_schedule_capsule_without_entry_creates_one(self) -> None:
        self.service.schedule_capsule("later", datetime(2025, 1, 1, tzinfo=UTC), now=NOW)
        rows = self._entries_for("2024-06-02")
        self.assertEqual(len(rows), 1)
        self.assertTrue(rows[0]["is_capsule"])

    def test_schedule_capsule_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.schedule_capsule("", datetime(2025, 1, 1, tzinfo=UTC), now=NOW)
        with self.assertRaises(ValidationError):
            self.service.schedule_capsule("hi", datetime(2024, 6, 1, tzinfo=UTC), now=NOW)
        self.assertEqual(self._entries_for("2024-06-02"), [])

    def test_start_delivers_and_builds_snapshot(self) -> None:
        for day in ("2024-06-02", "2024-06-01", "2024-05-31", "2024-05-03", "2023-06-02"):
            self.backend.insert_raw_entry({"id": f"e-{day}", "date": day, "bright_spots": day})
        self.backend.insert_raw_entry(
            {
                "id": "capsule",
                "date": "2024-03-01",
                "body": "hello",
                "is_capsule": True,
                "status": "scheduled",
                "deliver_at": "2024-06-01T00:00:00Z",
            }
        )
        opened: list[str] = []

        snapshot = self.service.start(now=NOW, on_view=opened.append)

        self.assertEqual(snapshot.today, "2024-06-02")
        self.assertEqual(snapshot.today_entry.id, "e-2024-06-02")
        self.assertEqual(snapshot.month_ago_entry.id, "e-2024-05-03")
        self.assertEqual(snapshot.year_ago_entry.id, "e-2023-06-02")
        self.assertEqual(snapshot.streak, 3)
        self.assertEqual(snapshot.total_entries, 6)
        self.assertEqual(snapshot.notification.entry_id, "capsule")
        snapshot.notification.action()
        self.assertEqual(opened, ["capsule"])
        self.assertEqual(self.backend.get_entry("capsule")["status"], "delivered")

        expected = select_daily_prompt(SparkSettings(True, "prompt", "random"), "2024-06-02")
        self.assertEqual(snapshot.spark, expected)
        self.assertEqual(self.service.spark, expected)

    def test_unreadable_stored_date_does_not_break_start(self) -> None:
        self.backend.insert_raw_entry({"id": "odd", "date": "2024/01/03", "bright_spots": "imported"})
        self.backend.insert_raw_entry({"id": "e1", "date": "2024-06-02", "bright_spots": "sun"})

        snapshot = self.service.start(now=NOW)

        self.assertEqual(snapshot.today_entry.id, "e1")
        self.assertEqual(snapshot.streak, 1)
        self.assertEqual(snapshot.total_entries, 2)

    def test_spark_disabled_yields_empty_prompt(self) -> None:
        self.backend.update_current_user({"daily_spark_enabled": False})
        self.assertEqual(self.service.start(now=NOW).spark, "")

    def test_update_spark_settings(self) -> None:
        user = self.service.update_spark_settings(spark_mode="quote", daily_spark_theme="wellness")
        self.assertEqual(user.spark_mode, "quote")
        self.assertEqual(user.daily_spark_theme, "wellness")
        with self.assertRaises(ValidationError):
            self.service.update_spark_settings(spark_mode="haiku")


class AffirmationTests(unittest.TestCase):
    def test_compose_drops_blank_slots(self) -> None:
        self.assertEqual(compose_affirmations(["I am calm", "  ", "I am kind"]), "I am calm\nI am kind")
        self.assertEqual(compose_affirmations(["a", "b", "c", "d"]), "a\nb\nc")

    def test_split_pads_to_three_slots(self) -> None:
        self.assertEqual(split_affirmations("I am calm"), ["I am calm", "", ""])
        self.assertEqual(split_affirmations(""), ["", "", ""])
        self.assertEqual(split_affirmations("a\n\nb\nc\nd"), ["a", "b", "c"])


if __name__ == "__main__":
    unittest.main()
