from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from luminote.errors import ValidationError
from luminote.export import export_entries, export_filename, render_export
from luminote.models import Entry
from luminote.store import LocalBackend


class ExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.backend = LocalBackend(Path(self._tmp.name) / "luminote.sqlite3")
        self.backend.insert_raw_entry(
            {
                "id": "j1",
                "date": "2024-06-01",
                "bright_spots": ["sun", "tea"],
                "intentions": "rest",
                "created_at": "2024-06-01T10:00:00",
            }
        )
        self.backend.insert_raw_entry(
            {
                "id": "c1",
                "date": "2024-06-02",
                "body": "Dear Future Me",
                "is_capsule": True,
                "status": "scheduled",
                "deliver_at": "2025-01-01T00:00:00Z",
                "created_at": "2024-06-02T21:30:00",
            }
        )
        self.backend.insert_raw_entry({"id": "late", "date": "2024-07-01", "created_at": "2024-07-01T08:00:00"})

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_plain_text_export(self) -> None:
        result = export_entries(self.backend, "2024-06-01", "2024-06-30", today="2024-07-02")

        self.assertEqual(result.count, 2)
        self.assertEqual(result.filename, "Luminote_Export_2024-07-02.txt")
        self.assertTrue(result.content.startswith("Luminote Export\nRange: 2024-06-01 to 2024-06-30\nCount: 2\n\n"))
        self.assertIn("Date: 2024-06-01 10:00\nType: journal\nBright Spots:\n  - sun\n  - tea\n", result.content)
        self.assertIn("Type: scheduled\nNote:\nDear Future Me\n", result.content)
        self.assertIn("-" * 40, result.content)

    def test_markdown_export(self) -> None:
        result = export_entries(self.backend, "2024-06-01", "2024-06-01", fmt="Markdown", today="2024-07-02")
        self.assertEqual(result.filename, "Luminote_Export_2024-07-02.md")
        self.assertTrue(result.content.startswith("# Luminote Export\n"))
        self.assertIn("### Bright Spots\n- sun\n- tea\n", result.content)
        self.assertIn("**Type:** `journal`", result.content)

    def test_json_export_normalizes_legacy_fields(self) -> None:
        result = export_entries(self.backend, "2024-06-01", "2024-06-30", fmt="JSON", today="2024-07-02")
        rows = json.loads(result.content)
        self.assertEqual([row["id"] for row in rows], ["j1", "c1"])
        self.assertEqual(rows[0]["bright_spots"], "sun\ntea")

    def test_capsules_can_be_excluded(self) -> None:
        result = export_entries(self.backend, "2024-06-01", "2024-06-30", include_capsules=False, today="2024-07-02")
        self.assertEqual(result.count, 1)

    def test_empty_range_returns_none(self) -> None:
        self.assertIsNone(export_entries(self.backend, "2023-01-01", "2023-01-31", today="2024-07-02"))

    def test_invalid_requests(self) -> None:
        with self.assertRaises(ValidationError):
            export_entries(self.backend, "2024-06-01", "2024-06-30", fmt="PDF")
        with self.assertRaises(ValidationError):
            export_entries(self.backend, "", "2024-06-30")

    def test_records_last_used_range(self) -> None:
        export_entries(self.backend, "2024-06-01", "2024-06-30", today="2024-07-02", record_range=True)
        self.assertEqual(
            self.backend.get_current_user()["export_last_used_range"],
            {"start": "2024-06-01", "end": "2024-06-30", "count": 2},
        )

    def test_render_helpers(self) -> None:
        self.assertEqual(render_export([], "PlainText", "a", "b"), "")
        self.assertEqual(export_filename("JSON", "2024-07-02"), "Luminote_Export_2024-07-02.json")
        entry = Entry.from_record({"id": "x", "date": "2024-06-01", "affirmations": "I am calm"})
        self.assertIn("Affirmations:\n  - I am calm\n", render_export([entry], "PlainText", "a", "b"))


if __name__ == "__main__":
    unittest.main()
