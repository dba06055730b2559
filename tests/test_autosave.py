from __future__ import annotations

import threading
import time
import unittest
from typing import Any

from luminote.autosave import Autosaver


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[dict[str, Any], bool]] = []
        self.saved = threading.Event()

    def __call__(self, data: dict[str, Any], autosave: bool) -> None:
        self.calls.append((data, autosave))
        self.saved.set()


class PausingAutosaver(Autosaver):
    """Holds the first timer-driven save until the test releases it."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()
        self._held = False

    def _save_if_changed(self, data: dict[str, Any] | None, generation: int) -> bool:
        if threading.current_thread().name == "luminote-autosave" and not self._held:
            self._held = True
            self.entered.set()
            self.release.wait(5.0)
        return super()._save_if_changed(data, generation)


class AutosaverTests(unittest.TestCase):
    def test_rapid_changes_save_only_settled_data(self) -> None:
        recorder = Recorder()
        saver = Autosaver(recorder, delay_seconds=0.2)
        saver.change({"bright_spots": "s"})
        saver.change({"bright_spots": "su"})
        saver.change({"bright_spots": "sun"})

        self.assertTrue(recorder.saved.wait(2.0))
        time.sleep(0.3)
        self.assertEqual(recorder.calls, [({"bright_spots": "sun"}, True)])
        self.assertFalse(saver.is_pending)

    def test_flush_saves_immediately(self) -> None:
        recorder = Recorder()
        saver = Autosaver(recorder, delay_seconds=30)
        saver.change({"intentions": "rest"})
        self.assertTrue(saver.is_pending)

        self.assertTrue(saver.flush())
        self.assertFalse(saver.is_pending)
        self.assertEqual(recorder.calls, [({"intentions": "rest"}, True)])

    def test_unchanged_data_is_not_saved(self) -> None:
        recorder = Recorder()
        saver = Autosaver(recorder, delay_seconds=30, initial={"intentions": "rest"})
        saver.change({"intentions": "rest"})
        self.assertFalse(saver.flush())
        self.assertEqual(recorder.calls, [])

        saver.change({"intentions": "play"})
        self.assertTrue(saver.flush())
        saver.change({"intentions": "play"})
        self.assertFalse(saver.flush())
        self.assertEqual(len(recorder.calls), 1)

    def test_flush_without_changes(self) -> None:
        saver = Autosaver(Recorder(), delay_seconds=30)
        self.assertFalse(saver.flush())

    def test_failed_save_is_retried_on_next_flush(self) -> None:
        attempts: list[dict[str, Any]] = []

        def save(data: dict[str, Any], autosave: bool) -> None:
            attempts.append(data)
            if len(attempts) == 1:
                raise RuntimeError("disk full")

        saver = Autosaver(save, delay_seconds=30)
        saver.change({"body": "draft"})
        with self.assertLogs("luminote.autosave", level="ERROR"):
            self.assertFalse(saver.flush())
        self.assertTrue(saver.flush())
        self.assertEqual(len(attempts), 2)

    def test_stale_timer_does_not_overwrite_newer_save(self) -> None:
        recorder = Recorder()
        saver = PausingAutosaver(recorder, delay_seconds=0.05)
        saver.change({"text": "old"})
        self.assertTrue(saver.entered.wait(2.0))

        saver.change({"text": "new"})
        saver.flush()
        saver.release.set()
        time.sleep(0.3)

        self.assertEqual([data["text"] for data, _ in recorder.calls], ["new"])

    def test_close_discards_pending_change(self) -> None:
        recorder = Recorder()
        saver = Autosaver(recorder, delay_seconds=0.05)
        saver.change({"body": "draft"})
        saver.close()
        time.sleep(0.2)
        self.assertEqual(recorder.calls, [])
        self.assertFalse(saver.flush())


if __name__ == "__main__":
    unittest.main()
