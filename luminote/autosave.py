from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY_SECONDS = 5.0

SaveCallback = Callable[[dict[str, Any], bool], Any]


class Autosaver:
    """Debounced writer: every change restarts the delay, only the settled data is saved.

    ``flush`` is the blur path; it cancels the pending timer and saves right away.
    Data identical to the last saved snapshot is never written again.
    """

    def __init__(
        self,
        save: SaveCallback,
        delay_seconds: float = DEFAULT_AUTOSAVE_DELAY_SECONDS,
        initial: dict[str, Any] | None = None,
    ):
        self._save = save
        self._delay_seconds = max(0.0, float(delay_seconds))
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: dict[str, Any] | None = None
        self._generation = 0
        self._saved: dict[str, Any] = dict(initial or {})

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def change(self, data: dict[str, Any]) -> None:
        with self._lock:
            self._generation += 1
            self._pending = dict(data)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay_seconds, self._fire, args=(self._generation,))
            self._timer.name = "luminote-autosave"
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            data = self._pending
        return self._save_if_changed(data, generation)

    def close(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            data = self._pending
        self._save_if_changed(data, generation)

    def _save_if_changed(self, data: dict[str, Any] | None, generation: int) -> bool:
        with self._save_lock:
            # a later change, flush or close owns the newer data
            with self._lock:
                superseded = generation != self._generation
            if superseded or data is None or data == self._saved:
                return False
            try:
                self._save(data, True)
            except Exception:  # noqa: BLE001
                logger.exception("Autosave failed")
                return False
            self._saved = dict(data)
            return True
