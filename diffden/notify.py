"""
Snapshot notifications from the watcher to whoever renders history.

A NotificationChannel has exactly one consumer. Notices are published in
commit order for any one key, after the commit has completed. While a
callback is registered it receives each notice synchronously at publish
time; otherwise notices wait in a FIFO queue for get() or drain().
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotNotice:
    """A new snapshot was recorded for (slug, file_name)."""

    slug: str
    file_name: str
    revision: str


NotificationCallback = Callable[[str, str], None]


class NotificationChannel:
    """Delivers SnapshotNotice to a registered callback, or queues it."""

    def __init__(self) -> None:
        self._queue: queue.Queue[SnapshotNotice] = queue.Queue()
        self._callback: NotificationCallback | None = None
        self._lock = threading.Lock()

    def register_callback(self, callback: NotificationCallback | None) -> None:
        """Set the callback, replacing any previous one (None clears it)."""
        with self._lock:
            self._callback = callback

    def publish(self, notice: SnapshotNotice) -> None:
        """Hand a notice to the callback, or queue it when there is none."""
        with self._lock:
            callback = self._callback
        if callback is None:
            self._queue.put(notice)
            return
        try:
            callback(notice.slug, notice.file_name)
        except Exception as e:
            logger.error(f"Snapshot callback failed for {notice.slug}/{notice.file_name}: {e}")

    def get(self, timeout: float | None = None) -> SnapshotNotice | None:
        """Next notice, or None if none arrives within `timeout`."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[SnapshotNotice]:
        """All notices currently queued, oldest first."""
        notices = []
        while True:
            try:
                notices.append(self._queue.get_nowait())
            except queue.Empty:
                return notices
